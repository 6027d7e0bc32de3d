"""Policy spec validation.

:func:`validate_policy_spec` checks a single policy for structural problems;
:func:`validate_policy_consistency` checks a set of policies and the
operations that reference them. Both collect issues instead of raising.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from litestar_blueprints.core.types import IssueSeverity, PolicyEffect
from litestar_blueprints.exceptions import PolicyValidationError
from litestar_blueprints.policy.conditions import validate_condition
from litestar_blueprints.policy.spec import RateLimitDefinition

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from litestar_blueprints.core.refs import SpecMeta, SpecRef
    from litestar_blueprints.policy.spec import PolicyCondition, PolicySpec

__all__ = [
    "PolicyBoundOperation",
    "PolicyValidationIssue",
    "PolicyValidationResult",
    "assert_policy_consistency",
    "assert_policy_spec_valid",
    "validate_policy_consistency",
    "validate_policy_spec",
]

_FIELD_ACTIONS = frozenset({"read", "write"})


class PolicyBoundOperation(Protocol):
    """An operation spec that references policies."""

    meta: SpecMeta
    policy_refs: Sequence[SpecRef]


@dataclass(frozen=True)
class PolicyValidationIssue:
    """A single validation finding.

    Attributes:
        level: ``error``, ``warning`` or ``info``.
        message: Human-readable description.
        path: Dotted location in the spec, e.g. ``rules[0].actions``.
        context: Structured details.
    """

    level: IssueSeverity
    message: str
    path: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PolicyValidationResult:
    """Outcome of a policy validation.

    Attributes:
        valid: True when no issue is an error.
        issues: Every issue found.
    """

    valid: bool
    issues: list[PolicyValidationIssue]

    @classmethod
    def from_issues(cls, issues: list[PolicyValidationIssue]) -> PolicyValidationResult:
        return cls(valid=not any(issue.level == IssueSeverity.ERROR for issue in issues), issues=issues)


def _error(message: str, path: str | None = None, **context: Any) -> PolicyValidationIssue:
    return PolicyValidationIssue(IssueSeverity.ERROR, message, path, context)


def _warning(message: str, path: str | None = None, **context: Any) -> PolicyValidationIssue:
    return PolicyValidationIssue(IssueSeverity.WARNING, message, path, context)


def _info(message: str, path: str | None = None, **context: Any) -> PolicyValidationIssue:
    return PolicyValidationIssue(IssueSeverity.INFO, message, path, context)


def validate_policy_spec(spec: PolicySpec) -> PolicyValidationResult:
    """Validate the structure of a policy.

    Args:
        spec: The policy to validate.

    Returns:
        The validation result.
    """
    issues: list[PolicyValidationIssue] = []
    issues.extend(_validate_meta(spec))
    issues.extend(_validate_rules(spec))
    issues.extend(_validate_field_policies(spec))
    issues.extend(_validate_rate_limits(spec))
    issues.extend(_validate_consents(spec))
    issues.extend(_validate_relationships(spec))
    return PolicyValidationResult.from_issues(issues)


def assert_policy_spec_valid(spec: PolicySpec) -> None:
    """Raise when :func:`validate_policy_spec` reports an error.

    Raises:
        PolicyValidationError: If the policy is invalid.
    """
    result = validate_policy_spec(spec)
    if not result.valid:
        msg = f"Policy {spec.meta.identifier} is invalid"
        raise PolicyValidationError(msg, result.issues)


def validate_policy_consistency(
    policies: Iterable[PolicySpec],
    operations: Iterable[PolicyBoundOperation] | None = None,
) -> PolicyValidationResult:
    """Validate every policy and check operation references against them.

    Args:
        policies: Policies to check, e.g. a :class:`PolicyRegistry`.
        operations: Operations whose ``policy_refs`` must resolve.

    Returns:
        The combined result; issue paths are prefixed with the policy identifier.
    """
    policies = list(policies)
    issues: list[PolicyValidationIssue] = []
    known: set[tuple[str, int]] = set()

    for policy in policies:
        known.add((policy.meta.key, policy.meta.version))
        prefix = policy.meta.identifier
        issues.extend(
            PolicyValidationIssue(
                issue.level,
                issue.message,
                f"{prefix}.{issue.path}" if issue.path else prefix,
                issue.context,
            )
            for issue in validate_policy_spec(policy).issues
        )

    latest: dict[str, int] = {}
    for key, version in known:
        latest[key] = max(version, latest.get(key, version))

    for operation in operations or ():
        for ref in operation.policy_refs:
            version = ref.version if ref.version is not None else latest.get(ref.key)
            if (ref.key, version) not in known:
                issues.append(
                    _error(
                        f'Operation "{operation.meta.identifier}" references unknown policy "{ref.identifier}"',
                        operation.meta.identifier,
                        policy=ref.identifier,
                    )
                )

    return PolicyValidationResult.from_issues(issues)


def assert_policy_consistency(
    policies: Iterable[PolicySpec],
    operations: Iterable[PolicyBoundOperation] | None = None,
) -> None:
    """Raise when :func:`validate_policy_consistency` reports an error.

    Raises:
        PolicyValidationError: If any policy or reference is inconsistent.
    """
    result = validate_policy_consistency(policies, operations)
    if not result.valid:
        msg = "Policy consistency check failed"
        raise PolicyValidationError(msg, result.issues)


def _validate_meta(spec: PolicySpec) -> list[PolicyValidationIssue]:
    issues: list[PolicyValidationIssue] = []
    if not spec.meta.key.strip():
        issues.append(_error("Policy must have a non-empty key", "meta.key"))
    if spec.meta.version < 1:
        issues.append(_error("Policy version must be a positive integer", "meta.version", version=spec.meta.version))
    if not spec.meta.owners:
        issues.append(_warning("Policy should specify owners", "meta.owners"))
    return issues


def _validate_rules(spec: PolicySpec) -> list[PolicyValidationIssue]:
    if not spec.rules:
        return [_warning("Policy has no rules defined", "rules")]

    issues: list[PolicyValidationIssue] = []
    declared_limits = {limit.id for limit in spec.rate_limits}
    declared_consents = {consent.id for consent in spec.consents}
    referenced_limits: set[str] = set()

    for index, rule in enumerate(spec.rules):
        path = f"rules[{index}]"
        if not rule.actions:
            issues.append(_error("Rule must specify at least one action", f"{path}.actions"))
        if rule.effect not in set(PolicyEffect):
            issues.append(_error(f"Invalid rule effect: {rule.effect}", f"{path}.effect"))

        if isinstance(rule.rate_limit, str):
            referenced_limits.add(rule.rate_limit)
            if rule.rate_limit not in declared_limits:
                issues.append(
                    _error(f'Rate limit "{rule.rate_limit}" referenced but not defined', f"{path}.rate_limit")
                )
        elif isinstance(rule.rate_limit, RateLimitDefinition):
            referenced_limits.add(rule.rate_limit.id)

        issues.extend(
            _error(f'Consent "{consent_id}" referenced but not defined', f"{path}.requires_consent")
            for consent_id in rule.requires_consent
            if consent_id not in declared_consents
        )
        issues.extend(_validate_conditions(rule.conditions, f"{path}.conditions"))

    issues.extend(
        _info(f'Rate limit "{limit.id}" is defined but not referenced', "rate_limits", rate_limit=limit.id)
        for limit in spec.rate_limits
        if limit.id and limit.id not in referenced_limits
    )
    return issues


def _validate_conditions(conditions: Iterable[PolicyCondition], path: str) -> list[PolicyValidationIssue]:
    issues: list[PolicyValidationIssue] = []
    for index, condition in enumerate(conditions):
        issues.extend(
            _error(message, f"{path}[{index}].expression", expression=condition.expression)
            for message in validate_condition(condition.expression)
        )
    return issues


def _validate_field_policies(spec: PolicySpec) -> list[PolicyValidationIssue]:
    issues: list[PolicyValidationIssue] = []
    effects: dict[str, set[PolicyEffect]] = {}

    for index, rule in enumerate(spec.field_policies):
        path = f"field_policies[{index}]"
        if not rule.field.strip():
            issues.append(_error("Field policy must specify a field", f"{path}.field"))
        if not rule.actions:
            issues.append(_error("Field policy must specify at least one action", f"{path}.actions"))
        issues.extend(
            _error(f"Invalid field action: {action}", f"{path}.actions")
            for action in rule.actions
            if action not in _FIELD_ACTIONS
        )
        issues.extend(_validate_conditions(rule.conditions, f"{path}.conditions"))
        if rule.field:
            effects.setdefault(rule.field, set()).add(rule.effect)

    issues.extend(
        _warning(f'Field "{name}" has potentially conflicting allow/deny policies', "field_policies", field=name)
        for name, seen in effects.items()
        if len(seen) > 1
    )
    return issues


def _validate_rate_limits(spec: PolicySpec) -> list[PolicyValidationIssue]:
    issues: list[PolicyValidationIssue] = []
    counts = Counter(limit.id for limit in spec.rate_limits if limit.id)
    reported: set[str] = set()

    for index, limit in enumerate(spec.rate_limits):
        path = f"rate_limits[{index}]"
        if not limit.id:
            issues.append(_error("Rate limit must have an id", f"{path}.id"))
        elif counts[limit.id] > 1 and limit.id not in reported:
            reported.add(limit.id)
            issues.append(_error(f"Duplicate rate limit id: {limit.id}", f"{path}.id"))
        if limit.rpm <= 0:
            issues.append(_error("Rate limit rpm must be a positive number", f"{path}.rpm"))
        if limit.window_seconds is not None and limit.window_seconds <= 0:
            issues.append(_error("Rate limit window_seconds must be positive if specified", f"{path}.window_seconds"))
        if limit.burst is not None and limit.burst < 0:
            issues.append(_error("Rate limit burst must be non-negative if specified", f"{path}.burst"))
    return issues


def _validate_consents(spec: PolicySpec) -> list[PolicyValidationIssue]:
    issues: list[PolicyValidationIssue] = []
    counts = Counter(consent.id for consent in spec.consents if consent.id)
    reported: set[str] = set()

    for index, consent in enumerate(spec.consents):
        path = f"consents[{index}]"
        if not consent.id:
            issues.append(_error("Consent must have an id", f"{path}.id"))
        elif counts[consent.id] > 1 and consent.id not in reported:
            reported.add(consent.id)
            issues.append(_error(f"Duplicate consent id: {consent.id}", f"{path}.id"))
        if not consent.scope:
            issues.append(_error("Consent must specify a scope", f"{path}.scope"))
        if not consent.purpose:
            issues.append(_error("Consent must specify a purpose", f"{path}.purpose"))
        if consent.expires_in_days is not None and consent.expires_in_days <= 0:
            issues.append(_error("Consent expires_in_days must be positive if specified", f"{path}.expires_in_days"))
    return issues


def _validate_relationships(spec: PolicySpec) -> list[PolicyValidationIssue]:
    issues: list[PolicyValidationIssue] = []
    seen: set[str] = set()

    for index, relationship in enumerate(spec.relationships):
        path = f"relationships[{index}]"
        if not relationship.subject_type:
            issues.append(_error("Relationship must specify subject_type", f"{path}.subject_type"))
        if not relationship.relation:
            issues.append(_error("Relationship must specify relation", f"{path}.relation"))
        if not relationship.object_type:
            issues.append(_error("Relationship must specify object_type", f"{path}.object_type"))

        signature = f"{relationship.subject_type}:{relationship.relation}:{relationship.object_type}"
        if signature in seen:
            issues.append(_warning(f"Duplicate relationship definition: {signature}", path))
        seen.add(signature)
    return issues

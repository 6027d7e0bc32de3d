"""Rule-based policy decisions.

:class:`PolicyEngine` answers "may this subject perform this action on this
resource" for a list of policy references. Deny rules always win, an allow
must be explicit, and allows can carry consent requirements, rate limits,
escalations and field-level decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from litestar_blueprints.core.types import PolicyEffect
from litestar_blueprints.exceptions import PolicyNotFoundError, RateLimitNotFoundError
from litestar_blueprints.policy.conditions import evaluate_condition
from litestar_blueprints.policy.spec import RESOURCE_SENTINEL, ConsentDefinition, RateLimitDefinition

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from litestar_blueprints.core.protocols import Registry
    from litestar_blueprints.core.refs import PolicyRef
    from litestar_blueprints.policy.spec import (
        FieldPolicyRule,
        PIIPolicy,
        PolicyCondition,
        PolicyRule,
        PolicySpec,
        RelationshipRequirement,
        ResourceMatcher,
        SubjectMatcher,
    )

__all__ = [
    "DecisionContext",
    "FieldDecision",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyResource",
    "PolicySubject",
    "SubjectRelationship",
    "field_action_for",
]

logger = structlog.get_logger(__name__)

_WRITE_ACTIONS = frozenset({"write", "create", "update", "delete", "edit", "patch"})
_ANY = frozenset({"*", "any"})


@dataclass(frozen=True)
class SubjectRelationship:
    """A relation the subject holds on an object, e.g. ``owner`` of ``deal:42``."""

    relation: str
    object_id: str
    object_type: str | None = None


@dataclass(frozen=True)
class PolicySubject:
    """Who is asking.

    Attributes:
        id: Subject id.
        roles: Assigned roles.
        attributes: Attributes for ABAC matching and conditions.
        relationships: Relations held on objects.
    """

    id: str | None = None
    roles: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)
    relationships: list[SubjectRelationship] = field(default_factory=list)


@dataclass(frozen=True)
class PolicyResource:
    """What is being accessed.

    Attributes:
        type: Resource type.
        id: Resource id, when a specific instance is accessed.
        fields: Fields the request reads or writes.
        attributes: Attributes for ABAC matching and conditions.
    """

    type: str
    id: str | None = None
    fields: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DecisionContext:
    """Input of :meth:`PolicyEngine.decide`.

    Attributes:
        action: Requested action, e.g. ``read`` or ``approve``.
        subject: Who is asking.
        resource: What is being accessed.
        policies: Policies to evaluate, in order.
        flags: Feature flags currently on.
        consents: Consent ids the subject has granted.
        context: Extra values exposed to conditions as ``context``.
    """

    action: str
    subject: PolicySubject
    resource: PolicyResource
    policies: list[PolicyRef] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)
    consents: list[str] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldDecision:
    """Access decision for one field."""

    field: str
    effect: PolicyEffect
    reason: str | None = None


@dataclass(frozen=True)
class PolicyDecision:
    """Outcome of a policy evaluation.

    Attributes:
        effect: ``allow`` or ``deny``.
        reason: Why, when known.
        rate_limit: Rate limit attached to the allowing rule.
        escalate: Escalation attached to the allowing rule.
        fields: Per-field decisions.
        pii: PII metadata of the first policy declaring one.
        required_consents: Consents the subject still has to grant.
        evaluated_by: ``engine`` or ``opa``.
    """

    effect: PolicyEffect
    reason: str | None = None
    rate_limit: RateLimitDefinition | None = None
    escalate: str | None = None
    fields: list[FieldDecision] = field(default_factory=list)
    pii: PIIPolicy | None = None
    required_consents: list[ConsentDefinition] = field(default_factory=list)
    evaluated_by: str = "engine"

    @property
    def allowed(self) -> bool:
        return self.effect == PolicyEffect.ALLOW


def field_action_for(action: str) -> str:
    """Map a request action onto the field-level ``read``/``write`` pair."""
    return "write" if action in _WRITE_ACTIONS else "read"


class PolicyEngine:
    """Evaluates policies from a registry.

    Example:
        >>> engine = PolicyEngine(PolicyRegistry([contacts_policy]))
        >>> decision = engine.decide(
        ...     DecisionContext(
        ...         action="read",
        ...         subject=PolicySubject(id="u1", roles=["agent"]),
        ...         resource=PolicyResource(type="contact", id="c1"),
        ...         policies=[SpecRef("crm.contacts", 1)],
        ...     )
        ... )
        >>> decision.allowed
        True
    """

    def __init__(self, registry: Registry[PolicySpec]) -> None:
        self.registry = registry

    def decide(self, ctx: DecisionContext) -> PolicyDecision:
        """Evaluate the referenced policies.

        Args:
            ctx: The decision request.

        Returns:
            The decision. Without an explicit allow the decision is ``deny``.

        Raises:
            PolicyNotFoundError: If a referenced policy is not registered.
            RateLimitNotFoundError: If a matching rule references an undeclared rate limit.
        """
        policies = self.resolve_policies(ctx.policies)

        allow_reason: str | None = None
        allowed = False
        rate_limit: RateLimitDefinition | None = None
        escalate: str | None = None
        fields: dict[str, FieldDecision] = {}

        for policy in policies:
            rule = next((rule for rule in policy.rules if self._rule_matches(rule, ctx)), None)
            if rule is not None:
                if rule.effect == PolicyEffect.DENY:
                    reason = rule.reason or policy.meta.key
                    logger.debug("policy.denied", policy=policy.meta.identifier, action=ctx.action, reason=reason)
                    return PolicyDecision(effect=PolicyEffect.DENY, reason=reason, pii=_first_pii(policies))

                missing_consents = [consent for consent in rule.requires_consent if consent not in ctx.consents]
                if missing_consents:
                    logger.debug("policy.consent_required", policy=policy.meta.identifier, consents=missing_consents)
                    return PolicyDecision(
                        effect=PolicyEffect.DENY,
                        reason="consent_required",
                        required_consents=[_consent_for(policy, consent_id) for consent_id in missing_consents],
                        pii=_first_pii(policies),
                    )

                allowed = True
                if allow_reason is None:
                    allow_reason = rule.reason or policy.meta.key
                if rate_limit is None and rule.rate_limit is not None:
                    rate_limit = _resolve_rate_limit(policy, rule.rate_limit)
                if escalate is None:
                    escalate = rule.escalate

            self._apply_field_policies(policy.field_policies, ctx, fields)

        if not allowed:
            return PolicyDecision(effect=PolicyEffect.DENY, fields=list(fields.values()), pii=_first_pii(policies))

        return PolicyDecision(
            effect=PolicyEffect.ALLOW,
            reason=allow_reason,
            rate_limit=rate_limit,
            escalate=escalate,
            fields=list(fields.values()),
            pii=_first_pii(policies),
        )

    def resolve_policies(self, refs: Iterable[PolicyRef]) -> list[PolicySpec]:
        """Look up policy references.

        Raises:
            PolicyNotFoundError: If any reference is not registered.
        """
        resolved: list[PolicySpec] = []
        for ref in refs:
            policy = self.registry.get(ref.key, ref.version)
            if policy is None:
                raise PolicyNotFoundError(ref.key, ref.version)
            resolved.append(policy)
        return resolved

    def _rule_matches(self, rule: PolicyRule, ctx: DecisionContext) -> bool:
        if ctx.action not in rule.actions and "*" not in rule.actions:
            return False
        if rule.subject is not None and not _subject_matches(rule.subject, ctx.subject):
            return False
        if rule.resource is not None and not _resource_matches(rule.resource, ctx.resource):
            return False
        if any(flag not in ctx.flags for flag in rule.flags):
            return False
        if not all(_has_relationship(requirement, ctx) for requirement in rule.relationships):
            return False
        return _conditions_hold(rule.conditions, ctx)

    def _apply_field_policies(
        self,
        rules: Iterable[FieldPolicyRule],
        ctx: DecisionContext,
        decisions: dict[str, FieldDecision],
    ) -> None:
        action = field_action_for(ctx.action)
        for rule in rules:
            if action not in rule.actions:
                continue
            if ctx.resource.fields and rule.field not in ctx.resource.fields:
                continue
            if rule.subject is not None and not _subject_matches(rule.subject, ctx.subject):
                continue
            if not _conditions_hold(rule.conditions, ctx):
                continue
            current = decisions.get(rule.field)
            # deny is sticky; a later allow never overrides it
            if current is not None and current.effect == PolicyEffect.DENY:
                continue
            decisions[rule.field] = FieldDecision(field=rule.field, effect=rule.effect, reason=rule.reason)


def _matches_value(expected: Any, actual: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return actual in expected
    return bool(actual == expected)


def _attributes_match(expected: Mapping[str, Any], actual: Mapping[str, Any]) -> bool:
    return all(key in actual and _matches_value(value, actual[key]) for key, value in expected.items())


def _subject_matches(matcher: SubjectMatcher, subject: PolicySubject) -> bool:
    if matcher.roles and not set(matcher.roles) & set(subject.roles):
        return False
    return _attributes_match(matcher.attributes, subject.attributes)


def _resource_matches(matcher: ResourceMatcher, resource: PolicyResource) -> bool:
    if matcher.type not in _ANY and matcher.type != resource.type:
        return False
    if matcher.fields and resource.fields and not set(matcher.fields) & set(resource.fields):
        return False
    return _attributes_match(matcher.attributes, resource.attributes)


def _has_relationship(requirement: RelationshipRequirement, ctx: DecisionContext) -> bool:
    resource = ctx.resource
    if requirement.object_id == RESOURCE_SENTINEL:
        expected_id = resource.id if resource.id is not None else resource.type
        expected_type = requirement.object_type or resource.type
    else:
        expected_id = requirement.object_id
        expected_type = requirement.object_type

    for relationship in ctx.subject.relationships:
        if relationship.relation != requirement.relation or relationship.object_id != expected_id:
            continue
        if expected_type and relationship.object_type and relationship.object_type != expected_type:
            continue
        return True
    return False


def _conditions_hold(conditions: Iterable[PolicyCondition], ctx: DecisionContext) -> bool:
    return all(
        evaluate_condition(condition.expression, subject=ctx.subject, resource=ctx.resource, context=ctx.context)
        for condition in conditions
    )


def _resolve_rate_limit(policy: PolicySpec, rate_limit: str | RateLimitDefinition) -> RateLimitDefinition:
    if isinstance(rate_limit, RateLimitDefinition):
        return rate_limit
    declared = next((definition for definition in policy.rate_limits if definition.id == rate_limit), None)
    if declared is None:
        raise RateLimitNotFoundError(policy.meta.key, rate_limit)
    return declared


def _consent_for(policy: PolicySpec, consent_id: str) -> ConsentDefinition:
    declared = next((consent for consent in policy.consents if consent.id == consent_id), None)
    return declared or ConsentDefinition(id=consent_id, scope="unknown", purpose="unknown")


def _first_pii(policies: Iterable[PolicySpec]) -> PIIPolicy | None:
    return next((policy.pii for policy in policies if policy.pii is not None), None)

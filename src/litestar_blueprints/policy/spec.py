"""Policy spec structures.

A :class:`PolicySpec` bundles access rules, field-level rules, PII metadata,
relationship definitions, consent and rate-limit catalogs, and an optional
OPA binding. Specs are versioned by ``(meta.key, meta.version)`` like
workflows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from litestar_blueprints.core.registry import SpecRegistry

if TYPE_CHECKING:
    from litestar_blueprints.core.refs import SpecMeta
    from litestar_blueprints.core.types import PolicyEffect

__all__ = [
    "RESOURCE_SENTINEL",
    "ConsentDefinition",
    "FieldAction",
    "FieldPolicyRule",
    "OpaPolicyConfig",
    "PIIPolicy",
    "PolicyCondition",
    "PolicyRegistry",
    "PolicyRule",
    "PolicySpec",
    "RateLimitDefinition",
    "RelationshipDefinition",
    "RelationshipRequirement",
    "ResourceMatcher",
    "SubjectMatcher",
]

RESOURCE_SENTINEL = "$resource"
"""Relationship object id meaning "the resource being accessed"."""

FieldAction = Literal["read", "write"]


@dataclass(frozen=True)
class SubjectMatcher:
    """Which subjects a rule applies to.

    Attributes:
        roles: The subject needs at least one of these roles; empty matches all.
        attributes: Every attribute must match. A list value matches any of its items.
    """

    roles: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResourceMatcher:
    """Which resources a rule applies to.

    Attributes:
        type: Resource type; ``*`` or ``any`` match every type.
        fields: When set, the request must touch at least one of these fields.
        attributes: Every attribute must match. A list value matches any of its items.
    """

    type: str = "*"
    fields: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RelationshipRequirement:
    """A relationship the subject must hold for a rule to match.

    Attributes:
        relation: Relation name, e.g. ``owner`` or ``member``.
        object_id: Related object id, or :data:`RESOURCE_SENTINEL`.
        object_type: Related object type, when the relation is typed.
    """

    relation: str
    object_id: str = RESOURCE_SENTINEL
    object_type: str | None = None


@dataclass(frozen=True)
class RelationshipDefinition:
    """Declares a relation subjects can hold on objects."""

    subject_type: str
    relation: str
    object_type: str
    transitive_via: str | None = None


@dataclass(frozen=True)
class PolicyCondition:
    """A sandboxed boolean expression over ``subject``, ``resource`` and ``context``.

    Example:
        >>> PolicyCondition("subject.attributes.department == resource.attributes.department")
    """

    expression: str


@dataclass(frozen=True)
class RateLimitDefinition:
    """A rate limit declared by a policy.

    Attributes:
        id: Identifier rules reference.
        rpm: Requests per window.
        key: What the limit is keyed on, e.g. ``subject`` or ``tenant``.
        window_seconds: Window length; one minute when unset.
        burst: Extra requests allowed on top of ``rpm``.
    """

    id: str
    rpm: int
    key: str = "subject"
    window_seconds: int | None = None
    burst: int | None = None


@dataclass(frozen=True)
class ConsentDefinition:
    """A consent a subject may have to grant.

    Attributes:
        id: Identifier rules reference.
        scope: What the consent covers.
        purpose: Why it is collected.
        lawful_basis: GDPR lawful basis, if applicable.
        expires_in_days: Validity of a grant.
    """

    id: str
    scope: str
    purpose: str
    lawful_basis: str | None = None
    expires_in_days: int | None = None


@dataclass(frozen=True)
class PolicyRule:
    """An access rule.

    Attributes:
        effect: ``allow`` or ``deny``.
        actions: Actions the rule covers; ``*`` covers every action.
        subject: Subject matcher.
        resource: Resource matcher.
        relationships: Relationships the subject must hold.
        requires_consent: Consent ids that must be granted for an allow to stand.
        flags: Feature flags that must be on.
        rate_limit: Rate limit id declared by the policy, or an inline definition.
        escalate: Escalation such as ``human_review`` attached to allows.
        conditions: Sandboxed expressions that must all hold.
        reason: Explanation returned with the decision.
    """

    effect: PolicyEffect
    actions: list[str]
    subject: SubjectMatcher | None = None
    resource: ResourceMatcher | None = None
    relationships: list[RelationshipRequirement] = field(default_factory=list)
    requires_consent: list[str] = field(default_factory=list)
    flags: list[str] = field(default_factory=list)
    rate_limit: str | RateLimitDefinition | None = None
    escalate: str | None = None
    conditions: list[PolicyCondition] = field(default_factory=list)
    reason: str | None = None


@dataclass(frozen=True)
class FieldPolicyRule:
    """A read or write rule for a single resource field.

    Attributes:
        field: Field name.
        actions: ``read`` and/or ``write``.
        effect: ``allow`` or ``deny``.
        subject: Subject matcher.
        conditions: Sandboxed expressions that must all hold.
        reason: Explanation attached to the field decision.
    """

    field: str
    actions: list[FieldAction]
    effect: PolicyEffect
    subject: SubjectMatcher | None = None
    conditions: list[PolicyCondition] = field(default_factory=list)
    reason: str | None = None


@dataclass(frozen=True)
class PIIPolicy:
    """Personal data handling metadata returned with decisions."""

    fields: list[str] = field(default_factory=list)
    retention: str | None = None
    masking: str | None = None


@dataclass(frozen=True)
class OpaPolicyConfig:
    """Where an OPA server evaluates this policy.

    Attributes:
        package: OPA package path, e.g. ``blueprints.crm.access``.
        decision: Rule within the package holding the decision document.
    """

    package: str
    decision: str = "decision"


@dataclass(frozen=True)
class PolicySpec:
    """A versioned policy.

    Example:
        >>> PolicySpec(
        ...     meta=SpecMeta("crm.contacts", 1),
        ...     rules=[PolicyRule(PolicyEffect.ALLOW, ["read"], subject=SubjectMatcher(roles=["agent"]))],
        ... )
    """

    meta: SpecMeta
    rules: list[PolicyRule] = field(default_factory=list)
    field_policies: list[FieldPolicyRule] = field(default_factory=list)
    pii: PIIPolicy | None = None
    relationships: list[RelationshipDefinition] = field(default_factory=list)
    consents: list[ConsentDefinition] = field(default_factory=list)
    rate_limits: list[RateLimitDefinition] = field(default_factory=list)
    opa: OpaPolicyConfig | None = None


class PolicyRegistry(SpecRegistry[PolicySpec]):
    """Registry of policy specs."""

"""Policy specs and decisions.

This module provides the policy data model, the rule-based
:class:`PolicyEngine`, the OPA adapter, the runtime :class:`PolicyContext`
and policy validation.
"""

from __future__ import annotations

from litestar_blueprints.policy.context import (
    AuditEntry,
    PolicyContext,
    PolicyUser,
    RateLimitConfig,
    RateLimitResult,
    create_anonymous_policy_context,
    create_bypass_policy_context,
    create_policy_context,
)
from litestar_blueprints.policy.engine import (
    DecisionContext,
    FieldDecision,
    PolicyDecision,
    PolicyEngine,
    PolicyResource,
    PolicySubject,
    SubjectRelationship,
)
from litestar_blueprints.policy.opa import HttpOPAClient, OPAClient, OPAPolicyAdapter
from litestar_blueprints.policy.spec import (
    ConsentDefinition,
    FieldPolicyRule,
    OpaPolicyConfig,
    PIIPolicy,
    PolicyCondition,
    PolicyRegistry,
    PolicyRule,
    PolicySpec,
    RateLimitDefinition,
    RelationshipDefinition,
    RelationshipRequirement,
    ResourceMatcher,
    SubjectMatcher,
)
from litestar_blueprints.policy.validation import (
    PolicyValidationIssue,
    PolicyValidationResult,
    assert_policy_consistency,
    assert_policy_spec_valid,
    validate_policy_consistency,
    validate_policy_spec,
)

__all__ = [
    "AuditEntry",
    "ConsentDefinition",
    "DecisionContext",
    "FieldDecision",
    "FieldPolicyRule",
    "HttpOPAClient",
    "OPAClient",
    "OPAPolicyAdapter",
    "OpaPolicyConfig",
    "PIIPolicy",
    "PolicyCondition",
    "PolicyContext",
    "PolicyDecision",
    "PolicyEngine",
    "PolicyRegistry",
    "PolicyResource",
    "PolicyRule",
    "PolicySpec",
    "PolicySubject",
    "PolicyUser",
    "PolicyValidationIssue",
    "PolicyValidationResult",
    "RateLimitConfig",
    "RateLimitDefinition",
    "RateLimitResult",
    "RelationshipDefinition",
    "RelationshipRequirement",
    "ResourceMatcher",
    "SubjectMatcher",
    "SubjectRelationship",
    "assert_policy_consistency",
    "assert_policy_spec_valid",
    "create_anonymous_policy_context",
    "create_bypass_policy_context",
    "create_policy_context",
    "validate_policy_consistency",
    "validate_policy_spec",
]

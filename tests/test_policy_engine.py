"""Tests for PolicyEngine."""

from __future__ import annotations

from typing import Any

import pytest

from litestar_blueprints.core.refs import SpecMeta, SpecRef
from litestar_blueprints.core.types import PolicyEffect
from litestar_blueprints.exceptions import PolicyNotFoundError, RateLimitNotFoundError
from litestar_blueprints.policy.engine import (
    DecisionContext,
    PolicyEngine,
    PolicyResource,
    PolicySubject,
    SubjectRelationship,
    field_action_for,
)
from litestar_blueprints.policy.spec import (
    ConsentDefinition,
    FieldPolicyRule,
    PIIPolicy,
    PolicyCondition,
    PolicyRegistry,
    PolicyRule,
    PolicySpec,
    RateLimitDefinition,
    RelationshipRequirement,
    ResourceMatcher,
    SubjectMatcher,
)

ALLOW = PolicyEffect.ALLOW
DENY = PolicyEffect.DENY


def _policy(key: str, *rules: PolicyRule, **kwargs: Any) -> PolicySpec:
    return PolicySpec(meta=SpecMeta(key=key, version=1), rules=list(rules), **kwargs)


def _engine(*policies: PolicySpec) -> PolicyEngine:
    return PolicyEngine(PolicyRegistry(policies))


def _ctx(
    action: str = "read",
    *,
    roles: list[str] | None = None,
    policies: list[str] | None = None,
    subject: PolicySubject | None = None,
    resource: PolicyResource | None = None,
    **kwargs: Any,
) -> DecisionContext:
    return DecisionContext(
        action=action,
        subject=subject or PolicySubject(id="u1", roles=roles or []),
        resource=resource or PolicyResource(type="contact", id="c1"),
        policies=[SpecRef(key, 1) for key in (policies or ["crm.contacts"])],
        **kwargs,
    )


@pytest.mark.unit
class TestDecide:
    """Tests for allow and deny resolution."""

    def test_default_is_deny(self) -> None:
        engine = _engine(_policy("crm.contacts", PolicyRule(ALLOW, ["write"])))

        decision = engine.decide(_ctx("read"))

        assert decision.effect == DENY
        assert not decision.allowed
        assert decision.reason is None

    def test_role_allow(self) -> None:
        rule = PolicyRule(ALLOW, ["read"], subject=SubjectMatcher(roles=["agent"]), reason="agents")
        engine = _engine(_policy("crm.contacts", rule))

        assert engine.decide(_ctx(roles=["agent"])).allowed
        assert engine.decide(_ctx(roles=["agent"])).reason == "agents"
        assert not engine.decide(_ctx(roles=["viewer"])).allowed

    def test_reason_defaults_to_policy_key(self) -> None:
        engine = _engine(_policy("crm.contacts", PolicyRule(ALLOW, ["*"])))

        decision = engine.decide(_ctx("export"))

        assert decision.allowed
        assert decision.reason == "crm.contacts"
        assert decision.evaluated_by == "engine"

    def test_deny_wins_across_policies(self) -> None:
        admin = _policy("admin", PolicyRule(ALLOW, ["*"], subject=SubjectMatcher(roles=["admin"])))
        suspended = _policy(
            "suspended",
            PolicyRule(
                DENY,
                ["*"],
                subject=SubjectMatcher(attributes={"status": "suspended"}),
                reason="account suspended",
            ),
        )
        engine = _engine(admin, suspended)
        subject = PolicySubject(id="u1", roles=["admin"], attributes={"status": "suspended"})

        decision = engine.decide(_ctx("delete", subject=subject, policies=["admin", "suspended"]))

        assert decision.effect == DENY
        assert decision.reason == "account suspended"

    def test_first_matching_rule_per_policy(self) -> None:
        engine = _engine(
            _policy(
                "crm.contacts",
                PolicyRule(ALLOW, ["read"], reason="first"),
                PolicyRule(DENY, ["read"], reason="second"),
            )
        )

        decision = engine.decide(_ctx())

        assert decision.allowed
        assert decision.reason == "first"

    def test_resource_and_attribute_matching(self) -> None:
        rule = PolicyRule(
            ALLOW,
            ["read"],
            resource=ResourceMatcher(type="contact", attributes={"region": ["eu", "uk"]}),
        )
        engine = _engine(_policy("crm.contacts", rule))

        eu = PolicyResource(type="contact", attributes={"region": "eu"})
        us = PolicyResource(type="contact", attributes={"region": "us"})
        deal = PolicyResource(type="deal", attributes={"region": "eu"})

        assert engine.decide(_ctx(resource=eu)).allowed
        assert not engine.decide(_ctx(resource=us)).allowed
        assert not engine.decide(_ctx(resource=deal)).allowed

    def test_flags_must_be_on(self) -> None:
        engine = _engine(_policy("crm.contacts", PolicyRule(ALLOW, ["read"], flags=["beta"])))

        assert not engine.decide(_ctx()).allowed
        assert engine.decide(_ctx(flags=["beta"])).allowed

    def test_unknown_policy(self) -> None:
        with pytest.raises(PolicyNotFoundError, match="Policy 'ghost' version 1 not found"):
            _engine().decide(_ctx(policies=["ghost"]))

    def test_pii_comes_from_first_declaring_policy(self) -> None:
        pii = PIIPolicy(fields=["email"], masking="partial")
        engine = _engine(
            _policy("a", PolicyRule(ALLOW, ["read"])),
            _policy("b", pii=pii),
        )

        assert engine.decide(_ctx(policies=["a", "b"])).pii == pii


@pytest.mark.unit
class TestConsentAndRateLimits:
    """Tests for consent requirements, rate limits and escalation."""

    def test_missing_consent_denies(self) -> None:
        consent = ConsentDefinition(id="marketing", scope="email", purpose="newsletters")
        engine = _engine(
            _policy(
                "crm.contacts",
                PolicyRule(ALLOW, ["read"], requires_consent=["marketing", "profiling"]),
                consents=[consent],
            )
        )

        decision = engine.decide(_ctx())

        assert decision.effect == DENY
        assert decision.reason == "consent_required"
        assert decision.required_consents[0] == consent
        assert decision.required_consents[1].id == "profiling"
        assert decision.required_consents[1].scope == "unknown"
        assert engine.decide(_ctx(consents=["marketing", "profiling"])).allowed

    def test_rate_limit_by_id_and_inline(self) -> None:
        declared = RateLimitDefinition(id="standard", rpm=60)
        inline = RateLimitDefinition(id="inline", rpm=5, window_seconds=10)
        escalating = PolicyRule(ALLOW, ["read"], rate_limit="standard", escalate="human_review")
        engine = _engine(
            _policy("a", escalating, rate_limits=[declared]),
            _policy("b", PolicyRule(ALLOW, ["read"], rate_limit=inline)),
        )

        assert engine.decide(_ctx(policies=["a", "b"])).rate_limit == declared
        assert engine.decide(_ctx(policies=["a"])).escalate == "human_review"
        assert engine.decide(_ctx(policies=["b"])).rate_limit == inline

    def test_undeclared_rate_limit(self) -> None:
        engine = _engine(_policy("crm.contacts", PolicyRule(ALLOW, ["read"], rate_limit="missing")))

        with pytest.raises(RateLimitNotFoundError, match="'missing'"):
            engine.decide(_ctx())


@pytest.mark.unit
class TestRelationshipsAndConditions:
    """Tests for ReBAC requirements and sandboxed conditions."""

    def test_resource_sentinel_relationship(self) -> None:
        engine = _engine(
            _policy("crm.contacts", PolicyRule(ALLOW, ["update"], relationships=[RelationshipRequirement("owner")]))
        )
        owner = PolicySubject(id="u1", relationships=[SubjectRelationship("owner", "c1", "contact")])
        other = PolicySubject(id="u2", relationships=[SubjectRelationship("owner", "c2", "contact")])
        wrong_type = PolicySubject(id="u3", relationships=[SubjectRelationship("owner", "c1", "deal")])

        assert engine.decide(_ctx("update", subject=owner)).allowed
        assert not engine.decide(_ctx("update", subject=other)).allowed
        assert not engine.decide(_ctx("update", subject=wrong_type)).allowed

    def test_explicit_object_relationship(self) -> None:
        requirement = RelationshipRequirement("member", object_id="team-7", object_type="team")
        engine = _engine(_policy("crm.contacts", PolicyRule(ALLOW, ["read"], relationships=[requirement])))
        member = PolicySubject(id="u1", relationships=[SubjectRelationship("member", "team-7", "team")])

        assert engine.decide(_ctx(subject=member)).allowed
        assert not engine.decide(_ctx()).allowed

    def test_conditions(self) -> None:
        condition = PolicyCondition(
            "subject.attributes.department === resource.attributes.department && !context.after_hours"
        )
        engine = _engine(_policy("crm.contacts", PolicyRule(ALLOW, ["read"], conditions=[condition])))
        subject = PolicySubject(id="u1", attributes={"department": "sales"})
        same = PolicyResource(type="contact", attributes={"department": "sales"})
        other = PolicyResource(type="contact", attributes={"department": "legal"})

        assert engine.decide(_ctx(subject=subject, resource=same)).allowed
        assert not engine.decide(_ctx(subject=subject, resource=same, context={"after_hours": True})).allowed
        assert not engine.decide(_ctx(subject=subject, resource=other)).allowed


@pytest.mark.unit
class TestFieldPolicies:
    """Tests for field-level decisions."""

    def test_field_deny_is_sticky(self) -> None:
        engine = _engine(
            _policy(
                "a",
                PolicyRule(ALLOW, ["read"]),
                field_policies=[FieldPolicyRule("ssn", ["read"], DENY, reason="pii")],
            ),
            _policy("b", field_policies=[FieldPolicyRule("ssn", ["read"], ALLOW)]),
        )

        decision = engine.decide(_ctx(policies=["a", "b"]))

        assert decision.allowed
        assert [(item.field, item.effect, item.reason) for item in decision.fields] == [("ssn", DENY, "pii")]

    def test_field_rules_follow_action_and_requested_fields(self) -> None:
        engine = _engine(
            _policy(
                "crm.contacts",
                PolicyRule(ALLOW, ["*"]),
                field_policies=[
                    FieldPolicyRule("email", ["write"], DENY),
                    FieldPolicyRule("phone", ["read", "write"], ALLOW, subject=SubjectMatcher(roles=["agent"])),
                ],
            )
        )
        resource = PolicyResource(type="contact", id="c1", fields=["email"])

        update = engine.decide(_ctx("update", roles=["agent"]))
        scoped = engine.decide(_ctx("update", roles=["agent"], resource=resource))
        read = engine.decide(_ctx("read"))

        assert {item.field: item.effect for item in update.fields} == {"email": DENY, "phone": ALLOW}
        assert [item.field for item in scoped.fields] == ["email"]
        assert read.fields == []

    @pytest.mark.parametrize(
        ("action", "expected"),
        [("read", "read"), ("list", "read"), ("write", "write"), ("update", "write"), ("delete", "write")],
    )
    def test_field_action_for(self, action: str, expected: str) -> None:
        assert field_action_for(action) == expected

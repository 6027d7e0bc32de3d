"""Tests for the OPA adapter and HTTP client."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import httpx
import pytest

from litestar_blueprints.core.refs import SpecMeta, SpecRef
from litestar_blueprints.core.types import PolicyEffect
from litestar_blueprints.policy.engine import DecisionContext, PolicyEngine, PolicyResource, PolicySubject
from litestar_blueprints.policy.opa import HttpOPAClient, OPAClient, OPAPolicyAdapter, merge_opa_decision
from litestar_blueprints.policy.spec import (
    ConsentDefinition,
    OpaPolicyConfig,
    PolicyRegistry,
    PolicyRule,
    PolicySpec,
)


class FakeOPAClient:
    """OPA client returning a canned decision document."""

    def __init__(self, result: dict[str, Any] | None) -> None:
        self.result = result
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def evaluate(self, path: str, input: dict[str, Any]) -> dict[str, Any] | None:  # noqa: A002
        self.calls.append((path, input))
        return self.result


def _engine(opa: OpaPolicyConfig | None = None) -> PolicyEngine:
    policy = PolicySpec(
        meta=SpecMeta(key="crm.contacts", version=1),
        rules=[PolicyRule(PolicyEffect.ALLOW, ["read"], reason="default allow", escalate="none")],
        opa=opa,
    )
    return PolicyEngine(PolicyRegistry([policy]))


def _ctx() -> DecisionContext:
    return DecisionContext(
        action="read",
        subject=PolicySubject(id="u1", roles=["agent"]),
        resource=PolicyResource(type="contact", id="c1"),
        policies=[SpecRef("crm.contacts", 1)],
        flags=["beta"],
    )


@pytest.mark.unit
class TestOPAPolicyAdapter:
    """Tests for OPAPolicyAdapter."""

    def test_fake_client_satisfies_protocol(self) -> None:
        assert isinstance(FakeOPAClient(None), OPAClient)

    @pytest.mark.asyncio
    async def test_without_binding_returns_engine_decision(self) -> None:
        client = FakeOPAClient({"effect": "deny"})
        adapter = OPAPolicyAdapter(_engine(), client)

        decision = await adapter.decide(_ctx())

        assert decision.allowed
        assert decision.evaluated_by == "engine"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_policy_binding_path_and_input(self) -> None:
        client = FakeOPAClient({"effect": "deny", "reason": "opa says no"})
        adapter = OPAPolicyAdapter(_engine(OpaPolicyConfig(package="blueprints.crm.access")), client)

        decision = await adapter.decide(_ctx())

        path, opa_input = client.calls[0]
        assert path == "blueprints/crm/access/decision"
        assert opa_input["action"] == "read"
        assert opa_input["subject"]["roles"] == ["agent"]
        assert opa_input["policies"] == ["crm.contacts.v1"]
        assert opa_input["flags"] == ["beta"]
        assert opa_input["decision"]["effect"] == "allow"
        assert decision.effect == PolicyEffect.DENY
        assert decision.reason == "opa says no"
        assert decision.escalate == "none"
        assert decision.evaluated_by == "opa"

    @pytest.mark.asyncio
    async def test_package_override(self) -> None:
        client = FakeOPAClient(None)
        adapter = OPAPolicyAdapter(_engine(OpaPolicyConfig(package="ignored")), client, package="tenant.override.allow")

        decision = await adapter.decide(_ctx())

        assert client.calls[0][0] == "tenant/override/allow"
        # an undefined document keeps the engine decision
        assert decision.allowed
        assert decision.evaluated_by == "engine"


@pytest.mark.unit
class TestMergeOpaDecision:
    """Tests for merging OPA documents over engine decisions."""

    def test_merge_fields_rate_limit_and_consents(self) -> None:
        existing = ConsentDefinition(id="marketing", scope="email", purpose="newsletters")
        fallback = merge_opa_decision(_engine().decide(_ctx()), {"required_consents": [asdict(existing)]})

        merged = merge_opa_decision(
            fallback,
            {
                "rate_limit": {"id": "opa", "rpm": 10},
                "fields": [{"field": "ssn", "effect": "deny"}],
                "required_consents": [
                    {"id": "marketing", "scope": "other", "purpose": "other"},
                    {"id": "profiling", "scope": "behaviour", "purpose": "ads"},
                ],
            },
        )

        assert merged.effect == PolicyEffect.ALLOW
        assert merged.reason == "default allow"
        assert merged.rate_limit is not None
        assert merged.rate_limit.rpm == 10
        assert [(item.field, item.effect) for item in merged.fields] == [("ssn", PolicyEffect.DENY)]
        assert [consent.id for consent in merged.required_consents] == ["marketing", "profiling"]
        assert merged.required_consents[0].scope == "email"

    def test_empty_result_returns_fallback(self) -> None:
        fallback = _engine().decide(_ctx())

        assert merge_opa_decision(fallback, None) is fallback
        assert merge_opa_decision(fallback, {}) is fallback


@pytest.mark.unit
class TestHttpOPAClient:
    """Tests for HttpOPAClient over a mocked transport."""

    @pytest.mark.asyncio
    async def test_posts_input_to_data_api(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"result": {"effect": "allow"}})

        client = HttpOPAClient(
            "http://opa:8181/", client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )

        result = await client.evaluate("blueprints/crm/access/decision", {"action": "read"})
        await client.aclose()

        assert result == {"effect": "allow"}
        assert str(requests[0].url) == "http://opa:8181/v1/data/blueprints/crm/access/decision"
        assert json.loads(requests[0].content) == {"input": {"action": "read"}}

    @pytest.mark.asyncio
    async def test_undefined_document(self) -> None:
        transport = httpx.MockTransport(lambda _request: httpx.Response(200, json={}))
        client = HttpOPAClient("http://opa:8181", client=httpx.AsyncClient(transport=transport))

        assert await client.evaluate("missing/decision", {}) is None

    @pytest.mark.asyncio
    async def test_http_errors_propagate(self) -> None:
        transport = httpx.MockTransport(lambda _request: httpx.Response(500))
        client = HttpOPAClient("http://opa:8181", client=httpx.AsyncClient(transport=transport))

        with pytest.raises(httpx.HTTPStatusError):
            await client.evaluate("crm/decision", {})

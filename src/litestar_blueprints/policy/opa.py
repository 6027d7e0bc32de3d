"""Open Policy Agent adapter.

:class:`OPAPolicyAdapter` runs the built-in :class:`PolicyEngine` first and
then sends the same request, together with the engine's decision, to an OPA
server. Values OPA returns override the engine's; anything OPA leaves out
falls back to the engine decision.
"""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx
import structlog

from litestar_blueprints.core.types import PolicyEffect
from litestar_blueprints.policy.engine import FieldDecision, PolicyDecision
from litestar_blueprints.policy.spec import ConsentDefinition, RateLimitDefinition

if TYPE_CHECKING:
    from litestar_blueprints.policy.engine import DecisionContext, PolicyEngine

__all__ = [
    "HttpOPAClient",
    "OPAClient",
    "OPAPolicyAdapter",
    "build_opa_input",
    "merge_opa_decision",
]

logger = structlog.get_logger(__name__)


@runtime_checkable
class OPAClient(Protocol):
    """Evaluates a decision document on an OPA server."""

    async def evaluate(self, path: str, input: dict[str, Any]) -> dict[str, Any] | None:  # noqa: A002
        """Return the decision document at ``path``, or None when undefined."""
        ...


class HttpOPAClient:
    """:class:`OPAClient` speaking OPA's REST data API.

    Example:
        >>> client = HttpOPAClient("http://localhost:8181")
        >>> await client.evaluate("blueprints/crm/access/decision", {"action": "read"})
    """

    def __init__(self, base_url: str, *, client: httpx.AsyncClient | None = None, timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def evaluate(self, path: str, input: dict[str, Any]) -> dict[str, Any] | None:  # noqa: A002
        response = await self._client.post(f"{self.base_url}/v1/data/{path}", json={"input": input})
        response.raise_for_status()
        result = response.json().get("result")
        return result if isinstance(result, dict) else None

    async def aclose(self) -> None:
        await self._client.aclose()


def build_opa_input(ctx: DecisionContext, fallback: PolicyDecision) -> dict[str, Any]:
    """Serialize a decision request and the engine's decision for OPA."""
    return {
        "action": ctx.action,
        "subject": asdict(ctx.subject),
        "resource": asdict(ctx.resource),
        "policies": [ref.identifier for ref in ctx.policies],
        "flags": list(ctx.flags),
        "consents": list(ctx.consents),
        "context": dict(ctx.context),
        "decision": asdict(fallback),
    }


def merge_opa_decision(fallback: PolicyDecision, result: dict[str, Any] | None) -> PolicyDecision:
    """Merge an OPA decision document over the engine decision.

    Required consents from both sources are combined, deduplicated by id.
    """
    if not result:
        return fallback

    effect = PolicyEffect(result["effect"]) if result.get("effect") else fallback.effect
    rate_limit = fallback.rate_limit
    if isinstance(result.get("rate_limit"), dict):
        rate_limit = RateLimitDefinition(**result["rate_limit"])
    fields = fallback.fields
    if isinstance(result.get("fields"), list):
        fields = [
            FieldDecision(field=item["field"], effect=PolicyEffect(item["effect"]), reason=item.get("reason"))
            for item in result["fields"]
        ]

    consents: dict[str, ConsentDefinition] = {consent.id: consent for consent in fallback.required_consents}
    for item in result.get("required_consents") or []:
        consents.setdefault(item["id"], ConsentDefinition(**item))

    return PolicyDecision(
        effect=effect,
        reason=result.get("reason", fallback.reason),
        rate_limit=rate_limit,
        escalate=result.get("escalate", fallback.escalate),
        fields=fields,
        pii=fallback.pii,
        required_consents=list(consents.values()),
        evaluated_by="opa",
    )


class OPAPolicyAdapter:
    """Augments :class:`PolicyEngine` decisions with an OPA server.

    The OPA path comes from ``package`` when given, otherwise from the first
    referenced policy that declares an ``opa`` binding. Without either, the
    engine decision is returned unchanged.
    """

    def __init__(self, engine: PolicyEngine, client: OPAClient, *, package: str | None = None) -> None:
        """Initialize the adapter.

        Args:
            engine: Built-in engine producing the fallback decision.
            client: OPA client.
            package: OPA package path overriding the policies' bindings.
        """
        self.engine = engine
        self.client = client
        self.package = package

    async def decide(self, ctx: DecisionContext) -> PolicyDecision:
        """Decide with the engine, then let OPA override.

        Raises:
            PolicyNotFoundError: If a referenced policy is not registered.
        """
        fallback = self.engine.decide(ctx)
        path = self._resolve_path(ctx)
        if path is None:
            return fallback

        result = await self.client.evaluate(path, build_opa_input(ctx, fallback))
        logger.debug("policy.opa_evaluated", path=path, defined=result is not None)
        return merge_opa_decision(fallback, result)

    def _resolve_path(self, ctx: DecisionContext) -> str | None:
        if self.package is not None:
            return self.package.replace(".", "/")
        for policy in self.engine.resolve_policies(ctx.policies):
            if policy.opa is not None:
                return f"{policy.opa.package.replace('.', '/')}/{policy.opa.decision}"
        return None

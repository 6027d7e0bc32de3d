"""Tests for PolicyContext."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

import pytest

from litestar_blueprints.exceptions import PolicyViolationError
from litestar_blueprints.policy.context import (
    AuditEntry,
    PolicyContext,
    PolicyUser,
    RateLimitConfig,
    create_anonymous_policy_context,
    create_bypass_policy_context,
    create_policy_context,
)

if TYPE_CHECKING:
    from tests.conftest import FakeClock


@pytest.fixture
def user() -> PolicyUser:
    """An editor in the ``acme`` tenant."""
    return PolicyUser(
        id="user-123",
        tenant_id="acme",
        roles=["editor", "viewer"],
        permissions=["read:articles", "write:articles"],
        attributes={"department": "news", "level": 2},
    )


@pytest.mark.unit
class TestRolesPermissionsAttributes:
    """Tests for role, permission and attribute checks."""

    def test_roles(self, user: PolicyUser) -> None:
        ctx = create_policy_context(user)

        assert ctx.has_role("editor")
        assert ctx.has_any_role(["admin", "viewer"])
        assert not ctx.has_all_roles(["editor", "admin"])
        ctx.require_role("editor")

        with pytest.raises(PolicyViolationError, match='Missing required role "admin"') as exc_info:
            ctx.require_role("admin")

        assert exc_info.value.violation == "missing_role"
        assert exc_info.value.details == {"required_role": "admin"}

    def test_permissions(self, user: PolicyUser) -> None:
        ctx = create_policy_context(user)

        assert ctx.has_all_permissions(["read:articles", "write:articles"])
        assert not ctx.has_any_permission(["delete:articles"])

        with pytest.raises(PolicyViolationError) as exc_info:
            ctx.require_permission("delete:articles")

        assert exc_info.value.violation == "missing_permission"

    def test_attributes(self, user: PolicyUser) -> None:
        ctx = create_policy_context(user)

        assert ctx.get_attribute("department") == "news"
        assert ctx.get_attribute("missing", "fallback") == "fallback"
        assert ctx.check_attribute("level", 2)
        assert ctx.check_attribute_one_of("department", ["news", "sports"])
        assert not ctx.check_attribute_one_of("region", ["eu"])

        with pytest.raises(PolicyViolationError) as exc_info:
            ctx.require_attribute("department", "sports")

        assert exc_info.value.violation == "missing_attribute"
        assert exc_info.value.details["required_attribute"] == {"key": "department", "expected": "sports"}

    def test_consents(self, user: PolicyUser) -> None:
        ctx = create_policy_context(user)
        ctx.require_consents(["marketing", "analytics"], ["marketing"])

        with pytest.raises(PolicyViolationError, match="Consent required: analytics") as exc_info:
            ctx.require_consents(["marketing"], ["marketing", "analytics"])

        assert exc_info.value.details == {"consent_ids": ["analytics"]}

    def test_deny(self, user: PolicyUser) -> None:
        ctx = create_policy_context(user)

        with pytest.raises(PolicyViolationError, match='Policy violation for "article.delete": locked') as exc_info:
            ctx.deny("locked", operation="article.delete")

        assert exc_info.value.violation == "access_denied"
        assert exc_info.value.details == {"reason": "locked", "operation": "article.delete"}

        with pytest.raises(PolicyViolationError, match="Policy violation: Access denied"):
            ctx.deny()


@pytest.mark.unit
class TestRateLimits:
    """Tests for fixed-window rate limiting."""

    def test_unlimited_key(self, user: PolicyUser) -> None:
        ctx = create_policy_context(user)

        result = ctx.consume_rate_limit("anything")

        assert result.allowed
        assert math.isinf(result.remaining)

    def test_window(self, user: PolicyUser, clock: FakeClock) -> None:
        ctx = PolicyContext(user, rate_limits={"api": RateLimitConfig(limit=2, window_ms=1000)}, clock=clock)

        assert ctx.check_rate_limit("api").remaining == 2
        assert ctx.consume_rate_limit("api").remaining == 1
        assert ctx.consume_rate_limit("api").remaining == 0

        clock.advance(milliseconds=400)
        rejected = ctx.consume_rate_limit("api")
        assert not rejected.allowed
        assert rejected.retry_after_ms == 600
        assert not ctx.check_rate_limit("api").allowed

        clock.advance(milliseconds=600)
        assert ctx.check_rate_limit("api").allowed
        assert ctx.consume_rate_limit("api").remaining == 1

    def test_cost_larger_than_remaining(self, user: PolicyUser, clock: FakeClock) -> None:
        ctx = PolicyContext(user, rate_limits={"api": RateLimitConfig(limit=5, window_ms=1000)}, clock=clock)
        ctx.consume_rate_limit("api", cost=3)

        result = ctx.consume_rate_limit("api", cost=3)

        assert not result.allowed
        assert result.remaining == 2

    def test_require_rate_limit(self, user: PolicyUser, clock: FakeClock) -> None:
        ctx = PolicyContext(user, rate_limits={"api": RateLimitConfig(limit=1, window_ms=60_000)}, clock=clock)
        ctx.require_rate_limit("api")

        with pytest.raises(PolicyViolationError) as exc_info:
            ctx.require_rate_limit("api")

        assert exc_info.value.violation == "rate_limit_exceeded"
        assert exc_info.value.details == {"rate_limit_key": "api", "retry_after_ms": 60_000}


@pytest.mark.unit
class TestAudit:
    """Tests for audit handlers."""

    @pytest.mark.asyncio
    async def test_sync_handler(self, user: PolicyUser, clock: FakeClock) -> None:
        entries: list[AuditEntry] = []
        ctx = PolicyContext(user, audit_handler=entries.append, clock=clock)

        await ctx.audit_access("article.update", "allowed")

        assert entries == [
            AuditEntry(
                timestamp=clock.now,
                operation="article.update",
                result="allowed",
                user_id="user-123",
                tenant_id="acme",
                attributes={"department": "news", "level": 2},
            )
        ]

    @pytest.mark.asyncio
    async def test_async_handler(self, user: PolicyUser) -> None:
        entries: list[AuditEntry] = []

        async def handler(entry: AuditEntry) -> None:
            entries.append(entry)

        await create_policy_context(user, audit_handler=handler).audit_access("article.delete", "denied", "locked")

        assert entries[0].result == "denied"
        assert entries[0].reason == "locked"

    @pytest.mark.asyncio
    async def test_handler_failure_is_swallowed(self, user: PolicyUser) -> None:
        def handler(_entry: AuditEntry) -> None:
            msg = "audit sink down"
            raise RuntimeError(msg)

        await create_policy_context(user, audit_handler=handler).audit_access("article.update", "allowed")

    @pytest.mark.asyncio
    async def test_without_handler(self, user: PolicyUser) -> None:
        await create_policy_context(user).audit_access("article.update", "allowed")


@pytest.mark.unit
class TestFactories:
    """Tests for the context factories."""

    def test_anonymous(self) -> None:
        ctx = create_anonymous_policy_context()

        assert ctx.user.id == "anonymous"
        assert ctx.roles == frozenset()
        assert ctx.permissions == frozenset()

    def test_bypass(self) -> None:
        ctx = create_bypass_policy_context(["admin", "editor"], ["*:*"])

        assert ctx.user.id == "system"
        assert ctx.has_all_roles(["admin", "editor"])
        assert ctx.has_permission("*:*")
        assert ctx.check_attribute("bypass", True)

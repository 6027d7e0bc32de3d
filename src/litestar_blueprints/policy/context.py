"""Runtime policy context.

A :class:`PolicyContext` wraps the current user's roles, permissions and
attributes so handlers can check or require them, apply fixed-window rate
limits and record audit entries.

Example:
    >>> ctx = create_policy_context(
    ...     PolicyUser(id="user-123", roles=["editor"], permissions=["read:articles"]),
    ... )
    >>> ctx.require_role("editor")
    >>> await ctx.audit_access("article.update", "allowed")
"""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Literal, TypeAlias

import structlog

from litestar_blueprints.core.protocols import maybe_await
from litestar_blueprints.exceptions import PolicyViolationError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

__all__ = [
    "AuditEntry",
    "AuditHandler",
    "PolicyContext",
    "PolicyUser",
    "RateLimitConfig",
    "RateLimitResult",
    "create_anonymous_policy_context",
    "create_bypass_policy_context",
    "create_policy_context",
]

logger = structlog.get_logger(__name__)

AuditResult = Literal["allowed", "denied"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PolicyUser:
    """The user a context checks against.

    Attributes:
        id: User id; ``anonymous`` for unauthenticated users.
        tenant_id: Tenant the user acts for.
        roles: Assigned roles.
        permissions: Granted permissions.
        attributes: Attributes for ABAC checks.
    """

    id: str
    tenant_id: str | None = None
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RateLimitConfig:
    """Fixed-window limit: ``limit`` units per ``window_ms``."""

    limit: int
    window_ms: int


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the request fits in the current window.
        remaining: Units left in the window; infinite when the key is unlimited.
        reset_at: When the window resets, for rejected requests.
        retry_after_ms: Milliseconds until the window resets, for rejected requests.
    """

    allowed: bool
    remaining: float
    reset_at: datetime | None = None
    retry_after_ms: int | None = None


@dataclass(frozen=True)
class AuditEntry:
    """A recorded access attempt."""

    timestamp: datetime
    operation: str
    result: AuditResult
    reason: str | None = None
    user_id: str | None = None
    tenant_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)


AuditHandler: TypeAlias = Callable[[AuditEntry], Awaitable[None] | None]


@dataclass
class _Window:
    count: int
    started_at: datetime


class PolicyContext:
    """Role, permission and attribute checks for one user.

    Attributes:
        user: The user.
        roles: The user's roles as a set.
        permissions: The user's permissions as a set.
    """

    def __init__(
        self,
        user: PolicyUser,
        *,
        rate_limits: Mapping[str, RateLimitConfig] | None = None,
        audit_handler: AuditHandler | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the context.

        Args:
            user: The user.
            rate_limits: Rate limits by key; keys not listed are unlimited.
            audit_handler: Receives audit entries.
            clock: Returns the current time.
        """
        self.user = user
        self.roles = frozenset(user.roles)
        self.permissions = frozenset(user.permissions)
        self._rate_limits = dict(rate_limits or {})
        self._audit_handler = audit_handler
        self._clock = clock
        self._windows: dict[str, _Window] = {}

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_any_role(self, roles: Iterable[str]) -> bool:
        return any(role in self.roles for role in roles)

    def has_all_roles(self, roles: Iterable[str]) -> bool:
        return all(role in self.roles for role in roles)

    def require_role(self, role: str) -> None:
        """Raise unless the user has ``role``.

        Raises:
            PolicyViolationError: With violation type ``missing_role``.
        """
        if not self.has_role(role):
            raise _violation("missing_role", f'Missing required role "{role}"', required_role=role)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def has_any_permission(self, permissions: Iterable[str]) -> bool:
        return any(permission in self.permissions for permission in permissions)

    def has_all_permissions(self, permissions: Iterable[str]) -> bool:
        return all(permission in self.permissions for permission in permissions)

    def require_permission(self, permission: str) -> None:
        """Raise unless the user has ``permission``.

        Raises:
            PolicyViolationError: With violation type ``missing_permission``.
        """
        if not self.has_permission(permission):
            raise _violation(
                "missing_permission",
                f'Missing required permission "{permission}"',
                required_permission=permission,
            )

    def get_attribute(self, key: str, default: Any = None) -> Any:
        return self.user.attributes.get(key, default)

    def check_attribute(self, key: str, expected: Any) -> bool:
        return key in self.user.attributes and self.user.attributes[key] == expected

    def check_attribute_one_of(self, key: str, allowed_values: Iterable[Any]) -> bool:
        return key in self.user.attributes and self.user.attributes[key] in list(allowed_values)

    def require_attribute(self, key: str, expected: Any) -> None:
        """Raise unless attribute ``key`` equals ``expected``.

        Raises:
            PolicyViolationError: With violation type ``missing_attribute``.
        """
        if not self.check_attribute(key, expected):
            raise _violation(
                "missing_attribute",
                f'Missing or invalid attribute "{key}"',
                required_attribute={"key": key, "expected": expected},
            )

    def check_rate_limit(self, key: str) -> RateLimitResult:
        """Report whether one more request under ``key`` would fit, without consuming."""
        config = self._rate_limits.get(key)
        if config is None:
            return RateLimitResult(allowed=True, remaining=math.inf)

        now = self._clock()
        window = self._windows.get(key)
        if window is None or self._expired(window, config, now):
            return RateLimitResult(allowed=True, remaining=config.limit)

        remaining = max(0, config.limit - window.count)
        if remaining <= 0:
            return self._rejected(window, config, now, remaining=0)
        return RateLimitResult(allowed=True, remaining=remaining)

    def consume_rate_limit(self, key: str, cost: int = 1) -> RateLimitResult:
        """Consume ``cost`` units under ``key`` if they fit in the current window."""
        config = self._rate_limits.get(key)
        if config is None:
            return RateLimitResult(allowed=True, remaining=math.inf)

        now = self._clock()
        window = self._windows.get(key)
        if window is None or self._expired(window, config, now):
            window = _Window(count=0, started_at=now)
            self._windows[key] = window

        if window.count + cost > config.limit:
            return self._rejected(window, config, now, remaining=max(0, config.limit - window.count))

        window.count += cost
        return RateLimitResult(allowed=True, remaining=max(0, config.limit - window.count))

    def require_rate_limit(self, key: str, cost: int = 1) -> RateLimitResult:
        """Consume like :meth:`consume_rate_limit`, raising when the limit is hit.

        Raises:
            PolicyViolationError: With violation type ``rate_limit_exceeded``.
        """
        result = self.consume_rate_limit(key, cost)
        if not result.allowed:
            raise _violation(
                "rate_limit_exceeded",
                f'Rate limit exceeded for key "{key}"',
                rate_limit_key=key,
                retry_after_ms=result.retry_after_ms,
            )
        return result

    def require_consents(self, granted: Iterable[str], required: Iterable[str]) -> None:
        """Raise unless every required consent id was granted.

        Raises:
            PolicyViolationError: With violation type ``consent_required``.
        """
        granted_ids = set(granted)
        missing = [consent for consent in required if consent not in granted_ids]
        if missing:
            raise _violation("consent_required", f"Consent required: {', '.join(missing)}", consent_ids=missing)

    def deny(self, reason: str | None = None, operation: str | None = None) -> None:
        """Raise an ``access_denied`` violation."""
        raise _violation("access_denied", reason or "Access denied", operation=operation, reason=reason)

    async def audit_access(self, operation: str, result: AuditResult, reason: str | None = None) -> None:
        """Hand an audit entry to the audit handler, if any.

        Handler failures are logged and never affect the caller.
        """
        if self._audit_handler is None:
            return

        entry = AuditEntry(
            timestamp=self._clock(),
            operation=operation,
            result=result,
            reason=reason,
            user_id=self.user.id,
            tenant_id=self.user.tenant_id,
            attributes=dict(self.user.attributes),
        )
        try:
            await maybe_await(self._audit_handler(entry))
        except Exception:
            logger.warning("policy.audit_failed", operation=operation, user_id=self.user.id, exc_info=True)

    @staticmethod
    def _expired(window: _Window, config: RateLimitConfig, now: datetime) -> bool:
        return now - window.started_at >= timedelta(milliseconds=config.window_ms)

    @staticmethod
    def _rejected(window: _Window, config: RateLimitConfig, now: datetime, *, remaining: int) -> RateLimitResult:
        reset_at = window.started_at + timedelta(milliseconds=config.window_ms)
        retry_after_ms = int((reset_at - now).total_seconds() * 1000)
        return RateLimitResult(allowed=False, remaining=remaining, reset_at=reset_at, retry_after_ms=retry_after_ms)


def _violation(violation: str, message: str, *, operation: str | None = None, **details: Any) -> PolicyViolationError:
    prefix = f'Policy violation for "{operation}": ' if operation else "Policy violation: "
    if operation:
        details["operation"] = operation
    return PolicyViolationError(violation, prefix + message, details)


def create_policy_context(
    user: PolicyUser,
    *,
    rate_limits: Mapping[str, RateLimitConfig] | None = None,
    audit_handler: AuditHandler | None = None,
) -> PolicyContext:
    """Create a context for an authenticated user."""
    return PolicyContext(user, rate_limits=rate_limits, audit_handler=audit_handler)


def create_anonymous_policy_context(
    *,
    rate_limits: Mapping[str, RateLimitConfig] | None = None,
    audit_handler: AuditHandler | None = None,
) -> PolicyContext:
    """Create a context with no roles, permissions or attributes."""
    return PolicyContext(PolicyUser(id="anonymous"), rate_limits=rate_limits, audit_handler=audit_handler)


def create_bypass_policy_context(
    all_roles: Iterable[str],
    all_permissions: Iterable[str],
    *,
    rate_limits: Mapping[str, RateLimitConfig] | None = None,
    audit_handler: AuditHandler | None = None,
) -> PolicyContext:
    """Create a context for internal services holding every given role and permission."""
    user = PolicyUser(
        id="system",
        roles=list(all_roles),
        permissions=list(all_permissions),
        attributes={"bypass": True},
    )
    return PolicyContext(user, rate_limits=rate_limits, audit_handler=audit_handler)

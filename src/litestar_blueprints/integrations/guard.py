"""Guarded integration calls.

:class:`IntegrationCallGuard` wraps one call to an external provider: it looks
up the connection bound to a slot, refuses to call through an unbound slot or
an unhealthy connection, resolves the connection's secret, retries failed
attempts with a fixed backoff and records a telemetry event per attempt.

Readiness and executor failures never raise out of
:meth:`IntegrationCallGuard.execute_with_guards`; they come back as an
:class:`IntegrationInvocationResult` with ``success`` set to False.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Generic, Literal, TypeVar

import structlog
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed

from litestar_blueprints.core.protocols import maybe_await
from litestar_blueprints.core.types import ConnectionStatus
from litestar_blueprints.exceptions import IntegrationError, SecretProviderError
from litestar_blueprints.integrations.spec import IntegrationTelemetryEvent

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tenacity import RetryCallState

    from litestar_blueprints.app_config.runtime import ResolvedAppConfig, ResolvedIntegration
    from litestar_blueprints.core.protocols import IntegrationTelemetryEmitter, SecretProvider, SecretValue
    from litestar_blueprints.integrations.spec import IntegrationConnection, OwnershipMode

__all__ = [
    "CONNECTION_NOT_READY",
    "PROVIDER_ERROR",
    "SLOT_NOT_BOUND",
    "IntegrationCallError",
    "IntegrationCallGuard",
    "IntegrationCallMetadata",
    "IntegrationGuardOptions",
    "IntegrationInvocationResult",
    "default_should_retry",
    "ensure_connection_ready",
]

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SLOT_NOT_BOUND = "SLOT_NOT_BOUND"
CONNECTION_NOT_READY = "CONNECTION_NOT_READY"
PROVIDER_ERROR = "PROVIDER_ERROR"

_UNHEALTHY = frozenset({ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_should_retry(error: BaseException, attempt: int) -> bool:  # noqa: ARG001
    """Retry only errors that carry ``retryable = True``."""
    return getattr(error, "retryable", False) is True


@dataclass
class IntegrationGuardOptions:
    """Configuration for :class:`IntegrationCallGuard`.

    Attributes:
        telemetry: Receives one event per attempt.
        max_attempts: Attempts per call; values below 1 are treated as 1.
        backoff_ms: Fixed delay between attempts.
        should_retry: Decides whether a failed attempt is retried.
        sleep: Awaitable sleep taking seconds; injectable for tests.
        now: Clock used for telemetry timestamps.
    """

    telemetry: IntegrationTelemetryEmitter | None = None
    max_attempts: int = 3
    backoff_ms: int = 250
    should_retry: Callable[[BaseException, int], bool] = default_should_retry
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    now: Callable[[], datetime] = _utcnow


@dataclass(frozen=True)
class IntegrationCallError:
    """Why a guarded call failed.

    Attributes:
        code: ``SLOT_NOT_BOUND``, ``CONNECTION_NOT_READY``, the provider's own
            ``code``, or ``PROVIDER_ERROR``.
        message: Human-readable message.
        retryable: What the retry predicate said about the last error.
        cause: The exception raised by the executor, if any.
    """

    code: str
    message: str
    retryable: bool = False
    cause: BaseException | None = None


@dataclass(frozen=True)
class IntegrationCallMetadata:
    """Call bookkeeping returned with every result."""

    latency_ms: int
    connection_id: str
    ownership_mode: OwnershipMode
    attempts: int


@dataclass(frozen=True)
class IntegrationInvocationResult(Generic[T]):
    """Outcome of :meth:`IntegrationCallGuard.execute_with_guards`."""

    success: bool
    metadata: IntegrationCallMetadata
    data: T | None = None
    error: IntegrationCallError | None = None


@dataclass(frozen=True)
class _CallContext:
    config: ResolvedAppConfig
    slot_id: str
    operation: str


def ensure_connection_ready(integration: ResolvedIntegration) -> None:
    """Raise if the bound connection is disconnected or in error.

    Raises:
        IntegrationError: If the connection is not usable.
    """
    connection = integration.connection
    if connection.status in _UNHEALTHY:
        label = connection.meta.label or connection.meta.id
        msg = f'Integration connection "{label}" is in status "{connection.status}".'
        raise IntegrationError(msg)


class IntegrationCallGuard:
    """Runs integration calls with readiness checks, secrets, retries and telemetry.

    Example:
        >>> guard = IntegrationCallGuard(SecretProviderManager([EnvSecretProvider()]))
        >>> result = await guard.execute_with_guards(
        ...     "payments.primary", "payments.charge", {"amount": 1000}, resolved, charge
        ... )
        >>> result.success
        True
    """

    def __init__(self, secret_provider: SecretProvider, options: IntegrationGuardOptions | None = None) -> None:
        """Initialize the guard.

        Args:
            secret_provider: Resolves connection secret references.
            options: Retry and telemetry configuration.
        """
        self.secret_provider = secret_provider
        self.options = options or IntegrationGuardOptions()
        self.max_attempts = max(1, self.options.max_attempts)

    def ensure_connection_ready(self, integration: ResolvedIntegration) -> None:
        """See :func:`ensure_connection_ready`."""
        ensure_connection_ready(integration)

    async def execute_with_guards(
        self,
        slot_id: str,
        operation: str,
        input: Any,  # noqa: A002
        resolved_config: ResolvedAppConfig,
        executor: Callable[[IntegrationConnection, dict[str, str]], Awaitable[T]],
    ) -> IntegrationInvocationResult[T]:
        """Call ``executor`` through the connection bound to ``slot_id``.

        Args:
            slot_id: Blueprint integration slot.
            operation: Operation name, recorded in telemetry.
            input: Call input; the guard does not inspect it.
            resolved_config: The tenant's resolved configuration.
            executor: Performs the call given the connection and its flattened secrets.

        Returns:
            The call result. Executor errors are captured in ``error``.

        Raises:
            SecretProviderError: If the connection's secret cannot be resolved.
        """
        ctx = _CallContext(config=resolved_config, slot_id=slot_id, operation=operation)
        integration = next((item for item in resolved_config.integrations if item.slot.slot_id == slot_id), None)
        if integration is None:
            error = IntegrationCallError(
                code=SLOT_NOT_BOUND,
                message=f'Integration slot "{slot_id}" is not bound for tenant "{resolved_config.tenant_id}".',
            )
            logger.warning("integration.slot_not_bound", slot_id=slot_id, tenant_id=resolved_config.tenant_id)
            return IntegrationInvocationResult(
                success=False,
                error=error,
                metadata=IntegrationCallMetadata(
                    latency_ms=0, connection_id="unknown", ownership_mode="managed", attempts=0
                ),
            )

        connection = integration.connection
        if connection.status in _UNHEALTHY:
            error = IntegrationCallError(
                code=CONNECTION_NOT_READY,
                message=(
                    f'Integration connection "{connection.meta.label or connection.meta.id}" '
                    f'is in status "{connection.status}".'
                ),
            )
            await self._record(ctx, integration, "error", 0, error.code, error.message, attempt=0)
            return self._failure(integration, error, latency_ms=0, attempts=0)

        secrets = await self._fetch_secrets(connection)

        def log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "integration.retrying",
                slot_id=slot_id,
                operation=operation,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                error_code=_error_code(error) if error is not None else None,
            )

        started = time.perf_counter()
        attempt = 0
        try:
            async for attempt_state in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_fixed(self.options.backoff_ms / 1000),
                retry=self._retry_predicate,
                sleep=self.options.sleep,
                before_sleep=log_retry,
                reraise=True,
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    try:
                        data = await executor(connection, secrets)
                    except Exception as exc:
                        code = _error_code(exc)
                        await self._record(
                            ctx, integration, "error", _elapsed_ms(started), code, str(exc), attempt=attempt
                        )
                        raise
        except Exception as exc:
            retryable = bool(self.options.should_retry(exc, attempt))
            error = IntegrationCallError(code=_error_code(exc), message=str(exc), retryable=retryable, cause=exc)
            return self._failure(integration, error, latency_ms=_elapsed_ms(started), attempts=attempt)

        latency_ms = _elapsed_ms(started)
        await self._record(ctx, integration, "success", latency_ms, attempt=attempt)
        return IntegrationInvocationResult(
            success=True,
            data=data,
            metadata=IntegrationCallMetadata(
                latency_ms=latency_ms,
                connection_id=connection.meta.id,
                ownership_mode=connection.ownership_mode,
                attempts=attempt,
            ),
        )

    def _retry_predicate(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        error = outcome.exception()
        return error is not None and bool(self.options.should_retry(error, retry_state.attempt_number))

    async def _fetch_secrets(self, connection: IntegrationConnection) -> dict[str, str]:
        if not self.secret_provider.can_handle(connection.secret_ref):
            raise SecretProviderError(connection.secret_ref, "secret provider cannot handle this reference")
        secret = await self.secret_provider.get_secret(connection.secret_ref)
        return _parse_secret(secret)

    async def _record(
        self,
        ctx: _CallContext,
        integration: ResolvedIntegration,
        status: Literal["success", "error"],
        duration_ms: int,
        error_code: str | None = None,
        error_message: str | None = None,
        *,
        attempt: int,
    ) -> None:
        if self.options.telemetry is None:
            return
        config = ctx.config
        connection = integration.connection
        event = IntegrationTelemetryEvent(
            tenant_id=config.tenant_id,
            app_id=config.app_id,
            environment=config.environment,
            blueprint_name=config.blueprint_name,
            blueprint_version=config.blueprint_version,
            config_version=config.config_version,
            slot_id=ctx.slot_id,
            integration_key=connection.meta.integration_key,
            integration_version=connection.meta.integration_version,
            connection_id=connection.meta.id,
            status=status,
            duration_ms=duration_ms,
            timestamp=self.options.now(),
            error_code=error_code,
            error_message=error_message,
            metadata={"operation": ctx.operation, "attempt": attempt},
        )
        await maybe_await(self.options.telemetry.record(event))

    @staticmethod
    def _failure(
        integration: ResolvedIntegration,
        error: IntegrationCallError,
        *,
        latency_ms: int,
        attempts: int,
    ) -> IntegrationInvocationResult[Any]:
        return IntegrationInvocationResult(
            success=False,
            error=error,
            metadata=IntegrationCallMetadata(
                latency_ms=latency_ms,
                connection_id=integration.connection.meta.id,
                ownership_mode=integration.connection.ownership_mode,
                attempts=attempts,
            ),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def _error_code(error: BaseException) -> str:
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else PROVIDER_ERROR


def _parse_secret(secret: SecretValue) -> dict[str, str]:
    text = secret.data.decode("utf-8")
    try:
        parsed = json.loads(text)
    except ValueError:
        return {"secret": text}
    if not isinstance(parsed, dict):
        return {"secret": text}
    flattened: dict[str, str] = {}
    for key, value in parsed.items():
        if isinstance(value, bool):
            flattened[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            flattened[key] = str(value)
    return flattened

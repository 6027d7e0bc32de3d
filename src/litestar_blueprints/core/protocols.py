"""Collaborator protocols for litestar-blueprints.

The runner, the policy engine and the integration guard never own storage,
secrets, telemetry or operation execution. They consume these narrow
interfaces instead, so applications can plug in their own implementations.
Callbacks may be plain functions or coroutine functions; :func:`maybe_await`
normalises both.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from litestar_blueprints.app_config.runtime import ResolvedAppConfig
    from litestar_blueprints.core.refs import OpRef
    from litestar_blueprints.integrations.spec import IntegrationTelemetryEvent
    from litestar_blueprints.workflow.runner import GuardContext, OperationExecutorContext
    from litestar_blueprints.workflow.spec import GuardCondition
    from litestar_blueprints.workflow.state import WorkflowState

__all__ = [
    "AppConfigProvider",
    "CapabilityEnforcer",
    "EventEmitter",
    "GuardEvaluator",
    "IntegrationTelemetryEmitter",
    "OperationExecutor",
    "Registry",
    "SecretProvider",
    "SecretValue",
    "StateStore",
    "StateUpdater",
    "TranslationResolver",
    "maybe_await",
]

T = TypeVar("T")
SpecT_co = TypeVar("SpecT_co", covariant=True)

StateUpdater: TypeAlias = "Callable[[WorkflowState], WorkflowState]"
"""Full-state replacement closure handed to :meth:`StateStore.update`."""

OperationExecutor: TypeAlias = "Callable[[OpRef, Any, OperationExecutorContext], Awaitable[Any]]"
"""Executes an automation step's operation; errors propagate to the runner."""

GuardEvaluator: TypeAlias = "Callable[[GuardCondition, GuardContext], bool | Awaitable[bool]]"
"""Custom guard evaluation, taking precedence over expression evaluation."""

EventEmitter: TypeAlias = Callable[[str, dict[str, Any]], None]
"""Fire-and-forget sink for lifecycle events."""

AppConfigProvider: TypeAlias = (
    "Callable[[WorkflowState], ResolvedAppConfig | None | Awaitable[ResolvedAppConfig | None]]"
)
"""Supplies the resolved configuration a workflow instance runs against."""

CapabilityEnforcer: TypeAlias = "Callable[[OpRef, OperationExecutorContext], None | Awaitable[None]]"
"""Raises when an operation may not run in the given context."""


@runtime_checkable
class Registry(Protocol[SpecT_co]):
    """Keyed store of versioned specs with latest-version lookup."""

    def get(self, key: str, version: int | None = None) -> SpecT_co | None:
        """Return the spec for ``key`` (latest version when ``version`` is None)."""
        ...


@runtime_checkable
class StateStore(Protocol):
    """Persistence boundary for workflow instances.

    Example:
        >>> store = InMemoryStateStore()
        >>> await store.create(state)
        >>> await store.update(state.workflow_id, lambda current: replace(current, status=WorkflowStatus.CANCELLED))
    """

    async def create(self, state: WorkflowState) -> None:
        """Persist a new state.

        Raises:
            WorkflowStateExistsError: If the workflow id is already stored.
        """
        ...

    async def get(self, workflow_id: str) -> WorkflowState | None:
        """Load a state, or None when unknown."""
        ...

    async def update(self, workflow_id: str, updater: StateUpdater) -> WorkflowState:
        """Replace the stored state with ``updater(current)`` and return it.

        Raises:
            WorkflowStateNotFoundError: If the workflow id is unknown.
        """
        ...


class SecretValue(Protocol):
    """A fetched secret."""

    data: bytes


@runtime_checkable
class SecretProvider(Protocol):
    """Resolves secret references such as ``env://API_KEY``."""

    def can_handle(self, reference: str) -> bool:
        """Whether this provider understands the reference scheme."""
        ...

    async def get_secret(self, reference: str) -> SecretValue:
        """Fetch the secret behind a reference."""
        ...


@runtime_checkable
class TranslationResolver(Protocol):
    """Looks up translated messages for automation steps."""

    def resolve(self, key: str, locale: str | None = None) -> str | None:
        """Return the translation for ``key`` or None."""
        ...


@runtime_checkable
class IntegrationTelemetryEmitter(Protocol):
    """Receives one telemetry event per integration call attempt."""

    def record(self, event: IntegrationTelemetryEvent) -> None | Awaitable[None]:
        """Record a telemetry event."""
        ...


async def maybe_await(value: T | Awaitable[T]) -> T:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value

"""In-memory workflow state store.

Suitable for tests, previews and single-process deployments. For durable
storage with optimistic concurrency, see :mod:`litestar_blueprints.db`.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from litestar_blueprints.exceptions import WorkflowStateExistsError, WorkflowStateNotFoundError

if TYPE_CHECKING:
    from litestar_blueprints.core.protocols import StateUpdater
    from litestar_blueprints.workflow.state import WorkflowState

__all__ = ["InMemoryStateStore"]


class InMemoryStateStore:
    """Dictionary-backed :class:`~litestar_blueprints.core.protocols.StateStore`.

    States are copied on the way in and out, so callers can never mutate
    stored state by accident. ``update`` runs the read-modify-write under a
    lock; concurrent updates to the same id are serialized, last write wins.

    Example:
        >>> store = InMemoryStateStore()
        >>> await store.create(state)
        >>> loaded = await store.get(state.workflow_id)
    """

    def __init__(self) -> None:
        self._states: dict[str, WorkflowState] = {}
        self._lock = asyncio.Lock()

    async def create(self, state: WorkflowState) -> None:
        """Persist a new state.

        Raises:
            WorkflowStateExistsError: If the workflow id is already stored.
        """
        async with self._lock:
            if state.workflow_id in self._states:
                raise WorkflowStateExistsError(state.workflow_id)
            self._states[state.workflow_id] = state.copy()

    async def get(self, workflow_id: str) -> WorkflowState | None:
        """Load a copy of a state, or None when unknown."""
        state = self._states.get(workflow_id)
        return state.copy() if state is not None else None

    async def update(self, workflow_id: str, updater: StateUpdater) -> WorkflowState:
        """Replace a state with ``updater(current)``.

        Raises:
            WorkflowStateNotFoundError: If the workflow id is unknown.
        """
        async with self._lock:
            current = self._states.get(workflow_id)
            if current is None:
                raise WorkflowStateNotFoundError(workflow_id)
            updated = updater(current.copy())
            self._states[workflow_id] = updated.copy()
            return updated.copy()

    async def list_states(self) -> list[WorkflowState]:
        """Return copies of every stored state."""
        return [state.copy() for state in self._states.values()]

    def __len__(self) -> int:
        return len(self._states)

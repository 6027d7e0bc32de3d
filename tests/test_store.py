"""Tests for the in-memory state store and state serialization."""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import pytest

from litestar_blueprints.core.types import StepStatus, WorkflowStatus
from litestar_blueprints.exceptions import WorkflowStateExistsError, WorkflowStateNotFoundError
from litestar_blueprints.workflow.state import StepExecution, WorkflowState

if TYPE_CHECKING:
    from litestar_blueprints.workflow.store import InMemoryStateStore
    from tests.conftest import FakeClock


def _state(clock: FakeClock, workflow_id: str = "wf-1") -> WorkflowState:
    return WorkflowState(
        workflow_id=workflow_id,
        workflow_name="approval",
        workflow_version=1,
        current_step="start",
        status=WorkflowStatus.RUNNING,
        created_at=clock.now,
        updated_at=clock.now,
        data={"nested": {"count": 1}},
    )


@pytest.mark.unit
class TestInMemoryStateStore:
    """Tests for InMemoryStateStore."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, state_store: InMemoryStateStore, clock: FakeClock) -> None:
        state = _state(clock)

        await state_store.create(state)

        assert await state_store.get("wf-1") == state
        assert await state_store.get("unknown") is None
        assert len(state_store) == 1

    @pytest.mark.asyncio
    async def test_create_duplicate(self, state_store: InMemoryStateStore, clock: FakeClock) -> None:
        await state_store.create(_state(clock))

        with pytest.raises(WorkflowStateExistsError, match="'wf-1' already exists"):
            await state_store.create(_state(clock))

    @pytest.mark.asyncio
    async def test_returned_states_are_copies(self, state_store: InMemoryStateStore, clock: FakeClock) -> None:
        state = _state(clock)
        await state_store.create(state)
        state.data["nested"]["count"] = 99

        loaded = await state_store.get("wf-1")
        assert loaded is not None
        loaded.data["nested"]["count"] = 42
        loaded.history.append(StepExecution(step_id="start", started_at=clock.now))

        fresh = await state_store.get("wf-1")
        assert fresh is not None
        assert fresh.data == {"nested": {"count": 1}}
        assert fresh.history == []

    @pytest.mark.asyncio
    async def test_update(self, state_store: InMemoryStateStore, clock: FakeClock) -> None:
        await state_store.create(_state(clock))

        updated = await state_store.update("wf-1", lambda current: replace(current, status=WorkflowStatus.CANCELLED))

        assert updated.status == WorkflowStatus.CANCELLED
        loaded = await state_store.get("wf-1")
        assert loaded is not None
        assert loaded.status == WorkflowStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_update_unknown(self, state_store: InMemoryStateStore) -> None:
        with pytest.raises(WorkflowStateNotFoundError, match="'missing' not found"):
            await state_store.update("missing", lambda current: current)

    @pytest.mark.asyncio
    async def test_list_states(self, state_store: InMemoryStateStore, clock: FakeClock) -> None:
        await state_store.create(_state(clock, "wf-1"))
        await state_store.create(_state(clock, "wf-2"))

        states = await state_store.list_states()

        assert sorted(state.workflow_id for state in states) == ["wf-1", "wf-2"]


@pytest.mark.unit
class TestWorkflowStateSerialization:
    """Tests for WorkflowState dict conversion and helpers."""

    def test_round_trip(self, clock: FakeClock) -> None:
        state = _state(clock)
        state.history.append(
            StepExecution(
                step_id="start",
                started_at=clock.now,
                status=StepStatus.FAILED,
                completed_at=clock.now,
                input={"a": 1},
                error="boom",
            )
        )

        payload = state.to_dict()

        assert payload["status"] == "running"
        assert payload["history"][0]["status"] == "failed"
        assert WorkflowState.from_dict(payload) == state

    def test_step_entered_at(self, clock: FakeClock) -> None:
        state = _state(clock)
        assert state.step_entered_at() == clock.now

        started = clock.now
        clock.advance(seconds=30)
        state.history.append(
            StepExecution(step_id="start", started_at=started, status=StepStatus.COMPLETED, completed_at=clock.now)
        )
        state.current_step = "review"

        assert state.step_entered_at() == clock.now
        assert state.current_execution() is None

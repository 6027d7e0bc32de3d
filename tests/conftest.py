"""Shared test fixtures for litestar-blueprints test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

import pytest

from litestar_blueprints.app_config.runtime import ResolvedAppConfig, ResolvedCapabilities, ResolvedIntegration
from litestar_blueprints.core.refs import SpecMeta, SpecRef
from litestar_blueprints.core.types import ConnectionStatus, GuardType, StepType
from litestar_blueprints.integrations.spec import (
    IntegrationBinding,
    IntegrationConnection,
    IntegrationConnectionMeta,
    IntegrationSlot,
    IntegrationSpec,
)
from litestar_blueprints.workflow.runner import WorkflowRunner
from litestar_blueprints.workflow.spec import (
    GuardCondition,
    Step,
    StepAction,
    Transition,
    WorkflowDefinition,
    WorkflowRegistry,
    WorkflowSpec,
)
from litestar_blueprints.workflow.store import InMemoryStateStore

if TYPE_CHECKING:
    from litestar_blueprints.core.refs import OpRef
    from litestar_blueprints.integrations.spec import OwnershipMode
    from litestar_blueprints.workflow.runner import OperationExecutorContext


class FakeClock:
    """Deterministic clock advanced explicitly by tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingExecutor:
    """Operation executor returning canned outputs per operation key."""

    def __init__(self, outputs: dict[str, Any] | None = None, errors: dict[str, Exception] | None = None) -> None:
        self.outputs = outputs or {}
        self.errors = errors or {}
        self.calls: list[tuple[OpRef, Any, OperationExecutorContext]] = []

    async def __call__(self, op: OpRef, input: Any, context: OperationExecutorContext) -> Any:  # noqa: A002
        self.calls.append((op, input, context))
        if op.key in self.errors:
            raise self.errors[op.key]
        return self.outputs.get(op.key)


class EventRecorder:
    """Event emitter keeping every ``(name, payload)`` pair."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, name: str, payload: dict[str, Any]) -> None:
        self.events.append((name, payload))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def make_workflow(
    key: str,
    steps: list[Step],
    transitions: list[Transition] | None = None,
    *,
    version: int = 1,
    **definition: Any,
) -> WorkflowSpec:
    """Build a workflow spec with minimal boilerplate."""
    return WorkflowSpec(
        meta=SpecMeta(key=key, version=version, owners=("team.platform",)),
        definition=WorkflowDefinition(steps=steps, transitions=transitions or [], **definition),
    )


def automation(step_id: str, operation: str | None = None, **kwargs: Any) -> Step:
    """Build an automation step running ``operation`` (defaults to ``ops.<step_id>``)."""
    return Step(
        id=step_id,
        type=StepType.AUTOMATION,
        action=StepAction(operation=SpecRef(operation or f"ops.{step_id}", 1)),
        **kwargs,
    )


def human(step_id: str, **kwargs: Any) -> Step:
    """Build a human step with a form."""
    return Step(id=step_id, type=StepType.HUMAN, action=StepAction(form=SpecRef(f"forms.{step_id}", 1)), **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    """Deterministic clock."""
    return FakeClock()


@pytest.fixture
def events() -> EventRecorder:
    """Recording event emitter."""
    return EventRecorder()


@pytest.fixture
def state_store() -> InMemoryStateStore:
    """Empty in-memory state store."""
    return InMemoryStateStore()


@pytest.fixture
def approval_workflow() -> WorkflowSpec:
    """Create the start -> review -> finish approval workflow.

    ``start`` and ``finish`` are automation steps, ``review`` is a human step
    guarded by ``data.approved === true``.
    """
    return make_workflow(
        "approval",
        steps=[
            automation("start"),
            human("review", guard=GuardCondition(GuardType.EXPRESSION, "data.approved === true")),
            automation("finish"),
        ],
        transitions=[
            Transition(source="start", target="review"),
            Transition(source="review", target="finish"),
        ],
    )


@pytest.fixture
def workflow_registry(approval_workflow: WorkflowSpec) -> WorkflowRegistry:
    """Registry holding the approval workflow."""
    return WorkflowRegistry([approval_workflow])


@pytest.fixture
def executor() -> RecordingExecutor:
    """Executor approving in ``start`` and finishing in ``finish``."""
    return RecordingExecutor(outputs={"ops.start": {"approved": True}, "ops.finish": {"done": True}})


@pytest.fixture
def runner(
    workflow_registry: WorkflowRegistry,
    state_store: InMemoryStateStore,
    executor: RecordingExecutor,
    events: EventRecorder,
    clock: FakeClock,
) -> WorkflowRunner:
    """Runner over the approval workflow with sequential ids."""
    counter = iter(range(1, 10_000))
    return WorkflowRunner(
        registry=workflow_registry,
        state_store=state_store,
        op_executor=executor,
        event_emitter=events,
        clock=clock,
        id_factory=lambda: f"wf-{next(counter)}",
    )


def make_integration(
    slot_id: str = "payments.primary",
    status: ConnectionStatus = ConnectionStatus.CONNECTED,
    *,
    connection_id: str = "conn-1",
    tenant_id: str = "acme",
    secret_ref: str = "memory://payments",
    ownership_mode: OwnershipMode = "managed",
) -> ResolvedIntegration:
    """Build a bound integration for a tenant."""
    spec = IntegrationSpec(meta=SpecMeta(key="stripe", version=1), category="payments")
    connection = IntegrationConnection(
        meta=IntegrationConnectionMeta(
            id=connection_id,
            tenant_id=tenant_id,
            integration_key="stripe",
            integration_version=1,
            label="Stripe",
        ),
        ownership_mode=ownership_mode,
        secret_ref=secret_ref,
        status=status,
    )
    return ResolvedIntegration(
        slot=IntegrationSlot(slot_id=slot_id, required_category="payments"),
        binding=IntegrationBinding(slot_id=slot_id, connection_id=connection_id),
        connection=connection,
        spec=spec,
    )


def make_resolved_config(
    integrations: list[ResolvedIntegration] | None = None,
    capabilities: list[SpecRef] | None = None,
) -> ResolvedAppConfig:
    """Build a resolved configuration for tenant ``acme``."""
    return ResolvedAppConfig(
        app_id="crm",
        tenant_id="acme",
        blueprint_name="crm.app",
        blueprint_version=1,
        config_version=3,
        environment="production",
        capabilities=ResolvedCapabilities(enabled=capabilities or []),
        integrations=integrations or [],
    )

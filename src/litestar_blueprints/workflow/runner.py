"""Workflow runner.

The runner is the step machine: it starts workflow instances, executes one
step at a time, evaluates guards, delegates automation steps to an injected
operation executor, applies transitions, persists state through an injected
state store, and emits lifecycle events.

The runner holds no locks. At most one ``execute_step`` call may be in flight
per workflow id; serializing concurrent callers is the job of the caller or of
the state store.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

from litestar_blueprints.core.events import (
    StepCompleted,
    StepFailed,
    WorkflowCancelled,
    WorkflowEvent,
    WorkflowStarted,
)
from litestar_blueprints.core.expression import evaluate_expression
from litestar_blueprints.core.protocols import maybe_await
from litestar_blueprints.core.types import (
    ConnectionStatus,
    GuardType,
    IssueSeverity,
    StepStatus,
    StepType,
    WorkflowStatus,
)
from litestar_blueprints.exceptions import (
    EntryStepMissingError,
    GuardRejectedError,
    MissingOperationError,
    NoTransitionMatchedError,
    WorkflowNotFoundError,
    WorkflowPreFlightError,
    WorkflowStateNotFoundError,
    WorkflowTerminalStateError,
)
from litestar_blueprints.workflow.graph import WorkflowGraph
from litestar_blueprints.workflow.state import StepExecution, WorkflowState

if TYPE_CHECKING:
    from collections.abc import Callable

    from litestar_blueprints.app_config.runtime import (
        ResolvedAppConfig,
        ResolvedBranding,
        ResolvedIntegration,
        ResolvedKnowledge,
        ResolvedTranslation,
    )
    from litestar_blueprints.core.protocols import (
        AppConfigProvider,
        CapabilityEnforcer,
        EventEmitter,
        GuardEvaluator,
        OperationExecutor,
        Registry,
        SecretProvider,
        StateStore,
        TranslationResolver,
    )
    from litestar_blueprints.core.refs import CapabilityRef
    from litestar_blueprints.workflow.spec import Step, WorkflowSpec

__all__ = [
    "GuardContext",
    "OperationExecutorContext",
    "PreFlightIssue",
    "PreFlightResult",
    "WorkflowRunner",
]

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PreFlightIssue:
    """A readiness problem found before starting a workflow.

    Attributes:
        step_id: The step declaring the requirement.
        type: ``integration`` or ``capability``.
        identifier: Slot id, or ``key@version`` for capabilities.
        severity: Errors block the start; warnings never do.
        reason: Human-readable explanation.
    """

    step_id: str
    type: str
    identifier: str
    severity: IssueSeverity
    reason: str


@dataclass(frozen=True)
class PreFlightResult:
    """Outcome of a pre-flight check.

    Attributes:
        can_start: True when no issue has error severity.
        issues: Every issue found.
    """

    can_start: bool
    issues: list[PreFlightIssue] = field(default_factory=list)


@dataclass(frozen=True)
class GuardContext:
    """Context handed to a custom guard evaluator.

    Attributes:
        workflow: The current workflow state.
        step: The guarded step.
        input: The input submitted for the step.
    """

    workflow: WorkflowState
    step: Step
    input: Any = None


@dataclass(frozen=True)
class OperationExecutorContext:
    """Context handed to the operation executor for automation steps.

    The resolved configuration is a shared snapshot; executors must not
    mutate it.

    Attributes:
        workflow: Working copy of the workflow state.
        step: The automation step being executed.
        resolved_app_config: Configuration returned by the app config provider.
        integrations: Convenience slice of ``resolved_app_config.integrations``.
        knowledge: Convenience slice of ``resolved_app_config.knowledge``.
        branding: Convenience slice of ``resolved_app_config.branding``.
        translation: Convenience slice of ``resolved_app_config.translation``.
        translation_resolver: Optional translation lookup.
        secret_provider: Optional secret provider.
    """

    workflow: WorkflowState
    step: Step
    resolved_app_config: ResolvedAppConfig | None = None
    integrations: list[ResolvedIntegration] = field(default_factory=list)
    knowledge: list[ResolvedKnowledge] = field(default_factory=list)
    branding: ResolvedBranding | None = None
    translation: ResolvedTranslation | None = None
    translation_resolver: TranslationResolver | None = None
    secret_provider: SecretProvider | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _capability_key(ref: CapabilityRef) -> str:
    return f"{ref.key}@{ref.version}"


class WorkflowRunner:
    """Executes workflow instances one step at a time.

    Attributes:
        registry: Workflow spec registry.
        state_store: Persistence for workflow states.
        op_executor: Runs automation step operations.
        guard_evaluator: Optional custom guard evaluation.
        event_emitter: Optional lifecycle event sink.
        app_config_provider: Optional source of the resolved configuration.
        enforce_capabilities: Optional check run before each operation.
        secret_provider: Passed through to the operation executor.
        translation_resolver: Passed through to the operation executor.

    Example:
        >>> runner = WorkflowRunner(
        ...     registry=WorkflowRegistry().register(spec),
        ...     state_store=InMemoryStateStore(),
        ...     op_executor=execute_operation,
        ... )
        >>> workflow_id = await runner.start("onboarding")
        >>> await runner.execute_step(workflow_id, {"confirmed": True})
    """

    def __init__(
        self,
        registry: Registry[WorkflowSpec],
        state_store: StateStore,
        op_executor: OperationExecutor,
        *,
        guard_evaluator: GuardEvaluator | None = None,
        event_emitter: EventEmitter | None = None,
        app_config_provider: AppConfigProvider | None = None,
        enforce_capabilities: CapabilityEnforcer | None = None,
        secret_provider: SecretProvider | None = None,
        translation_resolver: TranslationResolver | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        """Initialize the runner.

        Args:
            registry: Workflow spec registry.
            state_store: Persistence for workflow states.
            op_executor: Runs automation step operations.
            guard_evaluator: Custom guard evaluation, takes precedence over expressions.
            event_emitter: Lifecycle event sink.
            app_config_provider: Source of the resolved configuration per instance.
            enforce_capabilities: Check run before each operation; raise to block it.
            secret_provider: Passed through to the operation executor.
            translation_resolver: Passed through to the operation executor.
            clock: Returns the current time.
            id_factory: Generates workflow ids.
        """
        self.registry = registry
        self.state_store = state_store
        self.op_executor = op_executor
        self.guard_evaluator = guard_evaluator
        self.event_emitter = event_emitter
        self.app_config_provider = app_config_provider
        self.enforce_capabilities = enforce_capabilities
        self.secret_provider = secret_provider
        self.translation_resolver = translation_resolver
        self._clock = clock
        self._id_factory = id_factory
        self._graphs: dict[tuple[str, int], WorkflowGraph] = {}

    async def pre_flight_check(
        self,
        workflow_name: str,
        version: int | None = None,
        resolved_config: ResolvedAppConfig | None = None,
    ) -> PreFlightResult:
        """Check integration and capability readiness of a workflow.

        Args:
            workflow_name: Workflow key.
            version: Workflow version; latest when None.
            resolved_config: Configuration to check against. None always passes.

        Returns:
            The pre-flight result.

        Raises:
            WorkflowNotFoundError: If the workflow is not registered.
        """
        return self._perform_pre_flight(self._get_spec(workflow_name, version), resolved_config)

    async def start(
        self,
        workflow_name: str,
        version: int | None = None,
        initial_data: Mapping[str, Any] | None = None,
    ) -> str:
        """Start a new workflow instance.

        Args:
            workflow_name: Workflow key.
            version: Workflow version; latest when None.
            initial_data: Initial ``data`` of the instance.

        Returns:
            The generated workflow id.

        Raises:
            WorkflowNotFoundError: If the workflow is not registered.
            EntryStepMissingError: If the workflow has no entry step.
            WorkflowPreFlightError: If pre-flight reports an error.
        """
        spec = self._get_spec(workflow_name, version)
        entry_step_id = spec.definition.resolve_entry_step_id()
        if not entry_step_id:
            raise EntryStepMissingError(spec.meta.key, spec.meta.version)

        now = self._clock()
        state = WorkflowState(
            workflow_id=self._id_factory(),
            workflow_name=spec.meta.key,
            workflow_version=spec.meta.version,
            current_step=entry_step_id,
            status=WorkflowStatus.RUNNING,
            created_at=now,
            updated_at=now,
            data=dict(initial_data or {}),
        )

        resolved_config = await self._resolve_app_config(state)
        pre_flight = self._perform_pre_flight(spec, resolved_config)
        if not pre_flight.can_start:
            raise WorkflowPreFlightError(pre_flight.issues)

        await self.state_store.create(state)
        self._emit(
            WorkflowStarted(
                workflow_id=state.workflow_id,
                workflow_name=spec.meta.key,
                workflow_version=spec.meta.version,
                current_step=entry_step_id,
            )
        )
        return state.workflow_id

    async def execute_step(self, workflow_id: str, input: Any = None) -> WorkflowState:  # noqa: A002
        """Execute the current step of a workflow instance.

        Args:
            workflow_id: The instance to advance.
            input: Input submitted for the step.

        Returns:
            The persisted state after the step.

        Raises:
            WorkflowStateNotFoundError: If the instance does not exist.
            WorkflowTerminalStateError: If the instance is completed, failed or cancelled.
            GuardRejectedError: If the step guard fails; the state is left untouched.
            Exception: Any error from the step action or from transition selection
                is recorded as a step failure and re-raised.
        """
        state = await self._get_state_or_raise(workflow_id)
        if state.is_terminal:
            raise WorkflowTerminalStateError(workflow_id, str(state.status))

        spec = self._get_spec(state.workflow_name, state.workflow_version)
        graph = self._graph_for(spec)
        step = graph.get_step(state.current_step)

        if not await self._evaluate_guard(step, state, input):
            logger.debug("workflow.guard_rejected", workflow_id=workflow_id, step_id=step.id)
            raise GuardRejectedError(state.workflow_name, step.id)

        execution = StepExecution(step_id=step.id, started_at=self._clock(), input=input)
        working = state.copy()

        try:
            output = await self._run_step_action(step, working, input)
            execution.output = output
            execution.status = StepStatus.COMPLETED
            execution.completed_at = self._clock()
            working.history.append(execution)
            working.updated_at = self._clock()

            if isinstance(input, Mapping):
                working.data.update(input)
            if isinstance(output, Mapping):
                working.data.update(output)

            next_step_id = graph.pick_next_step(step.id, {"data": working.data, "input": input, "output": output})
            if next_step_id:
                working.current_step = next_step_id
                working.status = WorkflowStatus.RUNNING
            elif not graph.has_outgoing(step.id):
                working.status = WorkflowStatus.COMPLETED
            else:
                raise NoTransitionMatchedError(step.id)

            await self.state_store.update(workflow_id, lambda _current: working)
        except Exception as exc:
            execution.status = StepStatus.FAILED
            execution.completed_at = self._clock()
            execution.error = str(exc) or type(exc).__name__
            if not working.history or working.history[-1] is not execution:
                working.history.append(execution)
            working.status = WorkflowStatus.FAILED
            working.updated_at = self._clock()
            await self.state_store.update(workflow_id, lambda _current: working)
            logger.error(
                "workflow.step_failed",
                workflow_id=workflow_id,
                workflow_name=state.workflow_name,
                step_id=step.id,
                error=execution.error,
            )
            self._emit(
                StepFailed(
                    workflow_id=workflow_id,
                    workflow_name=state.workflow_name,
                    step_id=step.id,
                    error=execution.error,
                )
            )
            raise

        self._emit(
            StepCompleted(
                workflow_id=workflow_id,
                workflow_name=state.workflow_name,
                step_id=step.id,
                status=str(working.status),
            )
        )
        if working.status == WorkflowStatus.COMPLETED:
            logger.info("workflow.completed", workflow_id=workflow_id, workflow_name=state.workflow_name)
        return working

    async def get_state(self, workflow_id: str) -> WorkflowState:
        """Load the state of a workflow instance.

        Raises:
            WorkflowStateNotFoundError: If the instance does not exist.
        """
        return await self._get_state_or_raise(workflow_id)

    async def cancel(self, workflow_id: str) -> None:
        """Cancel a workflow instance.

        Cancelling an already cancelled instance is a no-op and emits nothing.
        An in-flight ``execute_step`` is not interrupted.

        Raises:
            WorkflowStateNotFoundError: If the instance does not exist.
        """
        state = await self._get_state_or_raise(workflow_id)
        if state.status == WorkflowStatus.CANCELLED:
            return

        def _cancel(current: WorkflowState) -> WorkflowState:
            current.status = WorkflowStatus.CANCELLED
            current.updated_at = self._clock()
            return current

        await self.state_store.update(workflow_id, _cancel)
        logger.info("workflow.cancelled", workflow_id=workflow_id, workflow_name=state.workflow_name)
        self._emit(WorkflowCancelled(workflow_id=workflow_id, workflow_name=state.workflow_name))

    def _perform_pre_flight(self, spec: WorkflowSpec, resolved_config: ResolvedAppConfig | None) -> PreFlightResult:
        if resolved_config is None:
            return PreFlightResult(can_start=True)

        issues: list[PreFlightIssue] = []
        by_slot = {integration.slot.slot_id: integration for integration in resolved_config.integrations}
        for step in spec.definition.steps:
            for slot_id in step.required_integrations:
                integration = by_slot.get(slot_id)
                if integration is None:
                    issues.append(
                        PreFlightIssue(
                            step_id=step.id,
                            type="integration",
                            identifier=slot_id,
                            severity=IssueSeverity.ERROR,
                            reason=f'Integration slot "{slot_id}" is not bound in the resolved app config.',
                        )
                    )
                    continue
                status = integration.connection.status
                if status in {ConnectionStatus.DISCONNECTED, ConnectionStatus.ERROR}:
                    issues.append(
                        PreFlightIssue(
                            step_id=step.id,
                            type="integration",
                            identifier=slot_id,
                            severity=IssueSeverity.ERROR,
                            reason=f'Integration slot "{slot_id}" is in status "{status}".',
                        )
                    )
                elif status == ConnectionStatus.UNKNOWN:
                    issues.append(
                        PreFlightIssue(
                            step_id=step.id,
                            type="integration",
                            identifier=slot_id,
                            severity=IssueSeverity.WARNING,
                            reason=f'Integration slot "{slot_id}" reports unknown health status.',
                        )
                    )

        enabled = {_capability_key(ref) for ref in resolved_config.capabilities.enabled}
        for step in spec.definition.steps:
            for required in step.required_capabilities:
                key = _capability_key(required)
                if key not in enabled:
                    issues.append(
                        PreFlightIssue(
                            step_id=step.id,
                            type="capability",
                            identifier=key,
                            severity=IssueSeverity.ERROR,
                            reason=f'Capability "{key}" is not enabled.',
                        )
                    )

        for issue in issues:
            if issue.severity == IssueSeverity.WARNING:
                logger.warning(
                    "workflow.preflight_warning",
                    workflow_name=spec.meta.key,
                    step_id=issue.step_id,
                    identifier=issue.identifier,
                    reason=issue.reason,
                )
        can_start = all(issue.severity != IssueSeverity.ERROR for issue in issues)
        return PreFlightResult(can_start=can_start, issues=issues)

    async def _evaluate_guard(self, step: Step, state: WorkflowState, input: Any) -> bool:  # noqa: A002
        if step.guard is None:
            return True
        if self.guard_evaluator is not None:
            return bool(await maybe_await(self.guard_evaluator(step.guard, GuardContext(state, step, input))))
        if step.guard.type == GuardType.EXPRESSION:
            return evaluate_expression(step.guard.value, {"data": state.data, "input": input})
        logger.warning(
            "workflow.policy_guard_unevaluated",
            workflow_name=state.workflow_name,
            step_id=step.id,
            policy=step.guard.value,
        )
        return True

    async def _run_step_action(self, step: Step, state: WorkflowState, input: Any) -> Any:  # noqa: A002
        if step.type != StepType.AUTOMATION:
            return input

        operation = step.action.operation if step.action else None
        if operation is None:
            raise MissingOperationError(step.id)

        resolved_config = await self._resolve_app_config(state)
        context = OperationExecutorContext(
            workflow=state,
            step=step,
            resolved_app_config=resolved_config,
            integrations=list(resolved_config.integrations) if resolved_config else [],
            knowledge=list(resolved_config.knowledge) if resolved_config else [],
            branding=resolved_config.branding if resolved_config else None,
            translation=resolved_config.translation if resolved_config else None,
            translation_resolver=self.translation_resolver,
            secret_provider=self.secret_provider,
        )
        if self.enforce_capabilities is not None:
            await maybe_await(self.enforce_capabilities(operation, context))
        return await self.op_executor(operation, input, context)

    async def _resolve_app_config(self, state: WorkflowState) -> ResolvedAppConfig | None:
        if self.app_config_provider is None:
            return None
        return await maybe_await(self.app_config_provider(state))

    def _get_spec(self, workflow_name: str, version: int | None = None) -> WorkflowSpec:
        spec = self.registry.get(workflow_name, version)
        if spec is None:
            raise WorkflowNotFoundError(workflow_name, version)
        return spec

    def _graph_for(self, spec: WorkflowSpec) -> WorkflowGraph:
        cache_key = (spec.meta.key, spec.meta.version)
        graph = self._graphs.get(cache_key)
        if graph is None or graph.definition is not spec.definition:
            graph = self._graphs[cache_key] = WorkflowGraph(spec.definition)
        return graph

    async def _get_state_or_raise(self, workflow_id: str) -> WorkflowState:
        state = await self.state_store.get(workflow_id)
        if state is None:
            raise WorkflowStateNotFoundError(workflow_id)
        return state

    def _emit(self, event: WorkflowEvent) -> None:
        logger.debug("workflow.event", event_name=event.name, workflow_id=event.workflow_id)
        if self.event_emitter is not None:
            self.event_emitter(event.name, event.to_payload())

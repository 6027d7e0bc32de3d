"""Workflow spec structures.

This module provides the data structures for declaring workflows: steps,
transitions between them, SLA budgets, and compensation handlers. Specs are
immutable once registered and are versioned by ``(meta.key, meta.version)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from litestar_blueprints.core.registry import SpecRegistry

if TYPE_CHECKING:
    from litestar_blueprints.core.refs import CapabilityRef, FormRef, OpRef, SpecMeta
    from litestar_blueprints.core.types import GuardType, StepType

__all__ = [
    "CompensationConfig",
    "CompensationStep",
    "GuardCondition",
    "RetryPolicy",
    "SlaConfig",
    "Step",
    "StepAction",
    "Transition",
    "WorkflowDefinition",
    "WorkflowRegistry",
    "WorkflowSpec",
]


@dataclass(frozen=True)
class GuardCondition:
    """Precondition gating the execution of a step.

    Attributes:
        type: ``expression`` guards run through the expression evaluator;
            ``policy`` guards need a custom guard evaluator.
        value: The expression, or the policy key for policy guards.
    """

    type: GuardType
    value: str


@dataclass(frozen=True)
class StepAction:
    """What a step does when executed.

    Attributes:
        operation: Operation run by automation steps.
        form: Form presented by human steps.
    """

    operation: OpRef | None = None
    form: FormRef | None = None


@dataclass(frozen=True)
class RetryPolicy:
    """Declared retry behaviour of a step.

    The runner does not retry by itself; executors read this to decide.

    Attributes:
        max_attempts: Total attempts including the first one.
        delay_ms: Delay before the first retry.
        backoff: ``fixed`` or ``exponential``.
        max_delay_ms: Upper bound for exponential backoff.
    """

    max_attempts: int
    delay_ms: int
    backoff: str = "fixed"
    max_delay_ms: int | None = None


@dataclass(frozen=True)
class Step:
    """A single step of a workflow definition.

    Attributes:
        id: Identifier, unique within the definition.
        type: Human, automation, or decision.
        label: Display label.
        description: Longer description.
        action: Operation and/or form attached to the step.
        guard: Precondition checked before execution.
        timeout_ms: Declared timeout; enforcement belongs to the executor.
        retry: Declared retry policy.
        required_integrations: Integration slot ids that must be connected.
        required_capabilities: Capabilities that must be enabled.

    Example:
        >>> Step(
        ...     id="review",
        ...     type=StepType.HUMAN,
        ...     label="Review",
        ...     guard=GuardCondition(GuardType.EXPRESSION, "data.approved === true"),
        ... )
    """

    id: str
    type: StepType
    label: str = ""
    description: str = ""
    action: StepAction | None = None
    guard: GuardCondition | None = None
    timeout_ms: int | None = None
    retry: RetryPolicy | None = None
    required_integrations: list[str] = field(default_factory=list)
    required_capabilities: list[CapabilityRef] = field(default_factory=list)


@dataclass(frozen=True)
class Transition:
    """Directed edge between two steps.

    Transitions leaving the same step are evaluated in declaration order and
    the first one whose condition passes wins. No condition always passes.

    Attributes:
        source: Step the transition leaves from.
        target: Step the transition leads to.
        label: Display label.
        condition: Expression evaluated against ``{data, input, output}``.
    """

    source: str
    target: str
    label: str | None = None
    condition: str | None = None


@dataclass(frozen=True)
class SlaConfig:
    """Time budgets for a workflow.

    Attributes:
        total_duration_ms: Budget for the whole instance.
        step_duration_ms: Budget per step id.
    """

    total_duration_ms: int | None = None
    step_duration_ms: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class CompensationStep:
    """Operation that undoes the effect of a step.

    Attributes:
        step_id: The step being compensated.
        operation: The compensating operation.
        description: What the compensation does.
    """

    step_id: str
    operation: OpRef
    description: str = ""


@dataclass(frozen=True)
class CompensationConfig:
    """Compensation handlers of a workflow.

    Attributes:
        strategy: ``linear``, ``parallel`` or ``none``.
        steps: Compensation handlers.
    """

    strategy: str = "linear"
    steps: list[CompensationStep] = field(default_factory=list)


@dataclass(frozen=True)
class WorkflowDefinition:
    """Steps, transitions and budgets of a workflow.

    Attributes:
        steps: Steps in declaration order.
        transitions: Transitions in declaration order.
        entry_step_id: Entry step; defaults to the first declared step.
        sla: Optional time budgets.
        compensation: Optional compensation handlers.
    """

    steps: list[Step] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    entry_step_id: str | None = None
    sla: SlaConfig | None = None
    compensation: CompensationConfig | None = None

    def get_step(self, step_id: str) -> Step | None:
        """Find a step by id."""
        return next((step for step in self.steps if step.id == step_id), None)

    def resolve_entry_step_id(self) -> str | None:
        """Return the explicit entry step, else the first declared step id."""
        if self.entry_step_id:
            return self.entry_step_id
        return self.steps[0].id if self.steps else None


@dataclass(frozen=True)
class WorkflowSpec:
    """A versioned, registrable workflow.

    Attributes:
        meta: Key, version and ownership metadata.
        definition: The workflow graph.
    """

    meta: SpecMeta
    definition: WorkflowDefinition


class WorkflowRegistry(SpecRegistry[WorkflowSpec]):
    """Registry of workflow specs keyed by ``(key, version)``."""

"""Workflow spec validation.

Structural checks (steps, transitions, reachability, cycles), cross-registry
consistency checks, and checks for the SLA, compensation and retry sections.
Validation collects issues instead of raising; the ``assert_*`` helpers raise
:class:`~litestar_blueprints.exceptions.WorkflowValidationError` when any
issue is an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from litestar_blueprints.core.types import IssueSeverity, StepType
from litestar_blueprints.exceptions import WorkflowValidationError
from litestar_blueprints.workflow.graph import WorkflowGraph

if TYPE_CHECKING:
    from collections.abc import Iterable

    from litestar_blueprints.core.protocols import Registry
    from litestar_blueprints.workflow.spec import WorkflowSpec

__all__ = [
    "WorkflowValidationIssue",
    "WorkflowValidationResult",
    "assert_workflow_consistency",
    "assert_workflow_spec_valid",
    "validate_compensation",
    "validate_retry_config",
    "validate_sla_config",
    "validate_workflow_comprehensive",
    "validate_workflow_consistency",
    "validate_workflow_spec",
]


@dataclass(frozen=True)
class WorkflowValidationIssue:
    """A single validation finding.

    Attributes:
        level: ``error`` or ``warning``.
        message: Human-readable description.
        context: Structured details.
    """

    level: IssueSeverity
    message: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkflowValidationResult:
    """Outcome of a multi-check validation.

    Attributes:
        valid: True when no issue is an error.
        issues: Every issue found.
    """

    valid: bool
    issues: list[WorkflowValidationIssue]

    @classmethod
    def from_issues(cls, issues: list[WorkflowValidationIssue]) -> WorkflowValidationResult:
        return cls(valid=not _errors(issues), issues=issues)


def _error(message: str, **context: Any) -> WorkflowValidationIssue:
    return WorkflowValidationIssue(IssueSeverity.ERROR, message, context)


def _warning(message: str, **context: Any) -> WorkflowValidationIssue:
    return WorkflowValidationIssue(IssueSeverity.WARNING, message, context)


def _errors(issues: Iterable[WorkflowValidationIssue]) -> list[WorkflowValidationIssue]:
    return [issue for issue in issues if issue.level == IssueSeverity.ERROR]


def validate_workflow_spec(
    spec: WorkflowSpec,
    operations: Registry[Any] | None = None,
    forms: Registry[Any] | None = None,
) -> list[WorkflowValidationIssue]:
    """Validate workflow structure, references, and reachability.

    Args:
        spec: The workflow to validate.
        operations: Optional operation registry to check operation references.
        forms: Optional form registry to check form references.

    Returns:
        The collected issues; empty when the workflow is valid.
    """
    definition = spec.definition
    if not definition.steps:
        return [_error("Workflow must declare at least one step.")]

    issues: list[WorkflowValidationIssue] = []
    seen: set[str] = set()
    for step in definition.steps:
        if step.id in seen:
            issues.append(_error(f'Duplicate step id "{step.id}" detected.', step_id=step.id))
            continue
        seen.add(step.id)
        operation = step.action.operation if step.action else None
        form = step.action.form if step.action else None
        if step.type == StepType.AUTOMATION and operation is None:
            issues.append(_warning(f'Automation step "{step.id}" does not declare an operation.', step_id=step.id))
        if step.type == StepType.HUMAN and form is None:
            issues.append(_warning(f'Human step "{step.id}" does not declare a form.', step_id=step.id))
        if step.guard is not None and not step.guard.value.strip():
            issues.append(_error(f'Guard for step "{step.id}" must have a non-empty value.', step_id=step.id))
        if (
            operation is not None
            and operations is not None
            and operations.get(operation.key, operation.version) is None
        ):
            issues.append(
                _error(f'Step "{step.id}" references unknown operation {operation.identifier}.', step_id=step.id)
            )
        if form is not None and forms is not None and forms.get(form.key, form.version) is None:
            issues.append(_error(f'Step "{step.id}" references unknown form {form.identifier}.', step_id=step.id))

    entry_step_id = definition.resolve_entry_step_id()
    if entry_step_id not in seen:
        issues.append(_error(f'Entry step "{entry_step_id}" is not defined in steps.'))

    for transition in definition.transitions:
        if transition.source not in seen:
            issues.append(_error(f'Transition refers to unknown "from" step "{transition.source}".'))
        elif transition.target not in seen:
            issues.append(_error(f'Transition refers to unknown "to" step "{transition.target}".'))
        elif transition.condition is not None and not transition.condition.strip():
            issues.append(
                _error(f"Transition {transition.source} -> {transition.target} declares an empty condition.")
            )

    graph = WorkflowGraph(definition)
    roots = graph.roots()
    if len(roots) > 1:
        issues.append(_warning(f"Workflow has multiple potential entry steps: {', '.join(roots)}"))

    if entry_step_id in seen:
        reachable = graph.reachable_from(entry_step_id)
        issues.extend(
            _error(f'Step "{step_id}" is unreachable from entry step "{entry_step_id}".', step_id=step_id)
            for step_id in seen
            if step_id not in reachable
        )

    cycle = graph.find_cycle()
    if cycle is not None:
        issues.append(_error(f'Workflow contains a cycle involving step "{cycle}".', step_id=cycle))

    return issues


def assert_workflow_spec_valid(
    spec: WorkflowSpec,
    operations: Registry[Any] | None = None,
    forms: Registry[Any] | None = None,
) -> None:
    """Validate a workflow and raise when any error is found.

    Raises:
        WorkflowValidationError: If validation reports an error.
    """
    issues = validate_workflow_spec(spec, operations=operations, forms=forms)
    if _errors(issues):
        msg = f"Workflow {spec.meta.identifier} is invalid"
        raise WorkflowValidationError(msg, issues)


def validate_workflow_consistency(
    workflows: Iterable[WorkflowSpec],
    operations: Registry[Any] | None = None,
    forms: Registry[Any] | None = None,
    capabilities: Registry[Any] | None = None,
) -> WorkflowValidationResult:
    """Validate every workflow against the other registries.

    Args:
        workflows: Workflows to check, e.g. a :class:`WorkflowRegistry`.
        operations: Operation registry for step and compensation references.
        forms: Form registry for step references.
        capabilities: Capability registry for required capabilities.

    Returns:
        The combined result; messages are prefixed with the workflow identifier.
    """
    issues: list[WorkflowValidationIssue] = []
    for workflow in workflows:
        prefix = f"[{workflow.meta.identifier}]"
        issues.extend(
            WorkflowValidationIssue(issue.level, f"{prefix} {issue.message}", issue.context)
            for issue in validate_workflow_spec(workflow, operations=operations, forms=forms)
        )
        definition = workflow.definition

        if capabilities is not None:
            for step in definition.steps:
                for capability in step.required_capabilities:
                    if capabilities.get(capability.key, capability.version) is None:
                        issues.append(
                            _error(
                                f'{prefix} Step "{step.id}" references unknown capability "{capability.identifier}"',
                                step_id=step.id,
                                capability=capability.identifier,
                            )
                        )

        if definition.compensation is not None and operations is not None:
            for handler in definition.compensation.steps:
                if operations.get(handler.operation.key, handler.operation.version) is None:
                    issues.append(
                        _error(
                            f'{prefix} Compensation for step "{handler.step_id}" references unknown operation '
                            f'"{handler.operation.identifier}"',
                            step_id=handler.step_id,
                        )
                    )

        if definition.sla is not None:
            step_ids = {step.id for step in definition.steps}
            issues.extend(
                _warning(f'{prefix} SLA references unknown step "{step_id}"', step_id=step_id)
                for step_id in definition.sla.step_duration_ms
                if step_id not in step_ids
            )

    return WorkflowValidationResult.from_issues(issues)


def assert_workflow_consistency(
    workflows: Iterable[WorkflowSpec],
    operations: Registry[Any] | None = None,
    forms: Registry[Any] | None = None,
    capabilities: Registry[Any] | None = None,
) -> None:
    """Raise when :func:`validate_workflow_consistency` reports an error.

    Raises:
        WorkflowValidationError: If any workflow is inconsistent.
    """
    result = validate_workflow_consistency(workflows, operations=operations, forms=forms, capabilities=capabilities)
    if not result.valid:
        msg = "Workflow consistency check failed"
        raise WorkflowValidationError(msg, result.issues)


def validate_sla_config(spec: WorkflowSpec) -> list[WorkflowValidationIssue]:
    """Check that SLA durations are positive and add up."""
    sla = spec.definition.sla
    if sla is None:
        return []

    issues: list[WorkflowValidationIssue] = []
    if sla.total_duration_ms is not None and sla.total_duration_ms <= 0:
        issues.append(_error("SLA total_duration_ms must be positive", total_duration_ms=sla.total_duration_ms))
    for step_id, duration in sla.step_duration_ms.items():
        if duration <= 0:
            issues.append(
                _error(f'SLA step_duration_ms for "{step_id}" must be positive', step_id=step_id, duration=duration)
            )

    step_sum = sum(sla.step_duration_ms.values())
    if sla.total_duration_ms and step_sum > sla.total_duration_ms:
        issues.append(
            _warning(
                f"Sum of step durations ({step_sum}ms) exceeds total duration ({sla.total_duration_ms}ms)",
                step_durations_sum=step_sum,
                total_duration_ms=sla.total_duration_ms,
            )
        )
    return issues


def validate_compensation(spec: WorkflowSpec) -> list[WorkflowValidationIssue]:
    """Check compensation handlers against the declared steps."""
    compensation = spec.definition.compensation
    if compensation is None:
        return []

    issues: list[WorkflowValidationIssue] = []
    step_ids = {step.id for step in spec.definition.steps}
    covered: set[str] = set()
    for handler in compensation.steps:
        if handler.step_id not in step_ids:
            issues.append(_error(f'Compensation references unknown step "{handler.step_id}"', step_id=handler.step_id))
        if handler.step_id in covered:
            issues.append(
                _warning(f'Multiple compensation handlers for step "{handler.step_id}"', step_id=handler.step_id)
            )
        covered.add(handler.step_id)
        if not handler.operation.key or handler.operation.version is None:
            issues.append(
                _error(
                    f'Compensation for step "{handler.step_id}" must specify operation with key and version',
                    step_id=handler.step_id,
                )
            )

    issues.extend(
        _warning(f'Automation step "{step.id}" has no compensation handler', step_id=step.id)
        for step in spec.definition.steps
        if step.type == StepType.AUTOMATION and step.id not in covered
    )
    return issues


def validate_retry_config(spec: WorkflowSpec) -> list[WorkflowValidationIssue]:
    """Check declared retry policies."""
    issues: list[WorkflowValidationIssue] = []
    for step in spec.definition.steps:
        retry = step.retry
        if retry is None:
            continue
        if retry.max_attempts <= 0:
            issues.append(
                _error(
                    f'Step "{step.id}" retry max_attempts must be positive',
                    step_id=step.id,
                    max_attempts=retry.max_attempts,
                )
            )
        if retry.delay_ms <= 0:
            issues.append(
                _error(f'Step "{step.id}" retry delay_ms must be positive', step_id=step.id, delay_ms=retry.delay_ms)
            )
        if retry.max_delay_ms is not None and retry.max_delay_ms < retry.delay_ms:
            issues.append(
                _warning(
                    f'Step "{step.id}" retry max_delay_ms ({retry.max_delay_ms}) '
                    f"is less than delay_ms ({retry.delay_ms})",
                    step_id=step.id,
                )
            )
    return issues


def validate_workflow_comprehensive(
    spec: WorkflowSpec,
    operations: Registry[Any] | None = None,
    forms: Registry[Any] | None = None,
) -> WorkflowValidationResult:
    """Run structural, SLA, compensation and retry validation together."""
    issues = [
        *validate_workflow_spec(spec, operations=operations, forms=forms),
        *validate_sla_config(spec),
        *validate_compensation(spec),
        *validate_retry_config(spec),
    ]
    return WorkflowValidationResult.from_issues(issues)

"""Tests for workflow spec validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from litestar_blueprints.core.refs import SpecRef
from litestar_blueprints.core.types import GuardType, IssueSeverity, StepType
from litestar_blueprints.exceptions import WorkflowValidationError
from litestar_blueprints.workflow.spec import (
    CompensationConfig,
    CompensationStep,
    GuardCondition,
    RetryPolicy,
    SlaConfig,
    Step,
    Transition,
    WorkflowRegistry,
)
from litestar_blueprints.workflow.validation import (
    assert_workflow_consistency,
    assert_workflow_spec_valid,
    validate_compensation,
    validate_retry_config,
    validate_sla_config,
    validate_workflow_comprehensive,
    validate_workflow_consistency,
    validate_workflow_spec,
)
from tests.conftest import automation, human, make_workflow

if TYPE_CHECKING:
    from litestar_blueprints.workflow.spec import WorkflowSpec
    from litestar_blueprints.workflow.validation import WorkflowValidationIssue


def _messages(issues: list[WorkflowValidationIssue], level: IssueSeverity | None = None) -> list[str]:
    return [issue.message for issue in issues if level is None or issue.level == level]


@pytest.mark.unit
class TestValidateWorkflowSpec:
    """Tests for structural validation."""

    def test_valid_workflow_has_no_issues(self, approval_workflow: WorkflowSpec) -> None:
        assert validate_workflow_spec(approval_workflow) == []
        assert_workflow_spec_valid(approval_workflow)

    def test_empty_workflow(self) -> None:
        issues = validate_workflow_spec(make_workflow("empty", []))

        assert _messages(issues) == ["Workflow must declare at least one step."]

    def test_duplicate_step_ids(self) -> None:
        spec = make_workflow("dup", [automation("a"), automation("a")])

        assert 'Duplicate step id "a" detected.' in _messages(validate_workflow_spec(spec), IssueSeverity.ERROR)

    def test_missing_operation_and_form_are_warnings(self) -> None:
        spec = make_workflow(
            "bare",
            [Step(id="a", type=StepType.AUTOMATION), Step(id="b", type=StepType.HUMAN)],
            [Transition(source="a", target="b")],
        )

        warnings = _messages(validate_workflow_spec(spec), IssueSeverity.WARNING)

        assert 'Automation step "a" does not declare an operation.' in warnings
        assert 'Human step "b" does not declare a form.' in warnings

    def test_empty_guard_value(self) -> None:
        spec = make_workflow("guarded", [human("a", guard=GuardCondition(GuardType.EXPRESSION, "  "))])

        assert 'Guard for step "a" must have a non-empty value.' in _messages(validate_workflow_spec(spec))

    def test_unknown_entry_step(self) -> None:
        spec = make_workflow("entry", [automation("a")], entry_step_id="zzz")

        assert 'Entry step "zzz" is not defined in steps.' in _messages(validate_workflow_spec(spec))

    def test_unknown_transition_endpoints(self) -> None:
        spec = make_workflow(
            "edges",
            [automation("a"), automation("b")],
            [
                Transition(source="a", target="b"),
                Transition(source="x", target="a"),
                Transition(source="a", target="y"),
                Transition(source="a", target="b", condition=" "),
            ],
        )

        errors = _messages(validate_workflow_spec(spec), IssueSeverity.ERROR)

        assert 'Transition refers to unknown "from" step "x".' in errors
        assert 'Transition refers to unknown "to" step "y".' in errors
        assert "Transition a -> b declares an empty condition." in errors

    def test_unreachable_step_and_multiple_roots(self) -> None:
        spec = make_workflow("islands", [automation("a"), automation("b")])

        issues = validate_workflow_spec(spec)

        assert 'Step "b" is unreachable from entry step "a".' in _messages(issues, IssueSeverity.ERROR)
        assert "Workflow has multiple potential entry steps: a, b" in _messages(issues, IssueSeverity.WARNING)

    def test_cycle_is_an_error(self) -> None:
        spec = make_workflow(
            "loop",
            [automation("a"), automation("b")],
            [Transition(source="a", target="b"), Transition(source="b", target="a")],
        )

        errors = _messages(validate_workflow_spec(spec), IssueSeverity.ERROR)

        assert any(message.startswith("Workflow contains a cycle") for message in errors)
        with pytest.raises(WorkflowValidationError, match=r"loop\.v1 is invalid") as exc_info:
            assert_workflow_spec_valid(spec)
        assert exc_info.value.issues

    def test_unknown_operation_and_form_references(self, approval_workflow: WorkflowSpec) -> None:
        operations = WorkflowRegistry()
        forms = WorkflowRegistry()

        errors = _messages(validate_workflow_spec(approval_workflow, operations=operations, forms=forms))

        assert 'Step "start" references unknown operation ops.start.v1.' in errors
        assert 'Step "review" references unknown form forms.review.v1.' in errors


@pytest.mark.unit
class TestWorkflowConsistency:
    """Tests for cross-registry consistency checks."""

    def test_unknown_capability_and_compensation_operation(self) -> None:
        spec = make_workflow(
            "billing",
            [automation("charge", required_capabilities=[SpecRef("payments", 1)])],
            compensation=CompensationConfig(steps=[CompensationStep("charge", SpecRef("ops.refund", 1))]),
            sla=SlaConfig(step_duration_ms={"ghost": 1000}),
        )
        empty = WorkflowRegistry()

        result = validate_workflow_consistency([spec], operations=empty, capabilities=empty)

        assert not result.valid
        messages = _messages(result.issues)
        assert '[billing.v1] Step "charge" references unknown capability "payments.v1"' in messages
        assert '[billing.v1] Compensation for step "charge" references unknown operation "ops.refund.v1"' in messages
        assert '[billing.v1] SLA references unknown step "ghost"' in messages
        assert '[billing.v1] Step "charge" references unknown operation ops.charge.v1.' in messages
        with pytest.raises(WorkflowValidationError, match="consistency check failed"):
            assert_workflow_consistency([spec], operations=empty, capabilities=empty)

    def test_consistent_registry(self, workflow_registry: WorkflowRegistry) -> None:
        result = validate_workflow_consistency(workflow_registry)

        assert result.valid
        assert result.issues == []


@pytest.mark.unit
class TestSectionValidators:
    """Tests for the SLA, compensation and retry validators."""

    def test_sla_durations(self) -> None:
        spec = make_workflow(
            "sla",
            [automation("a"), automation("b")],
            [Transition(source="a", target="b")],
            sla=SlaConfig(total_duration_ms=1000, step_duration_ms={"a": 800, "b": 400}),
        )
        invalid = make_workflow(
            "sla", [automation("a")], sla=SlaConfig(total_duration_ms=0, step_duration_ms={"a": -1})
        )

        assert _messages(validate_sla_config(spec)) == [
            "Sum of step durations (1200ms) exceeds total duration (1000ms)"
        ]
        assert _messages(validate_sla_config(invalid), IssueSeverity.ERROR) == [
            "SLA total_duration_ms must be positive",
            'SLA step_duration_ms for "a" must be positive',
        ]

    def test_compensation(self) -> None:
        spec = make_workflow(
            "comp",
            [automation("a"), automation("b")],
            [Transition(source="a", target="b")],
            compensation=CompensationConfig(
                steps=[
                    CompensationStep("a", SpecRef("ops.undo_a", 1)),
                    CompensationStep("a", SpecRef("ops.undo_a", None)),
                    CompensationStep("zzz", SpecRef("ops.undo_z", 1)),
                ]
            ),
        )

        issues = validate_compensation(spec)

        assert _messages(issues, IssueSeverity.ERROR) == [
            'Compensation for step "a" must specify operation with key and version',
            'Compensation references unknown step "zzz"',
        ]
        assert _messages(issues, IssueSeverity.WARNING) == [
            'Multiple compensation handlers for step "a"',
            'Automation step "b" has no compensation handler',
        ]

    def test_retry(self) -> None:
        spec = make_workflow(
            "retry",
            [
                automation("a", retry=RetryPolicy(max_attempts=0, delay_ms=0)),
                automation("b", retry=RetryPolicy(max_attempts=3, delay_ms=500, max_delay_ms=100)),
            ],
            [Transition(source="a", target="b")],
        )

        issues = validate_retry_config(spec)

        assert _messages(issues, IssueSeverity.ERROR) == [
            'Step "a" retry max_attempts must be positive',
            'Step "a" retry delay_ms must be positive',
        ]
        assert _messages(issues, IssueSeverity.WARNING) == [
            'Step "b" retry max_delay_ms (100) is less than delay_ms (500)'
        ]

    def test_comprehensive_combines_everything(self, approval_workflow: WorkflowSpec) -> None:
        result = validate_workflow_comprehensive(approval_workflow)

        # no compensation section, so only structural checks apply
        assert result.valid
        assert result.issues == []

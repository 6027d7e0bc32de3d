"""Workflow specs, state and execution.

This module provides the workflow data model, structural validation, the
state stores, the step-at-a-time :class:`WorkflowRunner` and the
:class:`SLAMonitor`.
"""

from __future__ import annotations

from litestar_blueprints.workflow.graph import WorkflowGraph
from litestar_blueprints.workflow.runner import (
    GuardContext,
    OperationExecutorContext,
    PreFlightIssue,
    PreFlightResult,
    WorkflowRunner,
)
from litestar_blueprints.workflow.sla import SLAMonitor
from litestar_blueprints.workflow.spec import (
    CompensationConfig,
    CompensationStep,
    GuardCondition,
    RetryPolicy,
    SlaConfig,
    Step,
    StepAction,
    Transition,
    WorkflowDefinition,
    WorkflowRegistry,
    WorkflowSpec,
)
from litestar_blueprints.workflow.state import StepExecution, WorkflowState
from litestar_blueprints.workflow.store import InMemoryStateStore
from litestar_blueprints.workflow.validation import (
    WorkflowValidationIssue,
    WorkflowValidationResult,
    assert_workflow_consistency,
    assert_workflow_spec_valid,
    validate_workflow_comprehensive,
    validate_workflow_consistency,
    validate_workflow_spec,
)

__all__ = [
    "CompensationConfig",
    "CompensationStep",
    "GuardCondition",
    "GuardContext",
    "InMemoryStateStore",
    "OperationExecutorContext",
    "PreFlightIssue",
    "PreFlightResult",
    "RetryPolicy",
    "SLAMonitor",
    "SlaConfig",
    "Step",
    "StepAction",
    "StepExecution",
    "Transition",
    "WorkflowDefinition",
    "WorkflowGraph",
    "WorkflowRegistry",
    "WorkflowRunner",
    "WorkflowSpec",
    "WorkflowState",
    "WorkflowValidationIssue",
    "WorkflowValidationResult",
    "assert_workflow_consistency",
    "assert_workflow_spec_valid",
    "validate_workflow_comprehensive",
    "validate_workflow_consistency",
    "validate_workflow_spec",
]

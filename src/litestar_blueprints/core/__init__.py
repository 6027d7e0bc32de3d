"""Core building blocks shared by the workflow, policy and configuration layers.

This module exports the enums and sentinels, spec references, the versioned
registry, the expression evaluator, lifecycle events and collaborator
protocols.
"""

from __future__ import annotations

from litestar_blueprints.core.events import (
    SLA_BREACH,
    STEP_COMPLETED,
    STEP_FAILED,
    WORKFLOW_CANCELLED,
    WORKFLOW_STARTED,
    SlaBreach,
    StepCompleted,
    StepFailed,
    WorkflowCancelled,
    WorkflowEvent,
    WorkflowStarted,
)
from litestar_blueprints.core.expression import evaluate_expression, is_truthy, resolve_path
from litestar_blueprints.core.protocols import (
    AppConfigProvider,
    CapabilityEnforcer,
    EventEmitter,
    GuardEvaluator,
    IntegrationTelemetryEmitter,
    OperationExecutor,
    Registry,
    SecretProvider,
    SecretValue,
    StateStore,
    StateUpdater,
    TranslationResolver,
)
from litestar_blueprints.core.refs import CapabilityRef, FormRef, OpRef, PolicyRef, SpecMeta, SpecRef
from litestar_blueprints.core.registry import SpecRegistry
from litestar_blueprints.core.types import (
    UNDEFINED,
    UNSET,
    ConnectionStatus,
    GuardType,
    IssueSeverity,
    PolicyEffect,
    StepStatus,
    StepType,
    WorkflowStatus,
)

__all__ = [
    "SLA_BREACH",
    "STEP_COMPLETED",
    "STEP_FAILED",
    "UNDEFINED",
    "UNSET",
    "WORKFLOW_CANCELLED",
    "WORKFLOW_STARTED",
    "AppConfigProvider",
    "CapabilityEnforcer",
    "CapabilityRef",
    "ConnectionStatus",
    "EventEmitter",
    "FormRef",
    "GuardEvaluator",
    "GuardType",
    "IntegrationTelemetryEmitter",
    "IssueSeverity",
    "OpRef",
    "OperationExecutor",
    "PolicyEffect",
    "PolicyRef",
    "Registry",
    "SecretProvider",
    "SecretValue",
    "SlaBreach",
    "SpecMeta",
    "SpecRef",
    "SpecRegistry",
    "StateStore",
    "StateUpdater",
    "StepCompleted",
    "StepFailed",
    "StepStatus",
    "StepType",
    "TranslationResolver",
    "WorkflowCancelled",
    "WorkflowEvent",
    "WorkflowStarted",
    "WorkflowStatus",
    "evaluate_expression",
    "is_truthy",
    "resolve_path",
]

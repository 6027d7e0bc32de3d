"""Domain events for the workflow lifecycle.

This module defines the events emitted by the runner and the SLA monitor.
Events are delivered to an ``EventEmitter`` callable as ``(name, payload)``
pairs, where ``payload`` is the event's fields as a plain dict.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

__all__ = [
    "SLA_BREACH",
    "STEP_COMPLETED",
    "STEP_FAILED",
    "WORKFLOW_CANCELLED",
    "WORKFLOW_STARTED",
    "SlaBreach",
    "StepCompleted",
    "StepFailed",
    "WorkflowCancelled",
    "WorkflowEvent",
    "WorkflowStarted",
]

WORKFLOW_STARTED = "workflow.started"
STEP_COMPLETED = "workflow.step_completed"
STEP_FAILED = "workflow.step_failed"
WORKFLOW_CANCELLED = "workflow.cancelled"
SLA_BREACH = "workflow.sla_breach"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WorkflowEvent:
    """Base class for all workflow events.

    Attributes:
        workflow_id: Identifier of the workflow instance.
        workflow_name: Key of the workflow spec.
        timestamp: When the event occurred.
    """

    name: ClassVar[str] = "workflow.event"

    workflow_id: str
    workflow_name: str
    timestamp: datetime = field(default_factory=_utcnow, kw_only=True)

    def to_payload(self) -> dict[str, Any]:
        """Return the event fields as a payload dict."""
        return asdict(self)


@dataclass(frozen=True)
class WorkflowStarted(WorkflowEvent):
    """Emitted once a new workflow instance has been persisted.

    Attributes:
        workflow_version: Version of the workflow spec.
        current_step: The entry step.
    """

    name: ClassVar[str] = WORKFLOW_STARTED

    workflow_version: int
    current_step: str


@dataclass(frozen=True)
class StepCompleted(WorkflowEvent):
    """Emitted after a step executed and the new state was persisted.

    Attributes:
        step_id: The step that completed.
        status: The workflow status after the step.
    """

    name: ClassVar[str] = STEP_COMPLETED

    step_id: str
    status: str


@dataclass(frozen=True)
class StepFailed(WorkflowEvent):
    """Emitted after a step raised and the failure was persisted.

    Attributes:
        step_id: The step that failed.
        error: The error message.
    """

    name: ClassVar[str] = STEP_FAILED

    step_id: str
    error: str


@dataclass(frozen=True)
class WorkflowCancelled(WorkflowEvent):
    """Emitted when a running workflow is cancelled."""

    name: ClassVar[str] = WORKFLOW_CANCELLED


@dataclass(frozen=True)
class SlaBreach(WorkflowEvent):
    """Emitted by the SLA monitor for each violation found.

    Attributes:
        kind: ``total`` for the workflow budget, ``step`` for a step budget.
        step_id: The step in breach, for step breaches.
        elapsed_ms: Time spent so far.
        limit_ms: The configured budget.
    """

    name: ClassVar[str] = SLA_BREACH

    kind: str
    elapsed_ms: int
    limit_ms: int
    step_id: str | None = None

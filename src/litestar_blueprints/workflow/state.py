"""Live workflow instance state.

This module provides the :class:`WorkflowState` dataclass owned by the runner
and persisted by a state store, plus the append-only :class:`StepExecution`
history records.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from litestar_blueprints.core.types import StepStatus, WorkflowStatus

__all__ = ["StepExecution", "WorkflowState"]


@dataclass
class StepExecution:
    """Record of a single step execution within a workflow.

    Attributes:
        step_id: The executed step.
        started_at: When execution began.
        status: Running, completed or failed.
        completed_at: When execution finished.
        input: Input passed to the step.
        output: Output produced by the step.
        error: Error message if execution failed.
    """

    step_id: str
    started_at: datetime
    status: StepStatus = StepStatus.RUNNING
    completed_at: datetime | None = None
    input: Any = None
    output: Any = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {
            "step_id": self.step_id,
            "started_at": self.started_at.isoformat(),
            "status": str(self.status),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "input": self.input,
            "output": self.output,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> StepExecution:
        """Rebuild an execution record from :meth:`to_dict` output."""
        completed_at = payload.get("completed_at")
        return cls(
            step_id=payload["step_id"],
            started_at=datetime.fromisoformat(payload["started_at"]),
            status=StepStatus(payload["status"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            input=payload.get("input"),
            output=payload.get("output"),
            error=payload.get("error"),
        )


@dataclass
class WorkflowState:
    """The live state of one workflow instance.

    ``data`` accumulates the merged input and output of every executed step,
    so later steps see what earlier steps produced.

    Attributes:
        workflow_id: Opaque generated identifier.
        workflow_name: Key of the workflow spec.
        workflow_version: Version of the workflow spec.
        current_step: Step that the next ``execute_step`` call will run.
        status: Lifecycle status.
        created_at: When the instance was started.
        updated_at: When the instance was last persisted.
        data: Accumulated workflow data.
        history: Append-only step execution records.
    """

    workflow_id: str
    workflow_name: str
    workflow_version: int
    current_step: str
    status: WorkflowStatus
    created_at: datetime
    updated_at: datetime
    data: dict[str, Any] = field(default_factory=dict)
    history: list[StepExecution] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        """Whether the instance rejects further step executions."""
        return self.status.is_terminal

    def current_execution(self) -> StepExecution | None:
        """Return the most recent execution of the current step, if still running."""
        for execution in reversed(self.history):
            if execution.step_id == self.current_step:
                return execution if execution.status == StepStatus.RUNNING else None
        return None

    def step_entered_at(self) -> datetime:
        """Return when the instance started waiting on its current step.

        A running execution record wins; otherwise the step was entered when
        the previous execution completed, or at creation for the entry step.
        """
        running = self.current_execution()
        if running is not None:
            return running.started_at
        if self.history:
            last = self.history[-1]
            return last.completed_at or last.started_at
        return self.created_at

    def copy(self) -> WorkflowState:
        """Return a deep copy that can be modified without touching this state."""
        return replace(self, data=copy.deepcopy(self.data), history=copy.deepcopy(self.history))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-friendly dict."""
        return {
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "workflow_version": self.workflow_version,
            "current_step": self.current_step,
            "status": str(self.status),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "data": self.data,
            "history": [execution.to_dict() for execution in self.history],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> WorkflowState:
        """Rebuild a state from :meth:`to_dict` output."""
        return cls(
            workflow_id=payload["workflow_id"],
            workflow_name=payload["workflow_name"],
            workflow_version=int(payload["workflow_version"]),
            current_step=payload["current_step"],
            status=WorkflowStatus(payload["status"]),
            created_at=datetime.fromisoformat(payload["created_at"]),
            updated_at=datetime.fromisoformat(payload["updated_at"]),
            data=dict(payload.get("data") or {}),
            history=[StepExecution.from_dict(item) for item in payload.get("history") or []],
        )

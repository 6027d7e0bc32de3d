"""Core type definitions for litestar-blueprints.

This module defines the enums, sentinels, and type aliases shared by the
workflow runner, the policy engine, and the configuration resolver.
"""

from __future__ import annotations

from enum import Enum, StrEnum, auto
from typing import Any, TypeAlias, TypeVar

__all__ = [
    "UNDEFINED",
    "UNSET",
    "ConnectionStatus",
    "Data",
    "GuardType",
    "IssueSeverity",
    "PolicyEffect",
    "SpecT",
    "StepStatus",
    "StepType",
    "Undefined",
    "Unset",
    "WorkflowStatus",
]


class StepType(StrEnum):
    """Classification of steps within a workflow.

    Attributes:
        HUMAN: Requires user interaction; the submitted input is echoed as output.
        AUTOMATION: Executed by the injected operation executor.
        DECISION: Branching point; the input is echoed as output.
    """

    HUMAN = auto()
    AUTOMATION = auto()
    DECISION = auto()


class StepStatus(StrEnum):
    """Execution status of a single step execution record.

    Attributes:
        RUNNING: The step is currently executing.
        COMPLETED: The step completed successfully.
        FAILED: The step raised an error.
    """

    RUNNING = auto()
    COMPLETED = auto()
    FAILED = auto()


class WorkflowStatus(StrEnum):
    """Overall status of a workflow instance.

    ``PAUSED`` exists in the data model for external orchestration; the runner
    never moves an instance into or out of it.

    Attributes:
        RUNNING: The workflow is accepting step executions.
        PAUSED: Reserved for external orchestration.
        COMPLETED: The workflow finished successfully.
        FAILED: A step raised an error.
        CANCELLED: The workflow was cancelled.
    """

    RUNNING = auto()
    PAUSED = auto()
    COMPLETED = auto()
    FAILED = auto()
    CANCELLED = auto()

    @property
    def is_terminal(self) -> bool:
        """Whether the status rejects further step executions."""
        return self in {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}


class GuardType(StrEnum):
    """How a step guard is evaluated."""

    POLICY = auto()
    EXPRESSION = auto()


class ConnectionStatus(StrEnum):
    """Health of a tenant integration connection."""

    CONNECTED = auto()
    DISCONNECTED = auto()
    ERROR = auto()
    UNKNOWN = auto()


class IssueSeverity(StrEnum):
    """Severity shared by pre-flight and validation issues."""

    ERROR = auto()
    WARNING = auto()
    INFO = auto()


class PolicyEffect(StrEnum):
    """Effect of a policy rule or decision."""

    ALLOW = auto()
    DENY = auto()


class Undefined(Enum):
    """Marker for values that could not be resolved (distinct from ``None``)."""

    UNDEFINED = auto()

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


class Unset(Enum):
    """Marker for override fields that were not provided at all."""

    UNSET = auto()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNDEFINED = Undefined.UNDEFINED
"""An unresolved path or the ``undefined`` literal in expressions."""

UNSET = Unset.UNSET
"""An override field that leaves the blueprint value in place."""

Data: TypeAlias = dict[str, Any]
"""Type alias for free-form key/value payloads such as workflow data."""

SpecT = TypeVar("SpecT")
"""Type variable for specs stored in a registry."""

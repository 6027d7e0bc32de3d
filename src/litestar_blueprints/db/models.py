"""SQLAlchemy models for workflow state persistence.

This module defines the table backing :class:`~litestar_blueprints.db.store.SQLAlchemyStateStore`:
- WorkflowStateModel: One row per workflow instance, with a revision counter
  for optimistic concurrency
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from advanced_alchemy.base import UUIDAuditBase
from advanced_alchemy.types import DateTimeUTC
from sqlalchemy import JSON, Enum, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from litestar_blueprints.core.types import WorkflowStatus

__all__ = ["JSONType", "WorkflowStateModel"]


# Cross-database JSON type: uses JSONB for PostgreSQL, JSON for others (SQLite, MySQL, etc.)
JSONType = JSON().with_variant(JSONB, "postgresql")


class WorkflowStateModel(UUIDAuditBase):
    """Persisted :class:`~litestar_blueprints.workflow.state.WorkflowState`.

    Attributes:
        workflow_id: The runner-generated instance id.
        workflow_name: Key of the workflow spec.
        workflow_version: Version of the workflow spec.
        status: Lifecycle status.
        current_step: Step the next execution will run.
        data: Accumulated workflow data.
        history: Serialized step execution records.
        started_at: When the instance was started.
        state_updated_at: When the runner last changed the instance.
        revision: Incremented on every update; compared on write.
    """

    __tablename__ = "workflow_states"
    __table_args__ = (
        Index("ix_workflow_states_workflow_id", "workflow_id", unique=True),
        Index("ix_workflow_states_status", "status"),
        Index("ix_workflow_states_workflow_name", "workflow_name"),
    )

    workflow_id: Mapped[str] = mapped_column(String(64))
    workflow_name: Mapped[str] = mapped_column(String(255))
    workflow_version: Mapped[int] = mapped_column(Integer)
    status: Mapped[WorkflowStatus] = mapped_column(
        Enum(WorkflowStatus, native_enum=False, length=50),
        default=WorkflowStatus.RUNNING,
    )
    current_step: Mapped[str] = mapped_column(String(255))
    data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    history: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list)
    started_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    state_updated_at: Mapped[datetime] = mapped_column(DateTimeUTC(timezone=True))
    revision: Mapped[int] = mapped_column(Integer, default=1)

"""Repository for workflow state persistence.

Async repository over :class:`WorkflowStateModel` using advanced-alchemy's
repository pattern.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from advanced_alchemy.repository import SQLAlchemyAsyncRepository
from sqlalchemy import select

from litestar_blueprints.core.types import WorkflowStatus
from litestar_blueprints.db.models import WorkflowStateModel

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["WorkflowStateRepository"]


class WorkflowStateRepository(SQLAlchemyAsyncRepository[WorkflowStateModel]):
    """Repository for workflow state rows."""

    model_type = WorkflowStateModel

    async def get_by_workflow_id(self, workflow_id: str) -> WorkflowStateModel | None:
        """Get the row of a workflow instance.

        Args:
            workflow_id: The runner-generated instance id.

        Returns:
            The row or None if not found.
        """
        stmt = (
            select(WorkflowStateModel)
            .where(WorkflowStateModel.workflow_id == workflow_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_revision(self, workflow_id: str) -> int | None:
        """Read the current revision straight from the database."""
        stmt = select(WorkflowStateModel.revision).where(WorkflowStateModel.workflow_id == workflow_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_active(self, workflow_name: str | None = None) -> Sequence[WorkflowStateModel]:
        """List running and paused instances, oldest first.

        Args:
            workflow_name: Restrict to one workflow spec key.

        Returns:
            Matching rows; the SLA monitor polls these.
        """
        stmt = select(WorkflowStateModel).where(
            WorkflowStateModel.status.in_([WorkflowStatus.RUNNING, WorkflowStatus.PAUSED])
        )
        if workflow_name:
            stmt = stmt.where(WorkflowStateModel.workflow_name == workflow_name)
        stmt = stmt.order_by(WorkflowStateModel.started_at)
        result = await self.session.execute(stmt)
        return result.scalars().all()

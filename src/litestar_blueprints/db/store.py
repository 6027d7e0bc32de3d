"""SQLAlchemy-backed workflow state store.

:class:`SQLAlchemyStateStore` implements the
:class:`~litestar_blueprints.core.protocols.StateStore` protocol on top of a
single ``workflow_states`` table. Every update is a compare-and-swap on the
row's ``revision`` column: a writer that read revision ``n`` only succeeds if
the row still holds ``n``, and bumps it to ``n + 1``.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update

from litestar_blueprints.db.models import WorkflowStateModel
from litestar_blueprints.db.repositories import WorkflowStateRepository
from litestar_blueprints.exceptions import StateConflictError, WorkflowStateExistsError, WorkflowStateNotFoundError
from litestar_blueprints.workflow.state import StepExecution, WorkflowState

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from litestar_blueprints.core.protocols import StateUpdater

__all__ = ["SQLAlchemyStateStore"]

logger = structlog.get_logger(__name__)


class SQLAlchemyStateStore:
    """Durable state store with optimistic concurrency.

    Attributes:
        session: SQLAlchemy async session for database operations.

    Example:
        >>> async with session_factory() as session:
        ...     store = SQLAlchemyStateStore(session)
        ...     runner = WorkflowRunner(registry=registry, state_store=store, op_executor=execute)
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the store.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session
        self._repo = WorkflowStateRepository(session=session)

    async def create(self, state: WorkflowState) -> None:
        """Persist a new state at revision 1.

        Raises:
            WorkflowStateExistsError: If the workflow id is already stored.
        """
        if await self._repo.get_by_workflow_id(state.workflow_id) is not None:
            raise WorkflowStateExistsError(state.workflow_id)

        model = WorkflowStateModel(
            workflow_id=state.workflow_id,
            workflow_name=state.workflow_name,
            workflow_version=state.workflow_version,
            status=state.status,
            current_step=state.current_step,
            data=copy.deepcopy(state.data),
            history=[execution.to_dict() for execution in state.history],
            started_at=state.created_at,
            state_updated_at=state.updated_at,
            revision=1,
        )
        await self._repo.add(model, auto_commit=True)

    async def get(self, workflow_id: str) -> WorkflowState | None:
        """Load a state, or None when unknown."""
        model = await self._repo.get_by_workflow_id(workflow_id)
        return _to_state(model) if model is not None else None

    async def get_revision(self, workflow_id: str) -> int | None:
        """Return the stored revision, or None when unknown."""
        return await self._repo.get_revision(workflow_id)

    async def update(
        self,
        workflow_id: str,
        updater: StateUpdater,
        expected_revision: int | None = None,
    ) -> WorkflowState:
        """Replace a state with ``updater(current)``.

        Args:
            workflow_id: The instance to update.
            updater: Receives the current state and returns the replacement.
            expected_revision: Revision the caller last observed. When omitted,
                the revision read inside this call is used.

        Returns:
            The stored replacement state.

        Raises:
            WorkflowStateNotFoundError: If the workflow id is unknown.
            StateConflictError: If the row changed since it was read.
        """
        model = await self._repo.get_by_workflow_id(workflow_id)
        if model is None:
            raise WorkflowStateNotFoundError(workflow_id)

        read_revision = model.revision
        if expected_revision is not None and expected_revision != read_revision:
            raise StateConflictError(workflow_id, expected_revision, read_revision)

        updated = updater(_to_state(model))
        stmt = (
            update(WorkflowStateModel)
            .where(
                WorkflowStateModel.workflow_id == workflow_id,
                WorkflowStateModel.revision == read_revision,
            )
            .values(
                status=updated.status,
                current_step=updated.current_step,
                data=updated.data,
                history=[execution.to_dict() for execution in updated.history],
                state_updated_at=updated.updated_at,
                revision=read_revision + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            await self.session.rollback()
            actual = await self._repo.get_revision(workflow_id)
            logger.warning("workflow.state_conflict", workflow_id=workflow_id, expected=read_revision, actual=actual)
            raise StateConflictError(workflow_id, read_revision, actual)

        await self.session.commit()
        return updated


def _to_state(model: WorkflowStateModel) -> WorkflowState:
    return WorkflowState(
        workflow_id=model.workflow_id,
        workflow_name=model.workflow_name,
        workflow_version=model.workflow_version,
        current_step=model.current_step,
        status=model.status,
        created_at=model.started_at,
        updated_at=model.state_updated_at,
        data=copy.deepcopy(model.data or {}),
        history=[StepExecution.from_dict(item) for item in model.history or []],
    )

"""Database persistence layer for litestar-blueprints.

This module provides the SQLAlchemy model, repository and state store for
persisting workflow instances with optimistic concurrency.

Requires the [db] extra:
    pip install litestar-blueprints[db]
"""

from __future__ import annotations

from litestar_blueprints.db.models import WorkflowStateModel
from litestar_blueprints.db.repositories import WorkflowStateRepository
from litestar_blueprints.db.store import SQLAlchemyStateStore

__all__ = [
    "SQLAlchemyStateStore",
    "WorkflowStateModel",
    "WorkflowStateRepository",
]

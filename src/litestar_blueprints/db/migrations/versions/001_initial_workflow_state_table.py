"""Initial workflow state table.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the workflow_states table."""
    op.create_table(
        "workflow_states",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("workflow_id", sa.String(length=64), nullable=False),
        sa.Column("workflow_name", sa.String(length=255), nullable=False),
        sa.Column("workflow_version", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("current_step", sa.String(length=255), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("history", sa.JSON(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("state_updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_workflow_states_workflow_id",
        "workflow_states",
        ["workflow_id"],
        unique=True,
    )
    op.create_index(
        "ix_workflow_states_status",
        "workflow_states",
        ["status"],
    )
    op.create_index(
        "ix_workflow_states_workflow_name",
        "workflow_states",
        ["workflow_name"],
    )


def downgrade() -> None:
    """Drop the workflow_states table."""
    op.drop_index("ix_workflow_states_workflow_name", table_name="workflow_states")
    op.drop_index("ix_workflow_states_status", table_name="workflow_states")
    op.drop_index("ix_workflow_states_workflow_id", table_name="workflow_states")
    op.drop_table("workflow_states")

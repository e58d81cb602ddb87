"""Add plan/workflow role flags to tasks."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.add_column(
            sa.Column("plan", sa.Boolean(), server_default=sa.text("0"), nullable=False),
        )
        batch_op.add_column(sa.Column("source_plan_id", sa.String(), nullable=True))
        batch_op.add_column(
            sa.Column("ephemeral", sa.Boolean(), server_default=sa.text("0"), nullable=False),
        )
    op.create_index("ix_tasks_plan", "tasks", ["plan"], unique=False)
    op.create_index("ix_tasks_source_plan_id", "tasks", ["source_plan_id"], unique=False)
    op.create_index("ix_tasks_ephemeral", "tasks", ["ephemeral"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_tasks_ephemeral", table_name="tasks")
    op.drop_index("ix_tasks_source_plan_id", table_name="tasks")
    op.drop_index("ix_tasks_plan", table_name="tasks")
    with op.batch_alter_table("tasks") as batch_op:
        batch_op.drop_column("ephemeral")
        batch_op.drop_column("source_plan_id")
        batch_op.drop_column("plan")

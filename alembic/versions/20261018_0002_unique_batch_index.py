"""Make batch numbering unique per task date."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0002"
down_revision = "20261001_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Renumber any duplicates left by overlapping ticks before enforcing uniqueness.
    op.execute(
        sa.text(
            """
            WITH ranked AS (
                SELECT
                    id,
                    ROW_NUMBER() OVER (
                        PARTITION BY task_date
                        ORDER BY batch_index ASC, id ASC
                    ) AS rn
                FROM task_batches
            )
            UPDATE task_batches
            SET batch_index = (SELECT rn FROM ranked WHERE ranked.id = task_batches.id)
            """,
        ),
    )
    op.drop_index("idx_task_batches_date_index", table_name="task_batches")
    op.create_index(
        "uq_task_batches_date_index",
        "task_batches",
        ["task_date", "batch_index"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index("uq_task_batches_date_index", table_name="task_batches")
    op.create_index("idx_task_batches_date_index", "task_batches", ["task_date", "batch_index"])

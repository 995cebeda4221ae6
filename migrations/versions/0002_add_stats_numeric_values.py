"""add numeric aggregates to periodic_task_stats

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19

actual_value: sum of completion_value over the window's check-ins
expected_value: target for the window (daily targets scaled by days)

Both nullable. Deployments still on 0001 keep working: the stats
aggregator detects the missing columns and only persists counts.
"""
from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "periodic_task_stats",
        sa.Column("expected_value", sa.Numeric(18, 4), nullable=True),
    )
    op.add_column(
        "periodic_task_stats",
        sa.Column("actual_value", sa.Numeric(18, 4), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("periodic_task_stats", "actual_value")
    op.drop_column("periodic_task_stats", "expected_value")

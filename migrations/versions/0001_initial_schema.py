"""initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

users, tasks, periodic_tasks, task_completions (ledger) and
periodic_task_stats with counts only. Numeric aggregates arrive in 0002.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- ENUM types ---
    task_status_enum = sa.Enum(
        "pending", "in_progress", "completed", "cancelled", "suspended",
        name="task_status_enum",
    )
    task_status_enum.create(op.get_bind(), checkfirst=True)

    task_priority_enum = sa.Enum("low", "medium", "high", name="task_priority_enum")
    task_priority_enum.create(op.get_bind(), checkfirst=True)

    task_type_enum = sa.Enum("urgent", "slow", "periodic", name="task_type_enum")
    task_type_enum.create(op.get_bind(), checkfirst=True)

    period_type_enum = sa.Enum(
        "daily", "weekly", "monthly", "custom", name="period_type_enum"
    )
    period_type_enum.create(op.get_bind(), checkfirst=True)

    completion_type_enum = sa.Enum("boolean", "numeric", name="completion_type_enum")
    completion_type_enum.create(op.get_bind(), checkfirst=True)

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(64), nullable=False),
        sa.Column("api_token", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_api_token", "users", ["api_token"], unique=True)

    # --- tasks ---
    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum(
            "pending", "in_progress", "completed", "cancelled", "suspended",
            name="task_status_enum", create_type=False,
        ), nullable=False),
        sa.Column("priority", sa.Enum(
            "low", "medium", "high", name="task_priority_enum", create_type=False
        ), nullable=False),
        sa.Column("quadrant", sa.Integer(), nullable=True),
        sa.Column("task_type", sa.Enum(
            "urgent", "slow", "periodic", name="task_type_enum", create_type=False
        ), nullable=False),
        sa.Column("deadline", sa.Date(), nullable=True),
        sa.Column("completion_percentage", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quadrant BETWEEN 1 AND 4", name="ck_tasks_quadrant"),
    )
    op.create_index("ix_tasks_id", "tasks", ["id"])
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])

    # --- periodic_tasks ---
    op.create_table(
        "periodic_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("period_type", sa.Enum(
            "daily", "weekly", "monthly", "custom", name="period_type_enum", create_type=False
        ), nullable=False),
        sa.Column("period_value", sa.Integer(), nullable=True),
        sa.Column("completion_type", sa.Enum(
            "boolean", "numeric", name="completion_type_enum", create_type=False
        ), nullable=False),
        sa.Column("target_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("unit", sa.String(32), nullable=True),
        sa.Column("last_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_due_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id"),
    )
    op.create_index("ix_periodic_tasks_id", "periodic_tasks", ["id"])
    op.create_index("ix_periodic_tasks_next_due_date", "periodic_tasks", ["next_due_date"])

    # --- task_completions (ledger) ---
    op.create_table(
        "task_completions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "periodic_task_id", sa.Integer(),
            sa.ForeignKey("periodic_tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completion_date", sa.Date(), nullable=True),
        sa.Column("completion_value", sa.Numeric(18, 4), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_task_completions_id", "task_completions", ["id"])
    op.create_index(
        "ix_task_completions_task_date", "task_completions", ["periodic_task_id", "completion_date"]
    )

    # --- periodic_task_stats ---
    op.create_table(
        "periodic_task_stats",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "periodic_task_id", sa.Integer(),
            sa.ForeignKey("periodic_tasks.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("expected_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("actual_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "periodic_task_id", "period_start", "period_end",
            name="uq_periodic_stats_task_window",
        ),
    )
    op.create_index("ix_periodic_task_stats_id", "periodic_task_stats", ["id"])
    op.create_index(
        "ix_periodic_task_stats_periodic_task_id", "periodic_task_stats", ["periodic_task_id"]
    )


def downgrade() -> None:
    op.drop_table("periodic_task_stats")
    op.drop_table("task_completions")
    op.drop_table("periodic_tasks")
    op.drop_table("tasks")
    op.drop_table("users")

    for name in (
        "completion_type_enum",
        "period_type_enum",
        "task_type_enum",
        "task_priority_enum",
        "task_status_enum",
    ):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)

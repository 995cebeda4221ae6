"""
PeriodicTaskStats — one aggregate row per (periodic task, window).

Derived projection of task_completions. Rows are created lazily the first
time a window is recomputed and updated in place afterwards; the unique
constraint makes a concurrent double insert fail instead of duplicating.

actual_value / expected_value were added by migration 0002; older
databases may not have them (see app/services/periodic_stats.py).
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import Integer, Numeric, DateTime, Date, ForeignKey, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class PeriodicTaskStats(Base):
    __tablename__ = "periodic_task_stats"
    __table_args__ = (
        UniqueConstraint(
            "periodic_task_id", "period_start", "period_end",
            name="uq_periodic_stats_task_window",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    periodic_task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("periodic_tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    expected_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actual_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expected_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    actual_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

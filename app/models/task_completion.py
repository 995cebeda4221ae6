"""
TaskCompletion — the check-in ledger and source of truth for statistics.

`completed_at` is when the check-in was recorded; `completion_date` is the
calendar day it counts toward (may be back-filled). Rows written before
completion_date existed fall back to the date part of completed_at.
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import Integer, Text, Numeric, DateTime, Date, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class TaskCompletion(Base):
    __tablename__ = "task_completions"
    __table_args__ = (
        Index("ix_task_completions_task_date", "periodic_task_id", "completion_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    periodic_task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("periodic_tasks.id", ondelete="CASCADE"), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    completion_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def effective_date(self) -> date | None:
        if self.completion_date is not None:
            return self.completion_date
        if self.completed_at is not None:
            return self.completed_at.date()
        return None

"""
PeriodicTask — recurrence definition for a Task with task_type=periodic.

One row per task (task_id is unique). `last_completed_at` and
`next_due_date` are denormalized projections maintained by the check-in
path in app/services/periodic.py.

period_type values:
  "daily" | "weekly" | "monthly" | "custom" (period_value days per cycle)
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import Integer, String, Numeric, DateTime, Date, Enum, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column
import enum

from app.db.base import Base


class PeriodType(str, enum.Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    custom = "custom"


class CompletionType(str, enum.Enum):
    boolean = "boolean"
    numeric = "numeric"


class PeriodicTask(Base):
    __tablename__ = "periodic_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    task_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    period_type: Mapped[str] = mapped_column(
        Enum(PeriodType, name="period_type_enum"), nullable=False
    )
    period_value: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
        comment="Days per cycle; only meaningful for period_type=custom",
    )
    completion_type: Mapped[str] = mapped_column(
        Enum(CompletionType, name="completion_type_enum"),
        nullable=False,
        default=CompletionType.boolean,
    )
    target_value: Mapped[Decimal | None] = mapped_column(Numeric(18, 4), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    next_due_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

"""
Periodic task request / response schemas.

Dates are ISO `YYYY-MM-DD` strings, timestamps ISO-8601, numeric values
are rendered as decimal strings.
"""
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.periodic_task import CompletionType, PeriodType


# ---------------------------------------------------------------------------
# Periodic task definition
# ---------------------------------------------------------------------------

class PeriodicTaskCreate(BaseModel):
    """Recurrence definition for an existing Task with task_type=periodic."""
    model_config = ConfigDict(use_enum_values=True)

    task_id: int = Field(gt=0)
    period_type: PeriodType = Field(examples=["daily", "weekly", "monthly", "custom"])
    period_value: Optional[int] = Field(
        default=None,
        ge=1,
        description="Days per cycle. Required when period_type is 'custom'.",
    )
    completion_type: CompletionType = CompletionType.boolean
    target_value: Optional[Decimal] = Field(
        default=None,
        gt=0,
        description="Per-day target for daily tasks, per-window total otherwise.",
    )
    unit: Optional[str] = Field(default=None, max_length=32, examples=["km", "pages"])


class PeriodicTaskUpdate(BaseModel):
    """Partial update: only fields present in the body are applied."""
    model_config = ConfigDict(use_enum_values=True)

    period_type: Optional[PeriodType] = None
    period_value: Optional[int] = Field(default=None, ge=1)
    completion_type: Optional[CompletionType] = None
    target_value: Optional[Decimal] = Field(default=None, gt=0)
    unit: Optional[str] = Field(default=None, max_length=32)


class PeriodicTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    period_type: str
    period_value: Optional[int] = None
    completion_type: str
    target_value: Optional[str] = None
    unit: Optional[str] = None
    last_completed_at: Optional[str] = None
    next_due_date: Optional[str] = None
    created_at: str


class PeriodicTaskDetailResponse(PeriodicTaskResponse):
    """Periodic definition joined with its owning task."""
    title: str
    description: Optional[str] = None
    priority: str
    quadrant: Optional[int] = None
    task_status: str


class PeriodicTaskListResponse(BaseModel):
    total: int
    items: list[PeriodicTaskDetailResponse]


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

class CheckInRequest(BaseModel):
    periodic_task_id: int = Field(gt=0)
    completion_date: Optional[date] = Field(
        default=None,
        description="Day the check-in counts toward. Defaults to today; may be in the past.",
        examples=["2026-03-10"],
    )
    completion_value: Optional[Decimal] = Field(
        default=None,
        description="Required for numeric tasks.",
    )
    notes: Optional[str] = Field(default=None, max_length=2_000)


class CompletionUpdate(BaseModel):
    """Partial edit of a check-in."""
    completion_value: Optional[Decimal] = None
    completion_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=2_000)


class CompletionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    periodic_task_id: int
    completed_at: str
    completion_date: Optional[str] = None
    effective_date: Optional[str] = Field(
        default=None,
        description="completion_date, or the day of completed_at when unset.",
    )
    completion_value: Optional[str] = None
    notes: Optional[str] = None


class CompletionListResponse(BaseModel):
    total: int
    items: list[CompletionResponse]


class AggregationStatus(BaseModel):
    """Whether the stats window refresh after a ledger change succeeded."""
    ok: bool
    reference_date: str
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    actual_count: Optional[int] = None
    error: Optional[str] = None


class CheckInResponse(BaseModel):
    completion: CompletionResponse
    next_due_date: str
    stats: AggregationStatus


class CompletionEditResponse(BaseModel):
    completion: CompletionResponse
    stats: list[AggregationStatus]


class CompletionDeleteResponse(BaseModel):
    message: str
    id: int
    stats: AggregationStatus


# ---------------------------------------------------------------------------
# Stats windows
# ---------------------------------------------------------------------------

class StatsWindowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    periodic_task_id: int
    period_start: str
    period_end: str
    expected_count: int
    actual_count: int
    expected_value: Optional[str] = Field(
        default=None,
        description="Null when the schema has no expected_value column.",
    )
    actual_value: Optional[str] = Field(
        default=None,
        description="Null when the schema has no actual_value column.",
    )
    created_at: Optional[str] = None


class StatsWindowListResponse(BaseModel):
    total: int
    items: list[StatsWindowResponse]

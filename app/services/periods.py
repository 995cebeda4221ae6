"""
Recurrence calculators for periodic tasks.

Pure functions: no database, no clock. Every input date is a plain
calendar date (timezone-naive).

Public API
----------
period_window(period_type, period_value, ref)        -> PeriodWindow
next_due_date(period_type, period_value, from_date)  -> date
expected_value(completion_type, target, period_type, expected_count) -> Decimal

Window rules
------------
  daily    [d, d]
  weekly   Monday .. Sunday of d's week
  monthly  1st .. last day of d's month
  custom   [d, d + N - 1] anchored at d itself (no cycle alignment)
  other    [d, d]
"""
from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from dateutil.relativedelta import relativedelta

from app.models.periodic_task import CompletionType, PeriodType


@dataclass(frozen=True)
class PeriodWindow:
    period_start: date
    period_end: date
    expected_count: int

    @property
    def days(self) -> int:
        return (self.period_end - self.period_start).days + 1

    def contains(self, day: date) -> bool:
        return self.period_start <= day <= self.period_end


def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _as_date(value: date | datetime) -> date:
    # datetime is a subclass of date, so check it first
    if isinstance(value, datetime):
        return value.date()
    return value


def custom_days(period_value: Optional[int]) -> int:
    """Cycle length for custom periods; anything missing or < 1 counts as 1."""
    try:
        n = int(period_value) if period_value is not None else 1
    except (TypeError, ValueError):
        return 1
    return n if n >= 1 else 1


# ---------------------------------------------------------------------------
# Window
# ---------------------------------------------------------------------------

def window_bounds(period_type, period_value: Optional[int], ref: date | datetime) -> tuple[date, date]:
    d = _as_date(ref)
    ptype = _ev(period_type)

    if ptype == PeriodType.daily.value:
        return d, d
    if ptype == PeriodType.weekly.value:
        start = d - timedelta(days=d.weekday())
        return start, start + timedelta(days=6)
    if ptype == PeriodType.monthly.value:
        last = calendar.monthrange(d.year, d.month)[1]
        return d.replace(day=1), d.replace(day=last)
    if ptype == PeriodType.custom.value:
        return d, d + timedelta(days=custom_days(period_value) - 1)
    return d, d


def expected_count(period_type, period_value: Optional[int], start: date, end: date) -> int:
    """How many check-ins a window is expected to hold (one per day)."""
    ptype = _ev(period_type)
    span = (end - start).days + 1

    if ptype == PeriodType.daily.value:
        return span
    if ptype == PeriodType.weekly.value:
        return 7
    if ptype == PeriodType.monthly.value:
        return calendar.monthrange(start.year, start.month)[1]
    if ptype == PeriodType.custom.value:
        return custom_days(period_value) if period_value else span
    return 1


def period_window(period_type, period_value: Optional[int], ref: date | datetime) -> PeriodWindow:
    start, end = window_bounds(period_type, period_value, ref)
    return PeriodWindow(
        period_start=start,
        period_end=end,
        expected_count=expected_count(period_type, period_value, start, end),
    )


# ---------------------------------------------------------------------------
# Due date
# ---------------------------------------------------------------------------

def next_due_date(period_type, period_value: Optional[int], from_date: date | datetime) -> date:
    """
    Next day a check-in is expected after `from_date`.

    Monthly steps keep the day of month. Days past the end of a shorter
    month roll into the next one (2023-01-31 -> 2023-03-03).
    """
    d = _as_date(from_date)
    ptype = _ev(period_type)

    if ptype == PeriodType.daily.value:
        return d + timedelta(days=1)
    if ptype == PeriodType.weekly.value:
        return d + timedelta(days=7)
    if ptype == PeriodType.monthly.value:
        stepped = d + relativedelta(months=1)
        # relativedelta clamps to the month end; carry the lost days over
        return stepped + timedelta(days=d.day - stepped.day)
    if ptype == PeriodType.custom.value:
        if period_value and period_value > 0:
            return d + timedelta(days=int(period_value))
        return d + timedelta(days=1)
    return d + timedelta(days=1)


# ---------------------------------------------------------------------------
# Expected cumulative value (numeric tasks)
# ---------------------------------------------------------------------------

def expected_value(
    completion_type,
    target_value: Optional[Decimal],
    period_type,
    expected_count: int,
) -> Decimal:
    """
    Daily targets are per-day rates and scale with the window length.
    Weekly, monthly and custom targets are already totals for the window.
    """
    if _ev(completion_type) != CompletionType.numeric.value or not target_value:
        return Decimal("0")
    target = Decimal(str(target_value))
    if _ev(period_type) == PeriodType.daily.value:
        return target * expected_count
    return target

"""
Periodic task service: recurrence definitions and the check-in ledger.

Every operation is scoped by the owner id resolved from the bearer token.
Ledger mutations (check-in, edit, delete) are followed by a full window
recompute in app/services/periodic_stats.py; that step can fail without
failing the mutation, and its outcome is returned alongside the record.

Public API
----------
create_periodic_task(db, owner_id, task_id, ...)          -> PeriodicTask
update_periodic_task(db, owner_id, task_id, changes)      -> PeriodicTask
get_periodic_task_by_task_id(db, owner_id, task_id)       -> (PeriodicTask, Task)
record_check_in(db, owner_id, periodic_task_id, ...)      -> CheckInResult
edit_completion(db, owner_id, completion_id, changes)     -> CompletionEditResult
delete_completion(db, owner_id, completion_id)            -> CompletionDeleteResult
recompute_stats(db, owner_id, periodic_task_id, day)      -> AggregationResult
get_periodic_task_stats(db, owner_id, periodic_task_id)   -> list[dict]
list_completions(db, owner_id, periodic_task_id)          -> list[TaskCompletion]
list_upcoming(db, owner_id, days)                         -> list[(PeriodicTask, Task)]
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.errors import (
    FutureCompletionDateError,
    NotFoundError,
    NotPeriodicTaskError,
    PeriodicTaskExistsError,
    ValidationError,
)
from app.models.periodic_task import CompletionType, PeriodicTask, PeriodType
from app.models.task import Task, TaskStatus, TaskType
from app.models.task_completion import TaskCompletion
from app.services.periodic_stats import (
    AggregationResult,
    effective_date_expr,
    get_capabilities,
    recompute_window,
    refresh_current_period,
    stats_dict,
    stats_rows,
)
from app.services.periods import _ev, next_due_date

_LOGGER = logging.getLogger(__name__)

MAX_UPCOMING_DAYS = 365

_UPDATABLE_FIELDS = ("period_type", "period_value", "completion_type", "target_value", "unit")
_EDITABLE_COMPLETION_FIELDS = ("completion_value", "completion_date", "notes")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class CheckInResult:
    completion: TaskCompletion
    next_due_date: date
    aggregation: AggregationResult


@dataclass
class CompletionEditResult:
    completion: TaskCompletion
    aggregations: list[AggregationResult] = field(default_factory=list)


@dataclass
class CompletionDeleteResult:
    completion_id: int
    periodic_task_id: int
    aggregation: AggregationResult


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _today() -> date:
    return datetime.now(tz=timezone.utc).date()


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _get_owned_task(db: Session, owner_id: int, task_id: int) -> Task:
    task = (
        db.query(Task)
        .filter(Task.id == task_id, Task.user_id == owner_id)
        .first()
    )
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _get_owned_periodic_task(
    db: Session,
    owner_id: int,
    periodic_task_id: int,
    for_update: bool = False,
) -> PeriodicTask:
    q = (
        db.query(PeriodicTask)
        .join(Task, PeriodicTask.task_id == Task.id)
        .filter(PeriodicTask.id == periodic_task_id, Task.user_id == owner_id)
    )
    if for_update:
        # Serializes recomputes of this task's windows on row-locking backends
        q = q.with_for_update(of=PeriodicTask)
    periodic_task = q.first()
    if periodic_task is None:
        raise NotFoundError("PeriodicTask", periodic_task_id)
    return periodic_task


def _get_owned_completion(db: Session, owner_id: int, completion_id: int) -> TaskCompletion:
    completion = (
        db.query(TaskCompletion)
        .join(PeriodicTask, TaskCompletion.periodic_task_id == PeriodicTask.id)
        .join(Task, PeriodicTask.task_id == Task.id)
        .filter(TaskCompletion.id == completion_id, Task.user_id == owner_id)
        .first()
    )
    if completion is None:
        raise NotFoundError("TaskCompletion", completion_id)
    return completion


def _check_period_definition(period_type, period_value: Optional[int]) -> None:
    if _ev(period_type) == PeriodType.custom.value and (period_value is None or period_value < 1):
        raise ValidationError(
            "period_value (days per cycle, >= 1) is required when period_type is 'custom'.",
            field="period_value",
        )


def _check_completion_date(completion_date: Optional[date], today: date) -> None:
    if completion_date is not None and completion_date > today:
        raise FutureCompletionDateError(completion_date, today)


def _is_numeric(periodic_task: PeriodicTask) -> bool:
    return _ev(periodic_task.completion_type) == CompletionType.numeric.value


# ---------------------------------------------------------------------------
# Public: periodic task lifecycle
# ---------------------------------------------------------------------------

def create_periodic_task(
    db: Session,
    owner_id: int,
    task_id: int,
    period_type: str,
    period_value: Optional[int] = None,
    completion_type: str = CompletionType.boolean.value,
    target_value: Optional[Decimal] = None,
    unit: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PeriodicTask:
    """
    Attach a recurrence definition to a periodic Task.

    next_due_date is computed from now. No stats row is created until the
    first check-in.
    """
    task = _get_owned_task(db, owner_id, task_id)
    if _ev(task.task_type) != TaskType.periodic.value:
        raise NotPeriodicTaskError(task_id, _ev(task.task_type))

    exists = db.query(PeriodicTask.id).filter(PeriodicTask.task_id == task_id).first()
    if exists is not None:
        raise PeriodicTaskExistsError(task_id)

    _check_period_definition(period_type, period_value)

    periodic_task = PeriodicTask(
        task_id=task_id,
        period_type=period_type,
        period_value=period_value or None,
        completion_type=completion_type or CompletionType.boolean.value,
        target_value=target_value or None,
        unit=unit or None,
        next_due_date=next_due_date(period_type, period_value, now or _now()),
    )
    db.add(periodic_task)
    db.commit()
    db.refresh(periodic_task)
    _LOGGER.info(
        "Created periodic task %s for task %s (%s)",
        periodic_task.id, task_id, _ev(periodic_task.period_type),
    )
    return periodic_task


def update_periodic_task(
    db: Session,
    owner_id: int,
    task_id: int,
    changes: dict[str, Any],
    now: Optional[datetime] = None,
) -> PeriodicTask:
    """
    Partially update the definition of the periodic task attached to `task_id`.

    `changes` holds only the fields the caller sent. When the period type or
    value changes, next_due_date is recomputed from last_completed_at (or
    now). Existing stats rows are left as they were computed.
    """
    task = _get_owned_task(db, owner_id, task_id)
    if _ev(task.task_type) != TaskType.periodic.value:
        raise NotPeriodicTaskError(task_id, _ev(task.task_type))

    periodic_task = (
        db.query(PeriodicTask)
        .filter(PeriodicTask.task_id == task_id)
        .with_for_update()
        .first()
    )
    if periodic_task is None:
        raise NotFoundError("PeriodicTask for task", task_id)

    updates = {k: v for k, v in changes.items() if k in _UPDATABLE_FIELDS}
    if not updates:
        raise ValidationError("No fields to update.")

    new_type = updates.get("period_type") or periodic_task.period_type
    new_value = updates.get("period_value", periodic_task.period_value) or None
    _check_period_definition(new_type, new_value)

    if "period_type" in updates:
        periodic_task.period_type = new_type
    if "period_value" in updates:
        periodic_task.period_value = new_value
    if "completion_type" in updates:
        periodic_task.completion_type = updates["completion_type"] or CompletionType.boolean.value
    if "target_value" in updates:
        periodic_task.target_value = updates["target_value"] or None
    if "unit" in updates:
        periodic_task.unit = updates["unit"] or None

    if "period_type" in updates or "period_value" in updates:
        periodic_task.next_due_date = next_due_date(
            new_type, new_value, periodic_task.last_completed_at or now or _now()
        )

    db.commit()
    db.refresh(periodic_task)
    return periodic_task


def get_periodic_task_by_task_id(
    db: Session, owner_id: int, task_id: int
) -> tuple[PeriodicTask, Task]:
    row = (
        db.query(PeriodicTask, Task)
        .join(Task, PeriodicTask.task_id == Task.id)
        .filter(PeriodicTask.task_id == task_id, Task.user_id == owner_id)
        .first()
    )
    if row is None:
        raise NotFoundError("PeriodicTask for task", task_id)
    return row[0], row[1]


# ---------------------------------------------------------------------------
# Public: ledger mutations
# ---------------------------------------------------------------------------

def record_check_in(
    db: Session,
    owner_id: int,
    periodic_task_id: int,
    completion_date: Optional[date] = None,
    completion_value: Optional[Decimal] = None,
    notes: Optional[str] = None,
    today: Optional[date] = None,
) -> CheckInResult:
    """
    Insert a check-in, roll next_due_date forward from its date and
    recompute the window it falls in.
    """
    today = today or _today()
    periodic_task = _get_owned_periodic_task(db, owner_id, periodic_task_id, for_update=True)

    numeric = _is_numeric(periodic_task)
    if numeric and completion_value is None:
        raise ValidationError(
            "completion_value is required for numeric periodic tasks.",
            field="completion_value",
        )
    _check_completion_date(completion_date, today)

    effective = completion_date or today
    completion = TaskCompletion(
        periodic_task_id=periodic_task.id,
        completion_date=effective,
        completion_value=completion_value if numeric else None,
        notes=notes or None,
    )
    db.add(completion)

    due = next_due_date(periodic_task.period_type, periodic_task.period_value, effective)
    periodic_task.last_completed_at = _now()
    periodic_task.next_due_date = due

    aggregation = recompute_window(db, periodic_task.id, effective)
    db.commit()
    db.refresh(completion)

    _LOGGER.info(
        "Check-in %s on periodic task %s for %s (stats %s)",
        completion.id, periodic_task_id, effective, "ok" if aggregation.ok else "failed",
    )
    return CheckInResult(completion=completion, next_due_date=due, aggregation=aggregation)


def edit_completion(
    db: Session,
    owner_id: int,
    completion_id: int,
    changes: dict[str, Any],
    today: Optional[date] = None,
) -> CompletionEditResult:
    """
    Apply a partial edit to a check-in.

    Moving a check-in to another date recomputes both the window it left
    and the window it joined; otherwise only its current window.
    """
    today = today or _today()
    completion = _get_owned_completion(db, owner_id, completion_id)
    periodic_task = _get_owned_periodic_task(
        db, owner_id, completion.periodic_task_id, for_update=True
    )

    updates = {k: v for k, v in changes.items() if k in _EDITABLE_COMPLETION_FIELDS}
    if not updates:
        raise ValidationError("No fields to update.")
    numeric = _is_numeric(periodic_task)
    if "completion_value" in updates and not numeric:
        # boolean check-ins never carry a value
        updates["completion_value"] = None
    if "completion_value" in updates and updates["completion_value"] is None and numeric:
        raise ValidationError(
            "completion_value cannot be cleared on a numeric periodic task.",
            field="completion_value",
        )
    if "completion_date" in updates:
        _check_completion_date(updates["completion_date"], today)

    old_date = completion.effective_date
    for name, value in updates.items():
        setattr(completion, name, value)
    db.flush()
    new_date = completion.effective_date

    aggregations: list[AggregationResult] = []
    if "completion_date" in updates and old_date is not None and new_date != old_date:
        aggregations.append(recompute_window(db, periodic_task.id, old_date))
        aggregations.append(recompute_window(db, periodic_task.id, new_date or today))
    else:
        aggregations.append(recompute_window(db, periodic_task.id, new_date or today))

    db.commit()
    db.refresh(completion)
    return CompletionEditResult(completion=completion, aggregations=aggregations)


def delete_completion(
    db: Session,
    owner_id: int,
    completion_id: int,
    today: Optional[date] = None,
) -> CompletionDeleteResult:
    """Remove a check-in and recompute the window it counted toward."""
    completion = _get_owned_completion(db, owner_id, completion_id)
    periodic_task = _get_owned_periodic_task(
        db, owner_id, completion.periodic_task_id, for_update=True
    )
    old_date = completion.effective_date

    db.delete(completion)
    db.flush()

    if old_date is not None:
        aggregation = recompute_window(db, periodic_task.id, old_date)
    else:
        aggregation = refresh_current_period(db, periodic_task.id, today)

    db.commit()
    return CompletionDeleteResult(
        completion_id=completion_id,
        periodic_task_id=periodic_task.id,
        aggregation=aggregation,
    )


def recompute_stats(
    db: Session,
    owner_id: int,
    periodic_task_id: int,
    day: Optional[date] = None,
) -> AggregationResult:
    """Explicitly refresh the window containing `day` (default: today)."""
    periodic_task = _get_owned_periodic_task(db, owner_id, periodic_task_id, for_update=True)
    if day is None:
        result = refresh_current_period(db, periodic_task.id)
    else:
        result = recompute_window(db, periodic_task.id, day)
    db.commit()
    return result


# ---------------------------------------------------------------------------
# Public: query surface
# ---------------------------------------------------------------------------

def get_periodic_task_stats(
    db: Session,
    owner_id: int,
    periodic_task_id: int,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> list[dict]:
    _get_owned_periodic_task(db, owner_id, periodic_task_id)
    caps = get_capabilities(db)
    rows = stats_rows(db, periodic_task_id, period_start, period_end)
    return [stats_dict(r, caps) for r in rows]


def list_completions(db: Session, owner_id: int, periodic_task_id: int) -> list[TaskCompletion]:
    """Check-ins newest first: by effective date, then by recording time."""
    _get_owned_periodic_task(db, owner_id, periodic_task_id)
    return (
        db.query(TaskCompletion)
        .filter(TaskCompletion.periodic_task_id == periodic_task_id)
        .order_by(effective_date_expr().desc(), TaskCompletion.completed_at.desc())
        .all()
    )


def list_upcoming(
    db: Session,
    owner_id: int,
    days: int,
    today: Optional[date] = None,
) -> list[tuple[PeriodicTask, Task]]:
    """
    Periodic tasks due within `days` days (or never scheduled), skipping
    cancelled tasks. Soonest first, unscheduled last.
    """
    if days < 0 or days > MAX_UPCOMING_DAYS:
        raise ValidationError(
            f"days must be between 0 and {MAX_UPCOMING_DAYS}.", field="days"
        )
    horizon = (today or _today()) + timedelta(days=days)
    rows = (
        db.query(PeriodicTask, Task)
        .join(Task, PeriodicTask.task_id == Task.id)
        .filter(
            Task.user_id == owner_id,
            Task.status != TaskStatus.cancelled,
            (PeriodicTask.next_due_date.is_(None)) | (PeriodicTask.next_due_date <= horizon),
        )
        .order_by(
            PeriodicTask.next_due_date.is_(None),
            PeriodicTask.next_due_date.asc(),
            PeriodicTask.id.asc(),
        )
        .all()
    )
    return [(pt, t) for pt, t in rows]

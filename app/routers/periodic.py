"""
Periodic task router.

POST   /periodic                              — attach a recurrence to a task
PUT    /periodic/task/{task_id}               — partial update of the recurrence
GET    /periodic/task/{task_id}               — recurrence + owning task
GET    /periodic/upcoming                     — due within N days
POST   /periodic/complete                     — check in
GET    /periodic/{periodic_task_id}/stats     — stats windows, newest first
POST   /periodic/{periodic_task_id}/stats/recompute
GET    /periodic/{periodic_task_id}/completions
PUT    /periodic/completions/{completion_id}
DELETE /periodic/completions/{completion_id}

All routes require `Authorization: Bearer <token>`.
"""
from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.auth import get_current_user
from app.core.config import settings
from app.db.base import get_db
from app.models.periodic_task import PeriodicTask
from app.models.task import Task
from app.models.task_completion import TaskCompletion
from app.models.user import User
from app.schemas.periodic import (
    AggregationStatus,
    CheckInRequest,
    CheckInResponse,
    CompletionDeleteResponse,
    CompletionEditResponse,
    CompletionListResponse,
    CompletionResponse,
    CompletionUpdate,
    PeriodicTaskCreate,
    PeriodicTaskDetailResponse,
    PeriodicTaskListResponse,
    PeriodicTaskResponse,
    PeriodicTaskUpdate,
    StatsWindowListResponse,
    StatsWindowResponse,
)
from app.services import periodic as periodic_service
from app.services.periodic import MAX_UPCOMING_DAYS
from app.services.periodic_stats import AggregationResult
from app.services.periods import _ev

router = APIRouter(prefix="/periodic", tags=["periodic"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _opt_str(v) -> Optional[str]:
    return str(v) if v is not None else None


def _periodic_fields(pt: PeriodicTask) -> dict:
    return {
        "id": pt.id,
        "task_id": pt.task_id,
        "period_type": _ev(pt.period_type),
        "period_value": pt.period_value,
        "completion_type": _ev(pt.completion_type),
        "target_value": _opt_str(pt.target_value),
        "unit": pt.unit,
        "last_completed_at": pt.last_completed_at.isoformat() if pt.last_completed_at else None,
        "next_due_date": _opt_str(pt.next_due_date),
        "created_at": pt.created_at.isoformat() if pt.created_at else "",
    }


def _periodic_to_response(pt: PeriodicTask) -> PeriodicTaskResponse:
    return PeriodicTaskResponse(**_periodic_fields(pt))


def _periodic_detail(pt: PeriodicTask, task: Task) -> PeriodicTaskDetailResponse:
    return PeriodicTaskDetailResponse(
        **_periodic_fields(pt),
        title=task.title,
        description=task.description,
        priority=_ev(task.priority),
        quadrant=task.quadrant,
        task_status=_ev(task.status),
    )


def _completion_to_response(c: TaskCompletion) -> CompletionResponse:
    return CompletionResponse(
        id=c.id,
        periodic_task_id=c.periodic_task_id,
        completed_at=c.completed_at.isoformat() if c.completed_at else "",
        completion_date=_opt_str(c.completion_date),
        effective_date=_opt_str(c.effective_date),
        completion_value=_opt_str(c.completion_value),
        notes=c.notes,
    )


def _aggregation_status(r: AggregationResult) -> AggregationStatus:
    return AggregationStatus(
        ok=r.ok,
        reference_date=str(r.reference_date),
        period_start=_opt_str(r.window.period_start) if r.window else None,
        period_end=_opt_str(r.window.period_end) if r.window else None,
        actual_count=r.actual_count if r.ok else None,
        error=r.error.message if r.error else None,
    )


# ---------------------------------------------------------------------------
# Periodic task definition
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=PeriodicTaskResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Attach a recurrence definition to a periodic task",
    responses={
        404: {"description": "Task not found for this user."},
        409: {"description": "Task is not periodic, or already has a recurrence."},
    },
)
def create_periodic_task(
    payload: PeriodicTaskCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    pt = periodic_service.create_periodic_task(
        db=db,
        owner_id=user.id,
        task_id=payload.task_id,
        period_type=payload.period_type,
        period_value=payload.period_value,
        completion_type=payload.completion_type,
        target_value=payload.target_value,
        unit=payload.unit,
    )
    return _periodic_to_response(pt)


@router.put(
    "/task/{task_id}",
    response_model=PeriodicTaskResponse,
    summary="Update a periodic task's recurrence (partial)",
    responses={404: {"description": "Task or recurrence not found."}},
)
def update_periodic_task(
    task_id: int,
    payload: PeriodicTaskUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Changing `period_type` or `period_value` recomputes `next_due_date`.
    Stats windows already stored are not rewritten.
    """
    pt = periodic_service.update_periodic_task(
        db=db,
        owner_id=user.id,
        task_id=task_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return _periodic_to_response(pt)


@router.get(
    "/task/{task_id}",
    response_model=PeriodicTaskDetailResponse,
    summary="Get the recurrence of a task",
)
def get_periodic_task(
    task_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    pt, task = periodic_service.get_periodic_task_by_task_id(db, user.id, task_id)
    return _periodic_detail(pt, task)


@router.get(
    "/upcoming",
    response_model=PeriodicTaskListResponse,
    summary="Periodic tasks due within the next N days",
)
def upcoming_periodic_tasks(
    days: int = Query(
        default=settings.UPCOMING_DEFAULT_DAYS,
        ge=0,
        le=MAX_UPCOMING_DAYS,
        description="Lookahead in days (0-365).",
    ),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Unscheduled tasks are included and listed last. Cancelled tasks are skipped."""
    rows = periodic_service.list_upcoming(db, user.id, days)
    return PeriodicTaskListResponse(
        total=len(rows),
        items=[_periodic_detail(pt, task) for pt, task in rows],
    )


# ---------------------------------------------------------------------------
# Check-ins
# ---------------------------------------------------------------------------

@router.post(
    "/complete",
    response_model=CheckInResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Check in on a periodic task",
    responses={
        404: {"description": "Periodic task not found for this user."},
        422: {"description": "Missing value for a numeric task, or a future date."},
    },
)
def check_in(
    payload: CheckInRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """
    Record a check-in, advance `next_due_date` from its date and refresh
    the stats window it falls in. `stats.ok=false` means the check-in was
    saved but the window refresh failed; it is retried on the next touch.
    """
    result = periodic_service.record_check_in(
        db=db,
        owner_id=user.id,
        periodic_task_id=payload.periodic_task_id,
        completion_date=payload.completion_date,
        completion_value=payload.completion_value,
        notes=payload.notes,
    )
    return CheckInResponse(
        completion=_completion_to_response(result.completion),
        next_due_date=str(result.next_due_date),
        stats=_aggregation_status(result.aggregation),
    )


@router.get(
    "/{periodic_task_id}/completions",
    response_model=CompletionListResponse,
    summary="Check-ins of a periodic task (newest first)",
)
def list_completions(
    periodic_task_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    items = periodic_service.list_completions(db, user.id, periodic_task_id)
    return CompletionListResponse(
        total=len(items),
        items=[_completion_to_response(c) for c in items],
    )


@router.put(
    "/completions/{completion_id}",
    response_model=CompletionEditResponse,
    summary="Edit a check-in (partial)",
)
def edit_completion(
    completion_id: int,
    payload: CompletionUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Moving a check-in to another date refreshes both affected windows."""
    result = periodic_service.edit_completion(
        db=db,
        owner_id=user.id,
        completion_id=completion_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return CompletionEditResponse(
        completion=_completion_to_response(result.completion),
        stats=[_aggregation_status(a) for a in result.aggregations],
    )


@router.delete(
    "/completions/{completion_id}",
    response_model=CompletionDeleteResponse,
    summary="Delete a check-in",
)
def delete_completion(
    completion_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = periodic_service.delete_completion(db, user.id, completion_id)
    return CompletionDeleteResponse(
        message="Check-in deleted.",
        id=result.completion_id,
        stats=_aggregation_status(result.aggregation),
    )


# ---------------------------------------------------------------------------
# Stats windows
# ---------------------------------------------------------------------------

@router.get(
    "/{periodic_task_id}/stats",
    response_model=StatsWindowListResponse,
    summary="Stats windows of a periodic task (newest first)",
)
def get_stats(
    periodic_task_id: int,
    period_start: Optional[date] = Query(
        default=None,
        description="Keep windows starting on or after this date (needs period_end).",
    ),
    period_end: Optional[date] = Query(
        default=None,
        description="Keep windows ending on or before this date (needs period_start).",
    ),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows = periodic_service.get_periodic_task_stats(
        db, user.id, periodic_task_id, period_start, period_end
    )
    return StatsWindowListResponse(
        total=len(rows),
        items=[StatsWindowResponse(**r) for r in rows],
    )


@router.post(
    "/{periodic_task_id}/stats/recompute",
    response_model=AggregationStatus,
    summary="Recompute one stats window from the check-in ledger",
)
def recompute_stats(
    periodic_task_id: int,
    day: Optional[date] = Query(
        default=None,
        description="Any day inside the window to recompute. Defaults to today.",
    ),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = periodic_service.recompute_stats(db, user.id, periodic_task_id, day)
    return _aggregation_status(result)

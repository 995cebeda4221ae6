"""
Stats aggregator for periodic tasks.

Every touch of a window recomputes it from the task_completions ledger and
upserts the matching periodic_task_stats row. Counters are never
incremented in place, so edits and deletions cannot make the aggregate
drift from the ledger, and a failed recompute heals itself the next time
the same window is touched.

Failure policy
--------------
recompute_window() runs inside a SAVEPOINT and never raises. A failure
rolls back only the savepoint, is logged, and is reported through
AggregationResult.ok=False. The ledger write that triggered it is kept.

Schema capabilities
-------------------
actual_value / expected_value were added to periodic_task_stats after the
table first shipped. Their presence is inspected once per engine and
cached; when a column is missing the numeric aggregate is simply not
written (counts still are).

Public API
----------
get_capabilities(db)                              -> StatsCapabilities
recompute_window(db, periodic_task_id, day)       -> AggregationResult
refresh_current_period(db, periodic_task_id)      -> AggregationResult
ledger_totals(db, periodic_task_id, start, end)   -> (count, value)
stats_rows(db, periodic_task_id, start, end)      -> list[PeriodicTaskStats]
"""
from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import Date, and_, func, inspect, insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, load_only

from app.core.errors import AggregationError
from app.models.periodic_task import PeriodicTask
from app.models.periodic_task_stats import PeriodicTaskStats
from app.models.task_completion import TaskCompletion
from app.services.periods import PeriodWindow, expected_value, period_window

_LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StatsCapabilities:
    has_actual_value: bool
    has_expected_value: bool


@dataclass
class AggregationResult:
    """Outcome of one window recompute, separate from the ledger outcome."""
    periodic_task_id: int
    reference_date: date
    ok: bool
    window: Optional[PeriodWindow] = None
    actual_count: int = 0
    actual_value: Decimal = Decimal("0")
    error: Optional[AggregationError] = None


# ---------------------------------------------------------------------------
# Capability detection
# ---------------------------------------------------------------------------

_NUMERIC_COLUMNS = ("actual_value", "expected_value")
_capabilities: "weakref.WeakKeyDictionary[Engine, StatsCapabilities]" = weakref.WeakKeyDictionary()


def _engine_of(db: Session) -> Engine:
    bind = db.get_bind()
    return getattr(bind, "engine", bind)


def get_capabilities(db: Session) -> StatsCapabilities:
    engine = _engine_of(db)
    cached = _capabilities.get(engine)
    if cached is not None:
        return cached

    columns = {
        col["name"]
        for col in inspect(db.connection()).get_columns(PeriodicTaskStats.__tablename__)
    }
    caps = StatsCapabilities(
        has_actual_value="actual_value" in columns,
        has_expected_value="expected_value" in columns,
    )
    missing = [c for c in _NUMERIC_COLUMNS if c not in columns]
    if missing:
        _LOGGER.warning(
            "periodic_task_stats lacks %s; numeric aggregates will not be persisted",
            ", ".join(missing),
        )
    _capabilities[engine] = caps
    return caps


def reset_capabilities() -> None:
    """Forget cached column detection (after a migration, or in tests)."""
    _capabilities.clear()


# ---------------------------------------------------------------------------
# Ledger queries
# ---------------------------------------------------------------------------

def effective_date_expr():
    """SQL form of TaskCompletion.effective_date."""
    return func.coalesce(
        TaskCompletion.completion_date,
        func.date(TaskCompletion.completed_at, type_=Date),
    )


def ledger_totals(
    db: Session,
    periodic_task_id: int,
    start: date,
    end: date,
) -> tuple[int, Decimal]:
    """Count and value sum of check-ins whose effective date lies in [start, end]."""
    eff = effective_date_expr()
    count, total = (
        db.query(
            func.count(TaskCompletion.id),
            func.coalesce(func.sum(TaskCompletion.completion_value), 0),
        )
        .filter(
            TaskCompletion.periodic_task_id == periodic_task_id,
            eff >= start,
            eff <= end,
        )
        .one()
    )
    return int(count or 0), Decimal(str(total or 0))


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------

def _upsert_window(
    db: Session,
    caps: StatsCapabilities,
    periodic_task_id: int,
    window: PeriodWindow,
    actual_count: int,
    actual_value: Decimal,
    expected: Decimal,
) -> None:
    """
    Insert the window row or refresh an existing one.

    expected_count is written once, when the row is created. Refreshes only
    touch actual_count and the numeric columns the schema has.
    """
    table = PeriodicTaskStats.__table__
    key = and_(
        table.c.periodic_task_id == periodic_task_id,
        table.c.period_start == window.period_start,
        table.c.period_end == window.period_end,
    )

    refreshed: dict = {"actual_count": actual_count}
    if caps.has_actual_value:
        refreshed["actual_value"] = actual_value
    if caps.has_expected_value:
        refreshed["expected_value"] = expected

    existing_id = db.execute(select(table.c.id).where(key)).scalar_one_or_none()
    if existing_id is None:
        savepoint = db.begin_nested()
        try:
            db.execute(
                insert(table).values(
                    periodic_task_id=periodic_task_id,
                    period_start=window.period_start,
                    period_end=window.period_end,
                    expected_count=window.expected_count,
                    **refreshed,
                )
            )
            savepoint.commit()
            return
        except IntegrityError:
            # Another writer created the row first; refresh theirs instead.
            savepoint.rollback()
            existing_id = db.execute(select(table.c.id).where(key)).scalar_one()

    db.execute(update(table).where(table.c.id == existing_id).values(**refreshed))


def _recompute(db: Session, periodic_task_id: int, day: date) -> AggregationResult:
    periodic_task = db.get(PeriodicTask, periodic_task_id)
    if periodic_task is None:
        raise LookupError(f"periodic task {periodic_task_id} not found")

    window = period_window(periodic_task.period_type, periodic_task.period_value, day)
    expected = expected_value(
        periodic_task.completion_type,
        periodic_task.target_value,
        periodic_task.period_type,
        window.expected_count,
    )
    actual_count, actual_value = ledger_totals(
        db, periodic_task_id, window.period_start, window.period_end
    )

    _upsert_window(
        db,
        get_capabilities(db),
        periodic_task_id,
        window,
        actual_count,
        actual_value,
        expected,
    )
    return AggregationResult(
        periodic_task_id=periodic_task_id,
        reference_date=day,
        ok=True,
        window=window,
        actual_count=actual_count,
        actual_value=actual_value,
    )


# ---------------------------------------------------------------------------
# Public: recompute entry points
# ---------------------------------------------------------------------------

def recompute_window(db: Session, periodic_task_id: int, day: date) -> AggregationResult:
    """
    Recompute the window containing `day` for one periodic task.

    Flushes pending ledger changes first; a failing flush is a ledger error
    and does propagate. Does not commit, the caller owns the outer
    transaction. Once the ledger is flushed, never raises.
    """
    db.flush()
    savepoint = None
    try:
        savepoint = db.begin_nested()
        result = _recompute(db, periodic_task_id, day)
        savepoint.commit()
        return result
    except Exception as exc:
        if savepoint is not None and savepoint.is_active:
            savepoint.rollback()
        _LOGGER.exception(
            "Stats recompute failed for periodic task %s on %s", periodic_task_id, day
        )
        return AggregationResult(
            periodic_task_id=periodic_task_id,
            reference_date=day,
            ok=False,
            error=AggregationError(periodic_task_id, day, exc),
        )


def refresh_current_period(
    db: Session,
    periodic_task_id: int,
    today: Optional[date] = None,
) -> AggregationResult:
    """Recompute the window containing today, without touching the ledger."""
    return recompute_window(
        db, periodic_task_id, today or datetime.now(tz=timezone.utc).date()
    )


# ---------------------------------------------------------------------------
# Public: reads
# ---------------------------------------------------------------------------

def stats_rows(
    db: Session,
    periodic_task_id: int,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> list[PeriodicTaskStats]:
    """
    Stats rows for a task, newest window first.

    The range filter applies only when both bounds are given and keeps
    windows lying entirely inside it. Numeric columns the schema lacks are
    not selected; read them through stats_dict().
    """
    caps = get_capabilities(db)
    columns = [
        PeriodicTaskStats.id,
        PeriodicTaskStats.periodic_task_id,
        PeriodicTaskStats.period_start,
        PeriodicTaskStats.period_end,
        PeriodicTaskStats.expected_count,
        PeriodicTaskStats.actual_count,
        PeriodicTaskStats.created_at,
    ]
    if caps.has_actual_value:
        columns.append(PeriodicTaskStats.actual_value)
    if caps.has_expected_value:
        columns.append(PeriodicTaskStats.expected_value)

    q = (
        db.query(PeriodicTaskStats)
        .options(load_only(*columns))
        .filter(PeriodicTaskStats.periodic_task_id == periodic_task_id)
    )
    if period_start and period_end:
        q = q.filter(
            PeriodicTaskStats.period_start >= period_start,
            PeriodicTaskStats.period_end <= period_end,
        )
    return q.order_by(PeriodicTaskStats.period_start.desc()).all()


def stats_dict(row: PeriodicTaskStats, caps: StatsCapabilities) -> dict:
    actual_value = row.actual_value if caps.has_actual_value else None
    expected = row.expected_value if caps.has_expected_value else None
    return {
        "id": row.id,
        "periodic_task_id": row.periodic_task_id,
        "period_start": str(row.period_start),
        "period_end": str(row.period_end),
        "expected_count": row.expected_count,
        "actual_count": row.actual_count,
        "expected_value": str(expected) if expected is not None else None,
        "actual_value": str(actual_value) if actual_value is not None else None,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }

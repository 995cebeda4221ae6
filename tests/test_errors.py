"""Tests for the error hierarchy and its JSON envelope."""
from datetime import date

import pytest
from fastapi.testclient import TestClient

from app.core.errors import (
    AggregationError,
    AuthenticationError,
    ConflictError,
    FutureCompletionDateError,
    NotFoundError,
    NotPeriodicTaskError,
    PeriodicTaskExistsError,
    TodoAppException,
    ValidationError,
)
from app.main import app


@pytest.mark.parametrize("exc, http_status, code", [
    (ValidationError("bad"), 422, "VALIDATION_ERROR"),
    (NotFoundError("PeriodicTask", 3), 404, "NOT_FOUND"),
    (PeriodicTaskExistsError(3), 409, "PERIODIC_TASK_EXISTS"),
    (NotPeriodicTaskError(3, "urgent"), 409, "NOT_PERIODIC_TASK"),
    (FutureCompletionDateError(date(2024, 3, 2), date(2024, 3, 1)), 422, "FUTURE_COMPLETION_DATE"),
    (AuthenticationError("no"), 401, "UNAUTHORIZED"),
])
def test_status_and_code(exc, http_status, code):
    assert isinstance(exc, TodoAppException)
    assert exc.http_status == http_status
    assert exc.code == code
    assert exc.to_dict()["code"] == code


def test_details_omitted_when_empty():
    assert ValidationError("bad").to_dict() == {"code": "VALIDATION_ERROR", "message": "bad"}


def test_not_found_details():
    assert NotFoundError("TaskCompletion", 9).to_dict()["details"] == {
        "resource": "TaskCompletion", "id": 9,
    }


def test_conflict_subclasses():
    assert issubclass(PeriodicTaskExistsError, ConflictError)
    assert issubclass(NotPeriodicTaskError, ConflictError)


def test_future_date_details():
    exc = FutureCompletionDateError(date(2024, 3, 2), date(2024, 3, 1))
    assert isinstance(exc, ValidationError)
    assert exc.details == {"field": "completion_date", "today": "2024-03-01"}


def test_aggregation_error_keeps_cause():
    cause = RuntimeError("deadlock")
    exc = AggregationError(7, date(2024, 3, 1), cause)
    assert exc.cause is cause
    assert "deadlock" in exc.message
    assert exc.details == {"periodic_task_id": 7, "reference_date": "2024-03-01"}


def test_unhandled_error_envelope():
    @app.get("/_boom_for_test", include_in_schema=False)
    def _boom():
        raise RuntimeError("kaput")

    try:
        with TestClient(app, raise_server_exceptions=False) as c:
            res = c.get("/_boom_for_test")
        assert res.status_code == 500
        assert res.json() == {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred."}
    finally:
        app.router.routes[:] = [
            r for r in app.router.routes if getattr(r, "path", None) != "/_boom_for_test"
        ]

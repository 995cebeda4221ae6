"""
Custom exception hierarchy for the to-do API.

Rule: every HTTP error has a machine-readable `code` string so clients
can branch on it without parsing English messages.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status

_LOGGER = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class TodoAppException(Exception):
    """Base class for all application-level errors."""
    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(TodoAppException):
    """Missing required field or out-of-range parameter."""
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            message=message,
            details={"field": field} if field else {},
        )


class NotFoundError(TodoAppException):
    http_status = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: int):
        super().__init__(
            message=f"{resource} {resource_id} does not exist.",
            details={"resource": resource, "id": resource_id},
        )


class ConflictError(TodoAppException):
    http_status = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class PeriodicTaskExistsError(ConflictError):
    code = "PERIODIC_TASK_EXISTS"

    def __init__(self, task_id: int):
        super().__init__(
            message=f"Task {task_id} already has a periodic configuration. Use the update endpoint.",
            details={"task_id": task_id},
        )


class NotPeriodicTaskError(ConflictError):
    code = "NOT_PERIODIC_TASK"

    def __init__(self, task_id: int, task_type: str):
        super().__init__(
            message=f"Task {task_id} has task_type '{task_type}', expected 'periodic'.",
            details={"task_id": task_id, "task_type": task_type},
        )


class FutureCompletionDateError(ValidationError):
    code = "FUTURE_COMPLETION_DATE"

    def __init__(self, completion_date: date, today: date):
        super().__init__(
            message=f"completion_date {completion_date} is after today ({today}).",
            field="completion_date",
        )
        self.details["today"] = str(today)


class AuthenticationError(TodoAppException):
    http_status = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"


class AggregationError(TodoAppException):
    """
    A statistics window could not be recomputed.

    Internal only: recorded on an AggregationResult, never raised to a
    client. The ledger write that triggered the recompute still succeeds.
    """
    code = "AGGREGATION_FAILED"

    def __init__(self, periodic_task_id: int, reference_date: date, cause: Exception):
        super().__init__(
            message=f"Stats recompute failed for periodic task {periodic_task_id} on {reference_date}: {cause}",
            details={
                "periodic_task_id": periodic_task_id,
                "reference_date": str(reference_date),
            },
        )
        self.cause = cause


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------

async def todo_exception_handler(request: Request, exc: TodoAppException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Return structured 422 with machine-readable field errors."""
    field_errors = []
    for error in exc.errors():
        field_errors.append({
            "field": ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "query", "path")),
            "message": error["msg"],
            "type": error["type"],
        })
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "code": "VALIDATION_ERROR",
            "message": "Request validation failed.",
            "details": {"errors": field_errors},
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    _LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )

"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://staffhub.dev/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — business-rule conflict (duplicate, overlap, state clash)."""

    def __init__(
        self,
        field: str,
        value: Any,
        *,
        detail: Optional[str] = None,
        error_type: str = "conflict",
    ) -> None:
        message = detail or f"An entry with {field}='{value}' already exists."
        super().__init__(
            status_code=409,
            error_type=error_type,
            title="Conflict",
            detail=message,
            errors={field: [message]},
        )


# Keep the alias used elsewhere in the codebase
DuplicateException = ConflictError


class LeaveOverlapError(ConflictError):
    """Requested range intersects a pending/approved leave of the same employee."""

    def __init__(self, existing_id: Any, from_date: Any, to_date: Any) -> None:
        super().__init__(
            "dates",
            existing_id,
            detail=(
                "You already have a pending or approved leave request "
                f"overlapping with these dates ({from_date} to {to_date})."
            ),
            error_type="leave-overlap",
        )
        self.existing_id = existing_id


class LeaveNotEditable(ConflictError):
    """Only pending requests can be edited."""

    def __init__(self, request_id: Any, status: str) -> None:
        super().__init__(
            "status",
            status,
            detail=f"Leave request '{request_id}' is {status}; only pending requests can be edited.",
            error_type="leave-not-editable",
        )


class AttendanceMarkConflict(ConflictError):
    def __init__(self, employee_id: Any, day: Any) -> None:
        super().__init__(
            "date",
            day,
            detail=f"Attendance for employee '{employee_id}' on {day} was recorded concurrently.",
            error_type="attendance-conflict",
        )


class AlreadyClockedIn(ConflictError):
    def __init__(self, day: Any) -> None:
        super().__init__(
            "clock_in", day,
            detail=f"Already clocked in on {day}.",
            error_type="already-clocked-in",
        )


class NoActiveClockIn(ConflictError):
    def __init__(self, day: Any) -> None:
        super().__init__(
            "clock_out", day,
            detail=f"No open clock-in found for {day}. Please clock in first.",
            error_type="no-active-clock-in",
        )


class BreakAlreadyActive(ConflictError):
    def __init__(self, day: Any) -> None:
        super().__init__(
            "break", day,
            detail=f"You already have an active break on {day}.",
            error_type="break-already-active",
        )


class NoActiveBreak(ConflictError):
    def __init__(self, break_id: Any) -> None:
        super().__init__(
            "break", break_id,
            detail=f"Active break '{break_id}' not found.",
            error_type="no-active-break",
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class InsufficientBalanceError(AppException):
    """422 — bucket or accrual pool cannot cover the requested days."""

    def __init__(
        self,
        bucket: str,
        available: Decimal,
        requested: Decimal,
        *,
        detail: Optional[str] = None,
    ) -> None:
        self.bucket = bucket
        self.available = Decimal(available)
        self.requested = Decimal(requested)
        self.shortfall = max(Decimal("0"), self.requested - self.available)
        message = detail or (
            f"Insufficient {bucket} leave balance. "
            f"Available: {self.available} days, Requested: {self.requested} days."
        )
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Balance",
            detail=message,
            errors={
                "balance": [message],
                "shortfall": [str(self.shortfall)],
            },
        )


class InvalidStateTransition(AppException):
    """409 — status change not allowed from the current state."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            status_code=409,
            error_type="invalid-state-transition",
            title="Invalid State Transition",
            detail=f"Cannot move a leave request from '{current}' to '{requested}'.",
            errors={"status": [f"Leave request is already {current}."]},
        )


class ConcurrencyError(AppException):
    """409 — transaction could not be serialized; safe to retry the whole call."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            status_code=409,
            error_type="concurrency-conflict",
            title="Concurrent Update",
            detail=(
                f"The operation conflicted with a concurrent update "
                f"{attempts} time(s). Please retry."
            ),
        )


class DatabaseUnavailableError(AppException):
    """503 — underlying store unreachable."""

    def __init__(self, detail: str = "The database is currently unavailable.") -> None:
        super().__init__(
            status_code=503,
            error_type="database-unavailable",
            title="Service Unavailable",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]

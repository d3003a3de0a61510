"""Custom exceptions and RFC 7807 Problem Detail error handlers.

Eligibility failures carry structured extension members (e.g.
``earliest_possible_date``, ``max_days``) so the client can render an
actionable message; lifecycle failures carry the request's ``current_status``.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://hrops.app/errors"


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
        extensions: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        self.extensions = extensions or {}
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found (or not visible to the caller's company)."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
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


# ── Eligibility failures (422, user-facing) ─────────────────────────

class NotEligibleException(AppException):
    """The requester is not eligible for this leave type."""

    def __init__(self, detail: str, **extensions: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="not-eligible",
            title="Not Eligible",
            detail=detail,
            extensions=extensions,
        )


class NoticePeriodViolation(AppException):
    def __init__(self, required_days: int, earliest_possible_date: date) -> None:
        super().__init__(
            status_code=422,
            error_type="notice-period-violation",
            title="Notice Period Not Met",
            detail=f"This leave type requires {required_days} days notice.",
            extensions={
                "required_days": required_days,
                "earliest_possible_date": earliest_possible_date.isoformat(),
            },
        )


class MaxDaysExceeded(AppException):
    def __init__(self, max_days: int, requested_days: int) -> None:
        super().__init__(
            status_code=422,
            error_type="max-days-exceeded",
            title="Maximum Consecutive Days Exceeded",
            detail=(
                f"This leave type allows at most {max_days} consecutive "
                f"working days; {requested_days} requested."
            ),
            extensions={"max_days": max_days, "requested_days": requested_days},
        )


class OverlappingRequest(AppException):
    def __init__(self, conflicting_request_id: Any) -> None:
        super().__init__(
            status_code=422,
            error_type="overlapping-request",
            title="Overlapping Leave Request",
            detail="You already have a pending or approved leave request for these dates.",
            extensions={"conflicting_request_id": str(conflicting_request_id)},
        )


class DocumentationRequired(AppException):
    def __init__(self, leave_type_name: str) -> None:
        super().__init__(
            status_code=422,
            error_type="documentation-required",
            title="Documentation Required",
            detail=f"{leave_type_name} requires at least one supporting document.",
        )


class InsufficientBalance(AppException):
    def __init__(self, available_days: int, requested_days: int) -> None:
        super().__init__(
            status_code=422,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=(
                f"Available: {available_days} day(s), "
                f"requested: {requested_days} day(s)."
            ),
            extensions={
                "available_days": available_days,
                "requested_days": requested_days,
            },
        )


# ── Lifecycle failures ──────────────────────────────────────────────

class InvalidStateTransition(AppException):
    """409 — the request is not in the state the action requires."""

    def __init__(
        self,
        action: str,
        current_status: Optional[str],
        expected_status: str,
    ) -> None:
        super().__init__(
            status_code=409,
            error_type="invalid-state-transition",
            title="Invalid State Transition",
            detail=(
                f"Cannot {action} a request that is '{current_status}'; "
                f"it must be '{expected_status}'."
            ),
            extensions={
                "action": action,
                "current_status": current_status,
                "expected_status": expected_status,
            },
        )


class NoEscalationTargetFound(AppException):
    def __init__(self, company_id: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="no-escalation-target",
            title="No Escalation Target",
            detail="No active management user is available to receive this escalation.",
            extensions={"company_id": str(company_id)},
        )


class PersistenceFailure(AppException):
    """500 — the unit of work was rolled back."""

    def __init__(self, detail: str = "The operation could not be saved and was rolled back.") -> None:
        super().__init__(
            status_code=500,
            error_type="persistence-failure",
            title="Persistence Failure",
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
    for key, value in exc.extensions.items():
        body.setdefault(key, value)
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
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

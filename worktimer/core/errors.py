from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class TimerError(Exception):
    """Base class for failures surfaced by a timer session to its caller."""

    code = "timer_error"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Timer operation failed"

    def __init__(self, message: str | None = None, *, details: Any | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details


class InvalidTransition(TimerError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Operation not allowed in the current timer state"


class OwnerNotFound(TimerError):
    code = "owner_not_found"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Owner record not found. Please contact admin."


class PersistenceError(TimerError):
    code = "persistence_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "The time entry could not be saved"


class NotFound(PersistenceError):
    """The backing entry vanished, e.g. it was deleted while the timer ran."""

    code = "entry_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Time entry not found"


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def timer_error_handler(request: Request, exc: TimerError):
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )

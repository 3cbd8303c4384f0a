"""
Domain errors and their HTTP mapping.

Registries and the reservation engine raise these typed errors; each
service registers the handlers below so every failure reaches the client
as a status code plus a readable message (and the offending field when
there is one).
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base error carrying a message, a status hint and an optional field."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, field: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        body = {"detail": self.message, "error": type(self).__name__}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(DomainError):
    status_code = status.HTTP_409_CONFLICT


class SchedulingConflict(Conflict):
    """Hall/date/slot already taken, or time-slot ranges overlap."""


class DuplicateEntry(Conflict):
    """A field that must be unique among active records is already used."""


class ReferencedByActiveReservation(Conflict):
    """Deactivation refused while a pending reservation points at the record."""


class InvalidStateTransition(Conflict):
    """Reservation is already in a terminal state."""

    status_code = status.HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = None
    message = "Invalid request data"
    if errors:
        first = errors[0]
        location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or None
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", message)
    body = {"detail": message, "error": "ValidationError"}
    if field:
        body["field"] = field
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error": "Internal"}
    )


def register_error_handlers(app: FastAPI):
    """
    Map domain, request-validation and store errors to JSON responses.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, store_error_handler)

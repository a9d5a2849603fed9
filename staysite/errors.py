# Domain errors raised by the booking core. Routers translate them into
# HTTPException responses using the status_code each class carries.
from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.exc import DBAPIError


class BookingError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class ValidationError(BookingError):
    """Malformed input; raised before any store access."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class StateError(BookingError):
    """Invalid lifecycle transition; the caller's view of the reservation was stale."""
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(BookingError):
    """Dates unavailable at commit time. Retryable by resubmitting with fresh availability."""
    status_code = status.HTTP_409_CONFLICT


# SQLSTATE 40001 (serialization_failure) and 40P01 (deadlock_detected)
_SERIALIZATION_SQLSTATES = {"40001", "40P01"}


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True when the database aborted a transaction to preserve serializability."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _SERIALIZATION_SQLSTATES:
        return True
    text = str(orig or exc).lower()
    # SQLite reports lock contention; MySQL reports deadlocks (1213) and lock wait timeouts (1205)
    return "database is locked" in text or "deadlock" in text or "could not serialize" in text

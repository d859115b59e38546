"""Typed booking errors and the FastAPI handlers that render them."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from circuitbreaker import CircuitBreakerError
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for every error kind a booking operation can surface."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "BOOKING_ERROR"
    default_message: str = "Booking request failed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def headers(self) -> Optional[Dict[str, str]]:
        return None


class InvalidDateRange(BookingError):
    code = "INVALID_DATE_RANGE"
    default_message = "Check-out date must be after check-in date"


class RoomNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "ROOM_NOT_FOUND"
    default_message = "Room not found"


class CapacityExceeded(BookingError):
    code = "CAPACITY_EXCEEDED"
    default_message = "Room capacity exceeded"


class RoomUnavailable(BookingError):
    """Inventory for the requested nights is exhausted. Never retried."""

    status_code = status.HTTP_409_CONFLICT
    code = "ROOM_UNAVAILABLE"
    default_message = "Room is not available for the selected dates"


class BookingConflict(BookingError):
    """Concurrent attempts kept aborting each other and retries ran out."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "The booking could not be completed due to concurrent requests, please retry"

    def headers(self) -> Optional[Dict[str, str]]:
        return {"Retry-After": "1"}


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    default_message = "You are not authorized to manage this booking"


class BookingNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Booking not found"


class AlreadyCancelled(BookingError):
    code = "ALREADY_CANCELLED"
    default_message = "Booking is already cancelled"


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_TRANSITION"
    default_message = "Illegal booking state transition"


def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=exc.headers(),
    )


def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Unhandled storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def circuit_open_handler(_: Request, exc: CircuitBreakerError) -> JSONResponse:
    logger.warning("Circuit open, rejecting request: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable", "code": "SERVICE_UNAVAILABLE"},
        headers={"Retry-After": "30"},
    )


def apply_error_handlers(app: FastAPI) -> None:
    """Register the booking and storage error handlers on an app."""

    app.add_exception_handler(BookingError, booking_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(CircuitBreakerError, circuit_open_handler)  # type: ignore[arg-type]

from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.exc import SQLAlchemyError

from common.config import get_settings
from common.database import Base, engine
from common.dependencies import get_current_caller
from common.errors import apply_error_handlers
from common.logging_middleware import add_audit_middleware
from common.models import Booking
from common.rate_limit import apply_rate_limiter, limiter
from common.schemas import (
    BookingCreate,
    BookingPage,
    BookingRead,
    BookingStatusUpdate,
    Caller,
    PaymentStatusUpdate,
    RoomAvailability,
)

from .service import BookingService

settings = get_settings()
booking_service = BookingService()


def get_booking_service() -> BookingService:
    return booking_service


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    apply_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    Instrumentator().instrument(fastapi_app).expose(fastapi_app, include_in_schema=False)
    return fastapi_app


app = create_app()


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED, tags=["bookings"])
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return service.create_booking(caller.user_id, booking_in)


@app.get("/bookings/my", response_model=BookingPage, tags=["bookings"])
@limiter.limit("30/minute")
def list_my_bookings(
    request: Request,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
) -> BookingPage:
    return service.list_my_bookings(caller, page=page, limit=limit)


@app.get("/bookings/hotel", response_model=BookingPage, tags=["bookings"])
@limiter.limit("30/minute")
def list_hotel_bookings(
    request: Request,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
) -> BookingPage:
    return service.list_hotel_bookings(caller, page=page, limit=limit)


@app.patch("/bookings/{booking_id}/cancel", response_model=BookingRead, tags=["bookings"])
@limiter.limit("20/minute")
def cancel_booking(
    request: Request,
    booking_id: str,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return service.cancel_booking(booking_id, caller)


@app.patch("/bookings/{booking_id}/status", response_model=BookingRead, tags=["bookings"])
@limiter.limit("20/minute")
def update_booking_status(
    request: Request,
    booking_id: str,
    body: BookingStatusUpdate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return service.update_booking_status(booking_id, caller, body.status)


@app.patch("/bookings/{booking_id}/payment-status", response_model=BookingRead, tags=["bookings"])
@limiter.limit("20/minute")
def update_payment_status(
    request: Request,
    booking_id: str,
    body: PaymentStatusUpdate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
) -> Booking:
    return service.update_payment_status(booking_id, caller, body.payment_status)


@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability, tags=["availability"])
@circuit(failure_threshold=5, recovery_timeout=30, expected_exception=SQLAlchemyError)
def get_room_availability(
    request: Request,
    room_id: str,
    from_date: Optional[date] = Query(None),
    service: BookingService = Depends(get_booking_service),
) -> RoomAvailability:
    return service.get_room_availability(room_id, from_date=from_date)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("services.bookings.app:app", host="0.0.0.0", port=settings.bookings_service_port)

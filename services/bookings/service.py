"""Booking transaction manager and booking state machine operations.

Each public method is one unit of work on its own session. Mutations run
with SERIALIZABLE isolation and lock the row they depend on (the room for a
new booking, the booking for a transition), so two requests for the last unit
of a room cannot both observe spare inventory. Transactions the database
aborts as serialization failures are retried a bounded number of times.
"""
from __future__ import annotations

import logging
import math
import time
from collections import Counter
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from common.cache import SimpleTTLCache
from common.config import Settings, get_settings
from common.database import SERIALIZABLE, SessionLocal, is_serialization_failure, retry_delay
from common.errors import (
    AlreadyCancelled,
    BookingConflict,
    BookingNotFound,
    CapacityExceeded,
    Forbidden,
    InvalidDateRange,
    RoomNotFound,
    RoomUnavailable,
)
from common.models import Booking, BookingStatus, PaymentStatus, RoleEnum
from common.schemas import (
    BookingCreate,
    BookingPage,
    BookingRead,
    Caller,
    OccupiedInterval,
    PageMeta,
    RoomAvailability,
)

from . import repository
from .permissions import can_manage_booking
from .state_machine import ensure_payment_transition, ensure_status_transition

logger = logging.getLogger(__name__)

T = TypeVar("T")

CENTS = Decimal("0.01")


def count_nights(check_in: date, check_out: date) -> int:
    return math.ceil((check_out - check_in) / timedelta(days=1))


def compute_total_price(price_per_night: Decimal, nights: int) -> Decimal:
    return (Decimal(price_per_night) * nights).quantize(CENTS, rounding=ROUND_HALF_UP)


def fully_booked_dates(intervals: List[OccupiedInterval], quantity: int, from_date: date) -> List[date]:
    """Nights on or after ``from_date`` whose coverage has reached ``quantity``."""
    if quantity <= 0:
        return []
    coverage: Counter[date] = Counter()
    for interval in intervals:
        night = max(interval.check_in, from_date)
        while night < interval.check_out:
            coverage[night] += 1
            night += timedelta(days=1)
    return sorted(night for night, count in coverage.items() if count >= quantity)


class BookingService:
    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        settings: Optional[Settings] = None,
        availability_cache: Optional[SimpleTTLCache[RoomAvailability]] = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self.availability_cache: SimpleTTLCache[RoomAvailability] = availability_cache or SimpleTTLCache(
            ttl=self._settings.room_cache_ttl
        )

    # -- transactions -------------------------------------------------------

    def _run_serializable(self, op_name: str, work: Callable[[Session], T]) -> T:
        """Run ``work`` in a SERIALIZABLE transaction, retrying serialization failures."""
        max_retries = self._settings.booking_max_retries
        attempt = 0
        while True:
            attempt += 1
            try:
                with self._session_factory() as db, db.begin():
                    db.connection(execution_options={"isolation_level": SERIALIZABLE})
                    return work(db)
            except DBAPIError as exc:
                if not is_serialization_failure(exc):
                    raise
                if attempt > max_retries:
                    logger.warning("%s aborted after %d attempts: %s", op_name, attempt, exc.__class__.__name__)
                    raise BookingConflict() from exc
                delay = retry_delay(attempt, self._settings.booking_retry_base_delay)
                logger.info("%s hit a serialization failure, retry %d in %.3fs", op_name, attempt, delay)
                time.sleep(delay)

    # -- creation -----------------------------------------------------------

    def create_booking(self, guest_id: str, booking_in: BookingCreate) -> Booking:
        if booking_in.check_in >= booking_in.check_out:
            raise InvalidDateRange()

        booking = self._run_serializable("create_booking", lambda db: self._insert_booking(db, guest_id, booking_in))
        self._invalidate_availability(booking.room_id)
        logger.info(
            "Booking %s created for room %s (%s -> %s) by %s",
            booking.id,
            booking.room_id,
            booking.check_in,
            booking.check_out,
            guest_id,
        )
        return booking

    def _insert_booking(self, db: Session, guest_id: str, booking_in: BookingCreate) -> Booking:
        room = repository.lock_bookable_room(db, booking_in.room_id)
        if room is None:
            raise RoomNotFound()

        for field, requested, limit in (
            ("adults", booking_in.adults, room.capacity_adults),
            ("children", booking_in.children, room.capacity_children),
        ):
            if requested > limit:
                logger.info("Room %s rejected %d %s (max %d)", room.id, requested, field, limit)
                raise CapacityExceeded(
                    f"Room capacity exceeded for {field}. Max: {limit}",
                    details={"field": field, "max": limit},
                )

        overlapping = repository.count_overlapping(db, room.id, booking_in.check_in, booking_in.check_out)
        if overlapping >= room.quantity:
            logger.info(
                "Room %s unavailable for %s -> %s (%d of %d units taken)",
                room.id,
                booking_in.check_in,
                booking_in.check_out,
                overlapping,
                room.quantity,
            )
            raise RoomUnavailable()

        nights = count_nights(booking_in.check_in, booking_in.check_out)
        if nights <= 0:
            raise InvalidDateRange("Invalid booking duration")

        now = datetime.utcnow()
        booking = Booking(
            user_id=guest_id,
            hotel_id=room.hotel_id,
            room_id=room.id,
            check_in=booking_in.check_in,
            check_out=booking_in.check_out,
            adults=booking_in.adults,
            children=booking_in.children,
            total_price=compute_total_price(room.price_per_night, nights),
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            guest_name=booking_in.guest_name,
            guest_email=booking_in.guest_email,
            special_requests=booking_in.special_requests,
            created_at=now,
            updated_at=now,
        )
        return repository.insert_booking(db, booking)

    # -- state machine ------------------------------------------------------

    def _load_for_update(self, db: Session, booking_id: str):
        loaded = repository.lock_booking(db, booking_id)
        if loaded is None:
            raise BookingNotFound()
        return loaded

    def cancel_booking(self, booking_id: str, caller: Caller) -> Booking:
        def work(db: Session) -> Booking:
            booking, owner_id = self._load_for_update(db, booking_id)
            if not can_manage_booking(caller, booking, owner_id).can_cancel:
                raise Forbidden("You are not authorized to cancel this booking")
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelled()
            ensure_status_transition(booking.status, BookingStatus.CANCELLED)
            booking.status = BookingStatus.CANCELLED
            booking.updated_at = datetime.utcnow()
            return booking

        booking = self._run_serializable("cancel_booking", work)
        self._invalidate_availability(booking.room_id)
        logger.info("Booking %s cancelled by %s", booking.id, caller.user_id)
        return booking

    def update_booking_status(self, booking_id: str, caller: Caller, new_status: BookingStatus) -> Booking:
        def work(db: Session) -> Booking:
            booking, owner_id = self._load_for_update(db, booking_id)
            if not can_manage_booking(caller, booking, owner_id).can_manage:
                raise Forbidden("You are not authorized to update this booking status")
            ensure_status_transition(booking.status, new_status)
            booking.status = new_status
            booking.updated_at = datetime.utcnow()
            return booking

        booking = self._run_serializable("update_booking_status", work)
        self._invalidate_availability(booking.room_id)
        logger.info("Booking %s status set to %s by %s", booking.id, new_status.value, caller.user_id)
        return booking

    def update_payment_status(self, booking_id: str, caller: Caller, new_payment_status: PaymentStatus) -> Booking:
        def work(db: Session) -> Booking:
            booking, owner_id = self._load_for_update(db, booking_id)
            if not can_manage_booking(caller, booking, owner_id).can_manage:
                raise Forbidden("You are not authorized to update this payment status")
            ensure_payment_transition(booking.status, booking.payment_status, new_payment_status)
            booking.payment_status = new_payment_status
            booking.updated_at = datetime.utcnow()
            return booking

        booking = self._run_serializable("update_payment_status", work)
        logger.info("Booking %s payment status set to %s by %s", booking.id, new_payment_status.value, caller.user_id)
        return booking

    # -- reads --------------------------------------------------------------

    def _page_bounds(self, page: int, limit: int) -> tuple[int, int]:
        page = max(page, 1)
        limit = min(max(limit, 1), self._settings.max_page_size)
        return page, limit

    @staticmethod
    def _to_page(items: List[Booking], total: int, page: int, limit: int) -> BookingPage:
        return BookingPage(
            items=[BookingRead.model_validate(item) for item in items],
            meta=PageMeta(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
        )

    def list_my_bookings(self, caller: Caller, page: int = 1, limit: Optional[int] = None) -> BookingPage:
        page, limit = self._page_bounds(page, limit or self._settings.default_page_size)
        with self._session_factory() as db:
            items, total = repository.list_by_user(db, caller.user_id, (page - 1) * limit, limit)
            return self._to_page(items, total, page, limit)

    def list_hotel_bookings(self, caller: Caller, page: int = 1, limit: Optional[int] = None) -> BookingPage:
        if caller.role not in {RoleEnum.HOST, RoleEnum.ADMIN}:
            raise Forbidden("Only hosts can list hotel bookings")
        page, limit = self._page_bounds(page, limit or self._settings.default_page_size)
        owner_id = None if caller.role == RoleEnum.ADMIN else caller.user_id
        with self._session_factory() as db:
            items, total = repository.list_by_owner(db, owner_id, (page - 1) * limit, limit)
            return self._to_page(items, total, page, limit)

    @staticmethod
    def _availability_key(room_id: str) -> str:
        return f"room-availability:{room_id}"

    def _invalidate_availability(self, room_id: str) -> None:
        self.availability_cache.pop(self._availability_key(room_id))

    def get_room_availability(self, room_id: str, from_date: Optional[date] = None) -> RoomAvailability:
        """Occupied intervals for a room's calendar. Never consulted when booking."""
        from_date = from_date or date.today()
        cache_key = self._availability_key(room_id)
        cached = self.availability_cache.get(cache_key)
        if cached is not None and cached.from_date == from_date:
            return cached

        with self._session_factory() as db:
            room = repository.get_bookable_room(db, room_id)
            if room is None:
                return RoomAvailability(
                    room_id=room_id, from_date=from_date, quantity=0, occupied=[], fully_booked_dates=[]
                )
            quantity = room.quantity
            occupied = [
                OccupiedInterval(check_in=booking.check_in, check_out=booking.check_out)
                for booking in repository.list_occupied(db, room_id, from_date)
            ]

        availability = RoomAvailability(
            room_id=room_id,
            from_date=from_date,
            quantity=quantity,
            occupied=occupied,
            fully_booked_dates=fully_booked_dates(occupied, quantity, from_date),
        )
        self.availability_cache.set(cache_key, availability)
        return availability

"""Data access for bookings and the room rows the booking core reads.

Every overlap query uses half-open intervals: a stay occupies the nights
``[check_in, check_out)``, so a check-out on day X and a check-in on day X
do not collide.
"""
from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from common.models import Booking, BookingStatus, Hotel, Room


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start < b_end and b_start < a_end


def _overlap_criteria(room_id: str, check_in: date, check_out: date) -> tuple:
    return (
        Booking.room_id == room_id,
        Booking.status != BookingStatus.CANCELLED,
        Booking.check_in < check_out,
        Booking.check_out > check_in,
    )


def count_overlapping(db: Session, room_id: str, check_in: date, check_out: date) -> int:
    """Number of non-cancelled bookings of ``room_id`` sharing a night with the range."""
    count = db.query(func.count(Booking.id)).filter(*_overlap_criteria(room_id, check_in, check_out)).scalar()
    return count or 0


def lock_bookable_room(db: Session, room_id: str) -> Optional[Room]:
    """Load an active room of an active hotel and hold its row lock until commit."""
    return (
        db.query(Room)
        .join(Hotel, Hotel.id == Room.hotel_id)
        .filter(Room.id == room_id, Room.is_active.is_(True), Hotel.is_active.is_(True))
        .with_for_update(of=Room)
        .first()
    )


def get_bookable_room(db: Session, room_id: str) -> Optional[Room]:
    return (
        db.query(Room)
        .join(Hotel, Hotel.id == Room.hotel_id)
        .filter(Room.id == room_id, Room.is_active.is_(True), Hotel.is_active.is_(True))
        .first()
    )


def insert_booking(db: Session, booking: Booking) -> Booking:
    db.add(booking)
    db.flush()
    return booking


def lock_booking(db: Session, booking_id: str) -> Optional[Tuple[Booking, Optional[str]]]:
    """Load a booking under a row lock together with its hotel's owner id."""
    booking = db.query(Booking).filter(Booking.id == booking_id).with_for_update().first()
    if booking is None:
        return None
    owner_id = db.query(Hotel.owner_id).filter(Hotel.id == booking.hotel_id).scalar()
    return booking, owner_id


def list_by_user(db: Session, user_id: str, offset: int, limit: int) -> Tuple[List[Booking], int]:
    query = db.query(Booking).filter(Booking.user_id == user_id)
    total = query.count()
    items = query.order_by(Booking.created_at.desc(), Booking.id).offset(offset).limit(limit).all()
    return items, total


def list_by_owner(db: Session, owner_id: Optional[str], offset: int, limit: int) -> Tuple[List[Booking], int]:
    """Bookings of hotels owned by ``owner_id``; ``None`` lists every hotel."""
    query = db.query(Booking)
    if owner_id is not None:
        query = query.join(Hotel, Hotel.id == Booking.hotel_id).filter(Hotel.owner_id == owner_id)
    total = query.count()
    items = query.order_by(Booking.check_in.desc(), Booking.id).offset(offset).limit(limit).all()
    return items, total


def list_occupied(db: Session, room_id: str, from_date: date) -> List[Booking]:
    return (
        db.query(Booking)
        .filter(
            Booking.room_id == room_id,
            Booking.status != BookingStatus.CANCELLED,
            Booking.check_out > from_date,
        )
        .order_by(Booking.check_in, Booking.check_out)
        .all()
    )

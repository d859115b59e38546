"""Pydantic schemas for the booking API."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from .models import BookingStatus, PaymentStatus, RoleEnum


class Caller(BaseModel):
    """Identity resolved from the bearer token."""

    user_id: str
    role: RoleEnum = RoleEnum.GUEST


class BookingCreate(BaseModel):
    room_id: str
    check_in: date
    check_out: date
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    guest_name: Optional[str] = Field(None, max_length=255)
    guest_email: Optional[EmailStr] = None
    special_requests: Optional[str] = Field(None, max_length=2000)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class PaymentStatusUpdate(BaseModel):
    payment_status: PaymentStatus


class BookingRead(BaseModel):
    id: str
    user_id: str
    hotel_id: str
    room_id: str
    check_in: date
    check_out: date
    adults: int
    children: int
    total_price: Decimal
    currency: str
    status: BookingStatus
    payment_status: PaymentStatus
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    special_requests: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class BookingPage(BaseModel):
    items: List[BookingRead]
    meta: PageMeta


class OccupiedInterval(BaseModel):
    check_in: date
    check_out: date


class RoomAvailability(BaseModel):
    room_id: str
    from_date: date
    quantity: int
    occupied: List[OccupiedInterval]
    fully_booked_dates: List[date]

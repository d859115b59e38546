"""Who may act on a booking."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from common.models import Booking, RoleEnum
from common.schemas import Caller


@dataclass(frozen=True)
class BookingPermissions:
    is_guest_owner: bool
    is_host_owner: bool

    @property
    def can_cancel(self) -> bool:
        return self.is_guest_owner or self.is_host_owner

    @property
    def can_manage(self) -> bool:
        """Status and payment changes are reserved for the hotel side."""
        return self.is_host_owner


def can_manage_booking(caller: Caller, booking: Booking, hotel_owner_id: Optional[str]) -> BookingPermissions:
    is_admin = caller.role == RoleEnum.ADMIN
    return BookingPermissions(
        is_guest_owner=booking.user_id == caller.user_id,
        is_host_owner=is_admin or (hotel_owner_id is not None and hotel_owner_id == caller.user_id),
    )

"""Legal transitions for booking status and payment status."""
from __future__ import annotations

from typing import Dict, FrozenSet

from common.errors import InvalidTransition
from common.models import BookingStatus, PaymentStatus

BOOKING_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    # a failed charge can be attempted again
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
    PaymentStatus.REFUNDED: frozenset(),
}


def is_terminal(status: BookingStatus) -> bool:
    return not BOOKING_TRANSITIONS[status]


def can_transition_status(current: BookingStatus, new: BookingStatus) -> bool:
    return new in BOOKING_TRANSITIONS[current]


def can_transition_payment(booking_status: BookingStatus, current: PaymentStatus, new: PaymentStatus) -> bool:
    if new not in PAYMENT_TRANSITIONS[current]:
        return False
    # Refunding is the only payment change a cancelled booking accepts.
    if booking_status == BookingStatus.CANCELLED:
        return current == PaymentStatus.PAID and new == PaymentStatus.REFUNDED
    return True


def ensure_status_transition(current: BookingStatus, new: BookingStatus) -> None:
    if not can_transition_status(current, new):
        raise InvalidTransition(
            f"Cannot change booking status from {current.value} to {new.value}",
            details={"from": current.value, "to": new.value},
        )


def ensure_payment_transition(booking_status: BookingStatus, current: PaymentStatus, new: PaymentStatus) -> None:
    if not can_transition_payment(booking_status, current, new):
        raise InvalidTransition(
            f"Cannot change payment status from {current.value} to {new.value} "
            f"on a {booking_status.value} booking",
            details={"from": current.value, "to": new.value, "booking_status": booking_status.value},
        )

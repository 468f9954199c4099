"""Booking status state machine."""

from enum import Enum
from typing import Dict, FrozenSet

from ferry.exceptions import InvalidStateError


class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    BOARDED = "boarded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CHANGED = "changed"
    REFUNDED = "refunded"


# Statuses whose passengers count toward the trip manifest and the reconciled seat counters
MANIFEST_STATUSES = (
    BookingStatus.CONFIRMED.value,
    BookingStatus.CHECKED_IN.value,
    BookingStatus.BOARDED.value,
    BookingStatus.COMPLETED.value,
)

# Online seats are reserved at creation, so unpaid online bookings already hold theirs
ONLINE_HOLDING_STATUSES = (BookingStatus.PENDING_PAYMENT.value,) + MANIFEST_STATUSES

RESCHEDULABLE_STATUSES = frozenset({
    BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED,
    BookingStatus.CHECKED_IN, BookingStatus.BOARDED,
})

REFUNDABLE_STATUSES = frozenset({
    BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN,
    BookingStatus.BOARDED, BookingStatus.COMPLETED,
})

CHECK_IN_STATUSES = frozenset({
    BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN, BookingStatus.BOARDED,
})

TERMINAL_STATUSES = frozenset({
    BookingStatus.REFUNDED, BookingStatus.CANCELLED, BookingStatus.CHANGED,
})

TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: frozenset({BookingStatus.CONFIRMED, BookingStatus.REFUNDED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CHECKED_IN, BookingStatus.BOARDED, BookingStatus.REFUNDED}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.BOARDED, BookingStatus.REFUNDED}),
    BookingStatus.BOARDED: frozenset({BookingStatus.COMPLETED, BookingStatus.REFUNDED}),
    BookingStatus.COMPLETED: frozenset({BookingStatus.REFUNDED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.CHANGED: frozenset(),
    BookingStatus.REFUNDED: frozenset(),
}

# Forward order used for check-in and per-ticket status aggregation
CHECK_IN_RANK = {
    BookingStatus.CONFIRMED: 0,
    BookingStatus.CHECKED_IN: 1,
    BookingStatus.BOARDED: 2,
}


class BookingStateMachine:
    """Legal transitions between booking statuses"""

    @staticmethod
    def coerce(status) -> BookingStatus:
        try:
            return BookingStatus(status)
        except ValueError:
            raise InvalidStateError(f"Unknown booking status: {status}", current_status=str(status))

    @classmethod
    def can_transition(cls, current, target) -> bool:
        return cls.coerce(target) in TRANSITIONS.get(cls.coerce(current), frozenset())

    @classmethod
    def validate_transition(cls, current, target):
        current_status = cls.coerce(current)
        target_status = cls.coerce(target)
        if target_status not in TRANSITIONS[current_status]:
            raise InvalidStateError(
                f"Cannot move booking from {current_status.value} to {target_status.value}",
                current_status=current_status.value,
                target_status=target_status.value,
            )

    @classmethod
    def apply(cls, booking, target) -> BookingStatus:
        """Check the booking's current status and write the new one"""
        cls.validate_transition(booking.status, target)
        booking.status = cls.coerce(target).value
        return cls.coerce(target)

    @classmethod
    def is_terminal(cls, status) -> bool:
        return cls.coerce(status) in TERMINAL_STATUSES

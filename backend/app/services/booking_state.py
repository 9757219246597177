"""
Booking lifecycle as an explicit transition table.

    PendingPayment --CONFIRM_PAYMENT--> Confirmed
    PendingPayment --CANCEL-----------> Cancelled
    Confirmed      --CANCEL-----------> Cancelled
    PendingPayment --DELETE-----------> (record removed)
    Cancelled      --DELETE-----------> (record removed)

Anything not in the table is rejected here, not at call sites.
"""

import enum
from typing import Optional

from app.core.exceptions import InvalidStateError
from app.models.booking import BookingStatus


class BookingAction(str, enum.Enum):
    CONFIRM_PAYMENT = "confirm_payment"
    CANCEL = "cancel"
    DELETE = "delete"


# None as a target means the booking record is removed.
_TRANSITIONS: dict[tuple[BookingStatus, BookingAction], Optional[BookingStatus]] = {
    (BookingStatus.PENDING_PAYMENT, BookingAction.CONFIRM_PAYMENT): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING_PAYMENT, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.PENDING_PAYMENT, BookingAction.DELETE): None,
    (BookingStatus.CANCELLED, BookingAction.DELETE): None,
}

SEAT_HOLDING_STATES = frozenset({BookingStatus.PENDING_PAYMENT, BookingStatus.CONFIRMED})

_REJECTIONS = {
    BookingAction.CONFIRM_PAYMENT: "Only bookings awaiting payment can be paid",
    BookingAction.CANCEL: "Booking is already cancelled",
    BookingAction.DELETE: "Only cancelled or unpaid bookings can be deleted; cancel it first",
}


class BookingStateMachine:
    @staticmethod
    def can(status: BookingStatus, action: BookingAction) -> bool:
        return (BookingStatus(status), action) in _TRANSITIONS

    @staticmethod
    def next_state(status: BookingStatus, action: BookingAction) -> Optional[BookingStatus]:
        """Target state for `action`, or None when the record is removed."""
        key = (BookingStatus(status), action)
        if key not in _TRANSITIONS:
            raise InvalidStateError(f"{_REJECTIONS[action]} (current status: {key[0].value})")
        return _TRANSITIONS[key]

    @staticmethod
    def holds_seat(status: BookingStatus) -> bool:
        return BookingStatus(status) in SEAT_HOLDING_STATES

    @staticmethod
    def allowed_actions(status: BookingStatus) -> set[BookingAction]:
        current = BookingStatus(status)
        return {action for (state, action) in _TRANSITIONS if state == current}

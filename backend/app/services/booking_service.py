"""
Booking lifecycle: create, pay, cancel, delete.

CONCURRENCY STRATEGY
====================

Seat allocation:
  Delegated to the seat ledger (per-seat lock + primary key). The booking
  row and its seat hold commit in one transaction, or not at all.

Lifecycle transitions (confirm / cancel / delete):
  1. Take the per-booking lock (bounded wait, BusyError on timeout) so a
     confirm and a cancel for the same booking cannot interleave in this
     process.
  2. Re-read the booking, ask the state machine whether the action is
     legal from the current status.
  3. Apply the change as a compare-and-swap:
       UPDATE bookings SET status = :new, version = version + 1
       WHERE id = :id AND status = :old AND version = :seen
     rowcount == 0 means another process got there first -> BusyError,
     the caller may retry and will then see the new state.
  4. Commit inside the lock, then send notifications outside it.

Notifications never roll back a transition: the transition is already
committed when the dispatcher runs, and the dispatcher swallows send
failures after recording them.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import (
    BusyError,
    ForbiddenError,
    InvalidPaymentInputError,
    InvalidSeatError,
    InvalidStateError,
    NotFoundError,
    SeatTakenError,
    TripAlreadyDepartedError,
)
from app.core.locks import KeyedLocks
from app.core.logging import get_logger
from app.core.metrics import record_booking_attempt, record_transition
from app.core.security import owner_key
from app.models.booking import Booking, BookingStatus
from app.models.train import Train
from app.schemas.booking import BookingCreate, PaymentMethod, PaymentRequest
from app.services.booking_state import BookingAction, BookingStateMachine
from app.services.notification_service import NotificationDispatcher
from app.services.refund import RefundQuote, quote_refund
from app.services.seat_ledger import ReservationResult, SeatLedger, seat_ledger
from app.services.trip_service import get_trip

logger = get_logger(__name__)
settings = get_settings()

booking_locks = KeyedLocks("booking", timeout=settings.LOCK_TIMEOUT_SECONDS)


async def create_booking(
    db: AsyncSession,
    booking_data: BookingCreate,
    user_id: Optional[int],
    now: datetime,
    price: Optional[Decimal] = None,
    ledger: SeatLedger = seat_ledger,
) -> Booking:
    """
    Reserve a seat and create a PendingPayment booking for it.
    The price is fixed here and never recalculated.
    """
    trip = await get_trip(db, booking_data.trip_id)
    train = await db.get(Train, trip.train_id)
    if train is not None and booking_data.seat_number > train.total_seats:
        raise InvalidSeatError(
            f"Seat {booking_data.seat_number} does not exist on train {train.train_number} "
            f"({train.total_seats} seats)"
        )

    booking = Booking(
        id=uuid.uuid4(),
        trip_id=trip.id,
        seat_number=booking_data.seat_number,
        passenger_name=booking_data.passenger_name,
        passenger_phone=booking_data.passenger_phone,
        passenger_email=booking_data.passenger_email,
        price=price if price is not None else settings.SEAT_PRICE,
        user_id=owner_key(user_id),
        booking_date=now,
        status=BookingStatus.PENDING_PAYMENT.value,
        version=1,
    )
    db.add(booking)

    try:
        result = await ledger.try_reserve(db, booking.trip_id, booking.seat_number, booking.id)
    except BusyError:
        await db.rollback()
        record_booking_attempt("busy")
        raise

    if result is ReservationResult.ALREADY_TAKEN:
        record_booking_attempt("seat_taken")
        logger.warning(
            "booking_failed_seat_taken",
            trip_id=booking_data.trip_id,
            seat=booking_data.seat_number,
        )
        raise SeatTakenError(
            f"Seat {booking_data.seat_number} on trip {booking_data.trip_id} is already taken"
        )

    record_booking_attempt("reserved")
    logger.info(
        "booking_created",
        booking_id=str(booking.id),
        trip_id=booking.trip_id,
        seat=booking.seat_number,
        user_id=booking.user_id,
        price=str(booking.price),
    )
    return booking


async def confirm_payment(
    db: AsyncSession,
    booking_id: uuid.UUID,
    payment: PaymentRequest,
    user_id: Optional[int] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Booking:
    """
    PendingPayment -> Confirmed.

    No departure-time guard: a booking may be paid after its train left.
    Receipts (email + SMS) go out after the commit, best-effort.
    """
    async with booking_locks.hold(booking_id):
        booking = await _load_booking(db, booking_id, user_id)
        target = _next_state(booking, BookingAction.CONFIRM_PAYMENT)
        _validate_payment(payment)

        await _compare_and_set_status(db, booking, target, payment_method=payment.payment_method.value)
        await db.commit()
        await db.refresh(booking)

    record_transition(BookingAction.CONFIRM_PAYMENT.value, ok=True)
    logger.info(
        "booking_confirmed",
        booking_id=str(booking.id),
        payment_method=payment.payment_method.value,
    )

    if dispatcher is not None:
        await dispatcher.notify_booking_confirmed(db, booking, payment.payment_method.value)
    return booking


async def quote_cancellation(
    db: AsyncSession,
    booking_id: uuid.UUID,
    now: datetime,
    user_id: Optional[int] = None,
) -> RefundQuote:
    """What cancelling right now would refund. Changes nothing."""
    booking = await _load_booking(db, booking_id, user_id)
    BookingStateMachine.next_state(booking.status, BookingAction.CANCEL)
    trip = await get_trip(db, booking.trip_id)
    _ensure_not_departed(booking, trip.departure_time, now)
    return quote_refund(booking.price, trip.departure_time, now)


async def cancel_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    now: datetime,
    user_id: Optional[int] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    ledger: SeatLedger = seat_ledger,
) -> tuple[Booking, RefundQuote]:
    """
    PendingPayment | Confirmed -> Cancelled, only before departure.
    Releases the seat in the same transaction and reports the refund.
    """
    async with booking_locks.hold(booking_id):
        booking = await _load_booking(db, booking_id, user_id)
        target = _next_state(booking, BookingAction.CANCEL)

        trip = await get_trip(db, booking.trip_id)
        _ensure_not_departed(booking, trip.departure_time, now)
        quote = quote_refund(booking.price, trip.departure_time, now)

        await _compare_and_set_status(db, booking, target)
        await ledger.release(db, booking.trip_id, booking.seat_number, booking_id=booking.id)
        await db.commit()
        await db.refresh(booking)

    record_transition(BookingAction.CANCEL.value, ok=True)
    logger.info(
        "booking_cancelled",
        booking_id=str(booking.id),
        trip_id=booking.trip_id,
        seat_released=booking.seat_number,
        deduction_percent=str(quote.deduction_percent),
        refund_amount=str(quote.refund_amount),
    )

    if dispatcher is not None:
        await dispatcher.notify_booking_cancelled(db, booking, quote)
    return booking, quote


async def delete_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    user_id: Optional[int] = None,
    ledger: SeatLedger = seat_ledger,
) -> None:
    """
    Remove a PendingPayment or Cancelled booking for good.
    A PendingPayment booking gives its seat back as part of the delete.
    """
    async with booking_locks.hold(booking_id):
        booking = await _load_booking(db, booking_id, user_id)
        _next_state(booking, BookingAction.DELETE)

        await ledger.release(db, booking.trip_id, booking.seat_number, booking_id=booking.id)
        result = await db.execute(
            delete(Booking)
            .where(
                Booking.id == booking.id,
                Booking.status == booking.status,
                Booking.version == booking.version,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise BusyError(f"Booking {booking_id} changed concurrently, please retry")
        await db.commit()
        db.expunge(booking)

    record_transition(BookingAction.DELETE.value, ok=True)
    logger.info("booking_deleted", booking_id=str(booking_id), previous_status=booking.status)


async def get_booking(db: AsyncSession, booking_id: uuid.UUID, user_id: Optional[int] = None) -> Booking:
    return await _load_booking(db, booking_id, user_id)


async def get_user_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    """Get all bookings for a user, newest first."""
    result = await db.execute(
        select(Booking)
        .where(Booking.user_id == owner_key(user_id))
        .order_by(Booking.booking_date.desc())
    )
    return list(result.scalars().all())


async def _load_booking(db: AsyncSession, booking_id: uuid.UUID, user_id: Optional[int]) -> Booking:
    """
    Fresh read of a booking. With user_id, the caller must own it;
    without, the caller is trusted (internal use).
    """
    booking = await db.get(Booking, booking_id, populate_existing=True)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")
    if user_id is not None and booking.user_id != owner_key(user_id):
        raise ForbiddenError("This booking belongs to another user")
    return booking


def _next_state(booking: Booking, action: BookingAction) -> Optional[BookingStatus]:
    try:
        return BookingStateMachine.next_state(booking.status, action)
    except InvalidStateError:
        record_transition(action.value, ok=False)
        logger.warning(
            "booking_transition_rejected",
            booking_id=str(booking.id),
            status=booking.status,
            action=action.value,
        )
        raise


def _ensure_not_departed(booking: Booking, departure_time: datetime, now: datetime) -> None:
    if now >= departure_time:
        record_transition(BookingAction.CANCEL.value, ok=False)
        raise TripAlreadyDepartedError(
            f"Trip {booking.trip_id} departed at {departure_time.isoformat()}; "
            f"booking {booking.short_id} can no longer be cancelled"
        )


def _validate_payment(payment: PaymentRequest) -> None:
    # Apple Pay is authenticated on the device; K-NET needs the card PIN
    if payment.payment_method is PaymentMethod.KNET and not (payment.pin or "").strip():
        record_transition(BookingAction.CONFIRM_PAYMENT.value, ok=False)
        raise InvalidPaymentInputError("A PIN is required for K-NET payments")


async def _compare_and_set_status(
    db: AsyncSession,
    booking: Booking,
    target: BookingStatus,
    **values,
) -> None:
    result = await db.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status == booking.status,
            Booking.version == booking.version,
        )
        .values(status=target.value, version=Booking.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        logger.info("booking_retry", booking_id=str(booking.id), reason="version_conflict")
        raise BusyError(f"Booking {booking.id} changed concurrently, please retry")

"""
Booking endpoints: reserve, pay, cancel, delete.

Creating a booking works without a token (the booking is then owned by
nobody and can never be paid or cancelled through the API). Everything
else requires the owner's token.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.core.security import get_current_user_id, get_optional_user_id
from app.db.session import get_db
from app.models.user import User
from app.schemas.booking import (
    BookingCancelResponse,
    BookingCreate,
    BookingResponse,
    PaymentRequest,
    RefundQuoteResponse,
)
from app.services import booking_service
from app.services.notification_service import NotificationDispatcher, get_dispatcher
from app.services.refund import RefundQuote
from app.services.seat_ledger import SeatLedger, get_seat_ledger

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _quote_response(booking_id: uuid.UUID, quote: RefundQuote) -> RefundQuoteResponse:
    return RefundQuoteResponse(
        booking_id=booking_id,
        price=quote.price,
        deduction_percent=quote.deduction_percent,
        refund_amount=quote.refund_amount,
        hours_to_departure=round(quote.time_to_departure.total_seconds() / 3600, 2),
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    user_id: Optional[int] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """
    Reserve a seat. Exactly one of several concurrent requests for the
    same seat succeeds; the others get 409 seat_taken.
    """
    if booking_data.passenger_email is None and user_id is not None:
        user = await db.get(User, user_id)
        if user is not None:
            booking_data = booking_data.model_copy(update={"passenger_email": user.email})

    return await booking_service.create_booking(db, booking_data, user_id, clock.now(), ledger=ledger)


@router.get("/", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """All bookings of the authenticated user, newest first."""
    return await booking_service.get_user_bookings(db, user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: uuid.UUID,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await booking_service.get_booking(db, booking_id, user_id)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def pay_booking(
    booking_id: uuid.UUID,
    payment: PaymentRequest,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Confirm a PendingPayment booking. Receipts are sent best-effort."""
    return await booking_service.confirm_payment(
        db, booking_id, payment, user_id=user_id, dispatcher=dispatcher
    )


@router.get("/{booking_id}/refund-quote", response_model=RefundQuoteResponse)
async def get_refund_quote(
    booking_id: uuid.UUID,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """What a cancellation right now would refund."""
    quote = await booking_service.quote_cancellation(db, booking_id, clock.now(), user_id=user_id)
    return _quote_response(booking_id, quote)


@router.post("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: uuid.UUID,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """Cancel before departure; the seat goes back on sale immediately."""
    booking, quote = await booking_service.cancel_booking(
        db, booking_id, clock.now(), user_id=user_id, dispatcher=dispatcher, ledger=ledger
    )
    return BookingCancelResponse(
        message="Booking cancelled successfully",
        booking_id=booking.id,
        status=booking.status,
        refund=_quote_response(booking.id, quote),
    )


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_booking(
    booking_id: uuid.UUID,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """Remove an unpaid or cancelled booking."""
    await booking_service.delete_booking(db, booking_id, user_id=user_id, ledger=ledger)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

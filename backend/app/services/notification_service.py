"""
Notification dispatcher.

Fan-out is per recipient, not a transaction: each passenger gets one
independent send attempt, attempts run concurrently, and every attempt is
written to the notifications audit log with its outcome. A failed send
never blocks the others and never undoes the state change that caused it.
There are no automatic retries; an operator re-edits the trip to resend.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_notification
from app.infrastructure.messaging import MessagingSender, SendResult, get_messaging_sender
from app.models.booking import Booking, BookingStatus
from app.models.notification import Notification, NotificationType
from app.models.trip import Trip, TripStatus
from app.services.refund import RefundQuote, present_amount

logger = get_logger(__name__)
settings = get_settings()


def normalize_phone(phone: str) -> str:
    """Prefix local numbers with the country code: 55512345 -> +96555512345."""
    phone = phone.strip()
    if not phone.startswith("+") and len(phone) == settings.SMS_LOCAL_NUMBER_LENGTH:
        return settings.SMS_COUNTRY_CODE + phone
    return phone


@dataclass(frozen=True)
class _Outgoing:
    recipient: str
    message: str
    type: NotificationType
    subject: Optional[str] = None
    trip_id: Optional[int] = None
    booking_id: Optional[uuid.UUID] = None


class NotificationDispatcher:
    def __init__(self, sender: MessagingSender):
        self.sender = sender

    async def on_trip_status_changed(self, db: AsyncSession, trip: Trip) -> list[Notification]:
        """
        Hook for every trip status change. Only Delayed fans out: one SMS
        per non-cancelled booking on the trip.
        """
        if trip.status != TripStatus.DELAYED.value:
            logger.debug("trip_status_no_fanout", trip_id=trip.id, status=trip.status)
            return []

        result = await db.execute(
            select(Booking)
            .where(
                Booking.trip_id == trip.id,
                Booking.status != BookingStatus.CANCELLED.value,
            )
            .order_by(Booking.booking_date.asc())
        )
        bookings = result.scalars().all()

        message = (
            f"Alert: your trip #{trip.id} is delayed by {trip.delay_minutes or 0} minutes. "
            f"We apologize for the inconvenience."
        )
        outgoing = [
            _Outgoing(
                recipient=normalize_phone(booking.passenger_phone),
                message=message,
                type=NotificationType.SMS,
                trip_id=trip.id,
                booking_id=booking.id,
            )
            for booking in bookings
        ]

        notifications = await self._dispatch(db, outgoing)
        logger.info(
            "delay_notifications_dispatched",
            trip_id=trip.id,
            delay_minutes=trip.delay_minutes,
            attempted=len(notifications),
            sent=sum(1 for n in notifications if n.is_sent),
        )
        return notifications

    async def notify_booking_confirmed(
        self,
        db: AsyncSession,
        booking: Booking,
        payment_method: str,
    ) -> list[Notification]:
        """Email receipt and SMS receipt, independent of each other."""
        email_body = (
            f"Dear {booking.passenger_name}, your booking for trip #{booking.trip_id} "
            f"(seat {booking.seat_number}) is confirmed after payment via {payment_method}. Thank you!"
        )
        sms_text = (
            f"Payment via {payment_method} succeeded! Booking {booking.short_id} is now confirmed. "
            f"Have a pleasant trip!"
        )
        return await self._dispatch(
            db,
            [
                _Outgoing(
                    recipient=booking.passenger_email or settings.RECEIPT_FALLBACK_EMAIL,
                    subject="Train booking confirmation",
                    message=email_body,
                    type=NotificationType.EMAIL,
                    trip_id=booking.trip_id,
                    booking_id=booking.id,
                ),
                _Outgoing(
                    recipient=normalize_phone(booking.passenger_phone),
                    message=sms_text,
                    type=NotificationType.SMS,
                    trip_id=booking.trip_id,
                    booking_id=booking.id,
                ),
            ],
        )

    async def notify_booking_cancelled(
        self,
        db: AsyncSession,
        booking: Booking,
        quote: RefundQuote,
    ) -> Notification:
        text = (
            f"Booking {booking.short_id} has been cancelled. "
            f"A {quote.deduction_percent}% deduction applies and "
            f"{present_amount(quote.refund_amount)} {settings.CURRENCY} will be refunded within a few days."
        )
        [notification] = await self._dispatch(
            db,
            [
                _Outgoing(
                    recipient=normalize_phone(booking.passenger_phone),
                    message=text,
                    type=NotificationType.SMS,
                    trip_id=booking.trip_id,
                    booking_id=booking.id,
                )
            ],
        )
        return notification

    async def _dispatch(self, db: AsyncSession, outgoing: Sequence[_Outgoing]) -> list[Notification]:
        if not outgoing:
            return []

        # Sends are concurrent; the session is only touched afterwards.
        results = await asyncio.gather(*(self._send(item) for item in outgoing))

        notifications = []
        for item, result in zip(outgoing, results):
            notification = Notification(
                recipient=item.recipient,
                message=item.message,
                type=item.type.value,
                trip_id=item.trip_id,
                booking_id=item.booking_id,
                is_sent=result.success,
                error_message=result.error_message,
            )
            db.add(notification)
            notifications.append(notification)
            record_notification(item.type.value.lower(), result.success)
            if not result.success:
                logger.warning(
                    "notification_failed",
                    channel=item.type.value,
                    recipient=item.recipient,
                    booking_id=str(item.booking_id) if item.booking_id else None,
                    error=result.error_message,
                )

        await db.commit()
        return notifications

    async def _send(self, item: _Outgoing) -> SendResult:
        try:
            if item.type is NotificationType.EMAIL:
                return await self.sender.send_email(item.recipient, item.subject or "", item.message)
            return await self.sender.send_sms(item.recipient, item.message)
        except Exception as e:
            # Senders promise not to raise; one that does still only fails its own recipient
            logger.exception("notification_sender_crashed", channel=item.type.value, recipient=item.recipient)
            return SendResult.failed(f"sender error: {e}")


async def list_notifications(
    db: AsyncSession,
    trip_id: Optional[int] = None,
    booking_id: Optional[uuid.UUID] = None,
    limit: int = 100,
) -> list[Notification]:
    query = select(Notification)
    if trip_id is not None:
        query = query.where(Notification.trip_id == trip_id)
    if booking_id is not None:
        query = query.where(Notification.booking_id == booking_id)
    result = await db.execute(query.order_by(Notification.id.desc()).limit(limit))
    return list(result.scalars().all())


def get_dispatcher(sender: MessagingSender = Depends(get_messaging_sender)) -> NotificationDispatcher:
    return NotificationDispatcher(sender)

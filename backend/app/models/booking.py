"""
Booking model: one seat on one trip, bought by one passenger.

Key design decisions:
- UUID primary key, generated before insert so the seat hold can point at it
- `price` is fixed when the booking is created and never recalculated
- `version` enables compare-and-swap status transitions
- `user_id` is the owner's id as text, or "Anonymous"
- Seat ownership lives in seat_holds, not here (see SeatHold)
"""

import enum
import uuid

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, Numeric, String, Uuid

from app.db.base import AwareDateTime, Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    PENDING_PAYMENT = "PendingPayment"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False, index=True)
    seat_number = Column(Integer, nullable=False)
    passenger_name = Column(String(255), nullable=False)
    passenger_phone = Column(String(32), nullable=False)
    passenger_email = Column(String(255), nullable=True)
    price = Column(Numeric(10, 3), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    booking_date = Column(AwareDateTime(), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING_PAYMENT.value)
    payment_method = Column(String(20), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("seat_number > 0", name="check_booking_seat_positive"),
        CheckConstraint("price >= 0", name="check_booking_price_non_negative"),
        CheckConstraint(
            "status IN ('PendingPayment', 'Confirmed', 'Cancelled')",
            name="check_booking_status",
        ),
        # Loyalty balance folds over a user's confirmed bookings
        Index("ix_bookings_user_status", "user_id", "status"),
        Index("ix_bookings_trip_status", "trip_id", "status"),
    )

    @property
    def short_id(self) -> str:
        return str(self.id)[:8]

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, trip={self.trip_id}, seat={self.seat_number}, status={self.status})>"

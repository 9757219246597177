"""
Seat ledger entry: which booking currently holds (trip, seat).

The composite primary key is the mutual-exclusion invariant at the
database level: two holds for the same seat cannot both commit, whichever
process they come from. A row exists only while its booking is
PendingPayment or Confirmed, so the table can always be rebuilt from
bookings.
"""

from sqlalchemy import Column, ForeignKey, Integer, Uuid, func

from app.db.base import AwareDateTime, Base


class SeatHold(Base):
    __tablename__ = "seat_holds"

    trip_id = Column(Integer, ForeignKey("trips.id"), primary_key=True)
    seat_number = Column(Integer, primary_key=True)
    booking_id = Column(
        Uuid,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    held_since = Column(AwareDateTime(), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<SeatHold(trip={self.trip_id}, seat={self.seat_number}, booking={self.booking_id})>"

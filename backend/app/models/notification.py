"""
Notification audit log: one row per attempted SMS or email, sent or not.

trip_id / booking_id are lookup references only. No foreign keys, so the
history outlives deleted bookings.
"""

import enum

from sqlalchemy import Boolean, Column, Index, Integer, String, Text, Uuid

from app.db.base import Base, TimestampMixin


class NotificationType(str, enum.Enum):
    SMS = "SMS"
    EMAIL = "Email"


class Notification(Base, TimestampMixin):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(10), nullable=False)
    trip_id = Column(Integer, nullable=True)
    booking_id = Column(Uuid, nullable=True)
    is_sent = Column(Boolean, nullable=False, default=False)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_notifications_trip_id", "trip_id"),
        Index("ix_notifications_booking_id", "booking_id"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.type}, to={self.recipient}, sent={self.is_sent})>"

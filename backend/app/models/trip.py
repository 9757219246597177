"""
Trip model: one scheduled run of a train between two stations.

Key design decisions:
- Departure/arrival are stored as absolute instants (UTC in the database,
  presented in the fixed UTC+3 offset)
- `delay_minutes` only means something while status is Delayed
- Index on departure_time backs the upcoming listing (ordered by departure)
- Index on arrival_time backs the live view and the cleanup sweeper
"""

import enum

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String

from app.db.base import AwareDateTime, Base, TimestampMixin


class TripStatus(str, enum.Enum):
    ON_TIME = "OnTime"
    DELAYED = "Delayed"
    CANCELLED = "Cancelled"
    ARRIVED = "Arrived"


class Trip(Base, TimestampMixin):
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True)
    train_id = Column(Integer, ForeignKey("trains.id"), nullable=False, index=True)
    from_station_id = Column(Integer, ForeignKey("stations.id"), nullable=False)
    to_station_id = Column(Integer, ForeignKey("stations.id"), nullable=False)
    departure_time = Column(AwareDateTime(), nullable=False)
    arrival_time = Column(AwareDateTime(), nullable=False)
    status = Column(String(20), nullable=False, default=TripStatus.ON_TIME.value)
    delay_minutes = Column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint("arrival_time > departure_time", name="check_trip_arrival_after_departure"),
        CheckConstraint(
            "status IN ('OnTime', 'Delayed', 'Cancelled', 'Arrived')",
            name="check_trip_status",
        ),
        CheckConstraint("delay_minutes IS NULL OR delay_minutes >= 0", name="check_trip_delay_non_negative"),
        Index("ix_trips_departure_time", "departure_time"),
        Index("ix_trips_arrival_time", "arrival_time"),
        Index("ix_trips_route_departure", "from_station_id", "to_station_id", "departure_time"),
    )

    def __repr__(self) -> str:
        return f"<Trip(id={self.id}, train={self.train_id}, status={self.status})>"

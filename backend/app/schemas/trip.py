"""
Pydantic schemas for trips and the catalog collaborators.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from app.core.clock import to_local
from app.models.trip import TripStatus


class StationResponse(BaseModel):
    id: int
    name: str
    latitude: Optional[float]
    longitude: Optional[float]

    model_config = {"from_attributes": True}


class TrainResponse(BaseModel):
    id: int
    train_number: str
    type: Optional[str]
    total_seats: int

    model_config = {"from_attributes": True}


class TripCreate(BaseModel):
    train_id: int
    from_station_id: int
    to_station_id: int
    # Naive values are read as local (UTC+3) wall-clock time
    departure_time: datetime
    arrival_time: datetime

    @field_validator("departure_time", "arrival_time")
    @classmethod
    def as_local(cls, value: datetime) -> datetime:
        return to_local(value)

    @model_validator(mode="after")
    def check_route_and_times(self) -> "TripCreate":
        if self.from_station_id == self.to_station_id:
            raise ValueError("Origin and destination must differ")
        if self.arrival_time <= self.departure_time:
            raise ValueError("Arrival time must be after departure time")
        return self


class TripStatusUpdate(BaseModel):
    status: TripStatus
    delay_minutes: Optional[int] = Field(None, gt=0, le=24 * 60)

    @model_validator(mode="after")
    def check_delay(self) -> "TripStatusUpdate":
        if self.status == TripStatus.DELAYED and self.delay_minutes is None:
            raise ValueError("delay_minutes is required when status is Delayed")
        return self


class TripResponse(BaseModel):
    id: int
    train_id: int
    from_station_id: int
    to_station_id: int
    departure_time: datetime
    arrival_time: datetime
    status: TripStatus
    delay_minutes: Optional[int]

    model_config = {"from_attributes": True}


class TripListResponse(BaseModel):
    trips: list[TripResponse]
    total: int
    cached: bool = False


class TakenSeatsResponse(BaseModel):
    trip_id: int
    total_seats: int
    taken_seats: list[int]
    available: int


class TripStatusChangeResponse(BaseModel):
    trip: TripResponse
    notifications_attempted: int
    notifications_sent: int


class SweepResponse(BaseModel):
    arrived_trip_ids: list[int]

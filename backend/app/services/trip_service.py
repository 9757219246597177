"""
Trip catalog: trips, trains, stations.

The booking engine reads trips through here and operators change trip
status through here. Consistency of the catalog itself (who may edit
trains and stations) is not the engine's concern.
"""

from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import local_timezone, to_local
from app.core.exceptions import NotFoundError, TripInUseError
from app.core.logging import get_logger
from app.models.booking import Booking
from app.models.station import Station
from app.models.train import Train
from app.models.trip import Trip, TripStatus
from app.schemas.trip import TripCreate

logger = get_logger(__name__)


async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    trip = await db.get(Trip, trip_id)
    if not trip:
        raise NotFoundError(f"Trip {trip_id} not found")
    return trip


async def get_train(db: AsyncSession, train_id: int) -> Train:
    train = await db.get(Train, train_id)
    if not train:
        raise NotFoundError(f"Train {train_id} not found")
    return train


async def create_trip(db: AsyncSession, trip_data: TripCreate) -> Trip:
    await get_train(db, trip_data.train_id)
    for station_id in (trip_data.from_station_id, trip_data.to_station_id):
        if not await db.get(Station, station_id):
            raise NotFoundError(f"Station {station_id} not found")

    trip = Trip(
        train_id=trip_data.train_id,
        from_station_id=trip_data.from_station_id,
        to_station_id=trip_data.to_station_id,
        departure_time=to_local(trip_data.departure_time),
        arrival_time=to_local(trip_data.arrival_time),
        status=TripStatus.ON_TIME.value,
    )
    db.add(trip)
    await db.commit()
    await db.refresh(trip)

    logger.info("trip_created", trip_id=trip.id, train_id=trip.train_id, departure=trip.departure_time.isoformat())
    return trip


async def list_upcoming_trips(
    db: AsyncSession,
    now: datetime,
    from_station_id: Optional[int] = None,
    to_station_id: Optional[int] = None,
    on_date: Optional[date] = None,
) -> list[Trip]:
    """
    Trips ordered by departure, earliest first.

    Without a date: everything departing from now on. With a date: every
    departure on that local calendar day. Arrived trips never show up.
    Uses ix_trips_route_departure / ix_trips_departure_time.
    """
    query = select(Trip).where(Trip.status != TripStatus.ARRIVED.value)

    if from_station_id is not None:
        query = query.where(Trip.from_station_id == from_station_id)
    if to_station_id is not None:
        query = query.where(Trip.to_station_id == to_station_id)

    if on_date is not None:
        day_start = datetime.combine(on_date, time.min, tzinfo=local_timezone())
        query = query.where(
            Trip.departure_time >= day_start,
            Trip.departure_time < day_start + timedelta(days=1),
        )
    else:
        query = query.where(Trip.departure_time >= now)

    result = await db.execute(query.order_by(Trip.departure_time.asc(), Trip.id.asc()))
    return list(result.scalars().all())


async def list_live_trips(db: AsyncSession, now: datetime) -> list[Trip]:
    """Trips that have not arrived yet, in departure order."""
    result = await db.execute(
        select(Trip)
        .where(Trip.arrival_time >= now, Trip.status != TripStatus.ARRIVED.value)
        .order_by(Trip.departure_time.asc(), Trip.id.asc())
    )
    return list(result.scalars().all())


async def update_trip_status(
    db: AsyncSession,
    trip_id: int,
    status: TripStatus,
    delay_minutes: Optional[int] = None,
) -> Trip:
    """
    Operator edit of a trip's status. Commits before returning, so any
    notification fan-out that follows sees the new status.
    """
    trip = await get_trip(db, trip_id)
    previous = trip.status

    trip.status = TripStatus(status).value
    trip.delay_minutes = delay_minutes if trip.status == TripStatus.DELAYED.value else None
    await db.commit()
    await db.refresh(trip)

    logger.info(
        "trip_status_updated",
        trip_id=trip.id,
        previous=previous,
        status=trip.status,
        delay_minutes=trip.delay_minutes,
    )
    return trip


async def mark_arrived(db: AsyncSession, now: datetime) -> list[Trip]:
    """
    Flag every trip whose arrival time has passed as Arrived.
    Cancelled trips keep their status. Returns the trips that changed.
    """
    result = await db.execute(
        select(Trip).where(
            Trip.arrival_time <= now,
            Trip.status.not_in([TripStatus.ARRIVED.value, TripStatus.CANCELLED.value]),
        )
    )
    trips = list(result.scalars().all())
    for trip in trips:
        trip.status = TripStatus.ARRIVED.value
        trip.delay_minutes = None
    if trips:
        await db.commit()
    return trips


async def delete_trip(db: AsyncSession, trip_id: int) -> None:
    """Refuses while any booking, live or not, references the trip."""
    trip = await get_trip(db, trip_id)
    bookings = await db.scalar(select(func.count()).select_from(Booking).where(Booking.trip_id == trip_id))
    if bookings:
        raise TripInUseError(f"Trip {trip_id} still has {bookings} booking(s); delete them first")

    await db.delete(trip)
    await db.commit()
    logger.info("trip_deleted", trip_id=trip_id)


async def list_stations(db: AsyncSession) -> list[Station]:
    result = await db.execute(select(Station).order_by(Station.name.asc()))
    return list(result.scalars().all())


async def list_trains(db: AsyncSession) -> list[Train]:
    result = await db.execute(select(Train).order_by(Train.train_number.asc()))
    return list(result.scalars().all())

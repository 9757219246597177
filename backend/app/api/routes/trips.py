"""
Timetable endpoints. Upcoming listings are cached in Redis; seat maps are
always read live from the seat ledger.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.core.logging import get_logger
from app.db.session import get_db
from app.schemas.trip import (
    StationResponse,
    TakenSeatsResponse,
    TrainResponse,
    TripListResponse,
    TripResponse,
)
from app.services.cache_service import (
    TripSearch,
    drop_departed,
    get_cached_upcoming,
    set_cached_upcoming,
)
from app.services.seat_ledger import SeatLedger, get_seat_ledger
from app.services.trip_service import (
    get_train,
    get_trip,
    list_live_trips,
    list_stations,
    list_trains,
    list_upcoming_trips,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/trips", tags=["Trips"])


@router.get("/", response_model=TripListResponse)
async def list_upcoming_trips_endpoint(
    from_station_id: Optional[int] = Query(None),
    to_station_id: Optional[int] = Query(None),
    on_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """
    Upcoming trips in departure order, optionally for one route and/or one
    local calendar day. Cached for UPCOMING_TRIPS_CACHE_TTL seconds.
    """
    search = TripSearch(from_station_id, to_station_id, on_date)
    cached = await get_cached_upcoming(search)
    if cached:
        logger.debug("trips_list_cache_hit", key=search.cache_key)
        if on_date is None:
            cached = drop_departed(cached, clock.now())
        cached["cached"] = True
        return TripListResponse(**cached)

    trips = await list_upcoming_trips(db, clock.now(), from_station_id, to_station_id, on_date)
    response_data = {
        "trips": [TripResponse.model_validate(t).model_dump(mode="json") for t in trips],
        "total": len(trips),
        "cached": False,
    }
    await set_cached_upcoming(search, response_data)
    return TripListResponse(**response_data)


@router.get("/live", response_model=list[TripResponse])
async def list_live_trips_endpoint(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Trips that have not arrived yet. Not cached."""
    return await list_live_trips(db, clock.now())


@router.get("/stations", response_model=list[StationResponse])
async def list_stations_endpoint(db: AsyncSession = Depends(get_db)):
    return await list_stations(db)


@router.get("/trains", response_model=list[TrainResponse])
async def list_trains_endpoint(db: AsyncSession = Depends(get_db)):
    return await list_trains(db)


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip_endpoint(trip_id: int, db: AsyncSession = Depends(get_db)):
    return await get_trip(db, trip_id)


@router.get("/{trip_id}/seats", response_model=TakenSeatsResponse)
async def get_taken_seats(
    trip_id: int,
    db: AsyncSession = Depends(get_db),
    ledger: SeatLedger = Depends(get_seat_ledger),
):
    """Snapshot of taken seats; may be stale as soon as it is returned."""
    trip = await get_trip(db, trip_id)
    train = await get_train(db, trip.train_id)
    taken = await ledger.list_taken(db, trip_id)
    return TakenSeatsResponse(
        trip_id=trip_id,
        total_seats=train.total_seats,
        taken_seats=sorted(taken),
        available=train.total_seats - len(taken),
    )

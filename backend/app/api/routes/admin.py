"""
Operator endpoints. Every route requires an admin token.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import require_admin
from app.db.session import get_db
from app.schemas.notification import NotificationResponse
from app.schemas.trip import (
    SweepResponse,
    TripCreate,
    TripResponse,
    TripStatusChangeResponse,
    TripStatusUpdate,
)
from app.services.cache_service import invalidate_trip_cache
from app.services.notification_service import (
    NotificationDispatcher,
    get_dispatcher,
    list_notifications,
)
from app.services.sweeper import TripCleanupSweeper, get_sweeper
from app.services.trip_service import create_trip, delete_trip, update_trip_status

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@router.post("/trips", response_model=TripResponse, status_code=status.HTTP_201_CREATED)
async def create_trip_endpoint(trip_data: TripCreate, db: AsyncSession = Depends(get_db)):
    trip = await create_trip(db, trip_data)
    await invalidate_trip_cache()
    return trip


@router.patch("/trips/{trip_id}/status", response_model=TripStatusChangeResponse)
async def update_trip_status_endpoint(
    trip_id: int,
    update: TripStatusUpdate,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """
    Change a trip's status. Setting Delayed sends one SMS per live booking;
    the response reports how many went out.
    """
    trip = await update_trip_status(db, trip_id, update.status, update.delay_minutes)
    await invalidate_trip_cache()

    notifications = await dispatcher.on_trip_status_changed(db, trip)
    return TripStatusChangeResponse(
        trip=TripResponse.model_validate(trip),
        notifications_attempted=len(notifications),
        notifications_sent=sum(1 for n in notifications if n.is_sent),
    )


@router.delete("/trips/{trip_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_trip_endpoint(trip_id: int, db: AsyncSession = Depends(get_db)):
    await delete_trip(db, trip_id)
    await invalidate_trip_cache()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications_endpoint(
    trip_id: Optional[int] = Query(None),
    booking_id: Optional[uuid.UUID] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Audit log of send attempts, newest first."""
    return await list_notifications(db, trip_id=trip_id, booking_id=booking_id, limit=limit)


@router.post("/sweeps", response_model=SweepResponse)
async def run_sweep(sweeper: TripCleanupSweeper = Depends(get_sweeper)):
    """Run the trip cleanup sweep now instead of waiting for the next tick."""
    arrived = await sweeper.sweep_once()
    return SweepResponse(arrived_trip_ids=arrived)

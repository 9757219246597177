"""
Trip cleanup sweeper.

Periodically flags trips whose arrival time has passed as Arrived, so they
drop out of upcoming listings. Each changed trip goes through the same
status-change hook an operator edit does (Arrived fans out nothing today).

One failed sweep is logged and the loop carries on with the next tick.
"""

import asyncio
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, get_clock
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import trips_swept
from app.db.session import AsyncSessionLocal
from app.services.cache_service import invalidate_trip_cache
from app.services.notification_service import NotificationDispatcher, get_dispatcher
from app.services.trip_service import mark_arrived

logger = get_logger(__name__)


class TripCleanupSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock,
        dispatcher: NotificationDispatcher,
        interval: float = 60.0,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.dispatcher = dispatcher
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sweep_once(self) -> list[int]:
        """Run one pass. Returns the ids of trips marked Arrived."""
        now = self.clock.now()
        async with self.session_factory() as db:
            trips = await mark_arrived(db, now)
            for trip in trips:
                await self.dispatcher.on_trip_status_changed(db, trip)

        trip_ids = [trip.id for trip in trips]
        if trip_ids:
            trips_swept.inc(len(trip_ids))
            await invalidate_trip_cache()
        logger.info("trip_sweep_completed", arrived=len(trip_ids), trip_ids=trip_ids, at=now.isoformat())
        return trip_ids

    async def _run(self) -> None:
        while True:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("trip_sweep_failed")
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info("trip_sweeper_started", interval=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("trip_sweeper_stopped")


def get_sweeper(
    clock: Clock = Depends(get_clock),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> TripCleanupSweeper:
    """One-shot sweeper for on-demand sweeps (POST /admin/sweeps)."""
    return TripCleanupSweeper(
        AsyncSessionLocal,
        clock,
        dispatcher,
        interval=get_settings().SWEEPER_INTERVAL_SECONDS,
    )

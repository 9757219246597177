"""
Seat ledger: who holds (trip, seat).

CONCURRENCY STRATEGY: Per-key lock + primary-key safety net
============================================================

Problem:
  Two passengers pick seat 14 on the same trip at the same instant.
  Both see it free, both insert, both get a ticket.

Solution:
  1. Acquire an in-process lock scoped to (trip_id, seat_number), never to
     the whole trip, so bookings on other seats and trips run in parallel.
  2. Inside the lock, read the current hold. Taken -> ALREADY_TAKEN.
  3. Insert the hold and commit, still inside the lock, together with the
     caller's pending booking row. The decision is durable before the next
     caller for this key gets to look.
  4. seat_holds has PRIMARY KEY (trip_id, seat_number). A second process
     racing with us cannot commit the same key; its IntegrityError is
     reported as ALREADY_TAKEN.

The lock wait is bounded; on timeout the caller gets BusyError.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.locks import KeyedLocks
from app.core.logging import get_logger
from app.models.booking import Booking
from app.models.seat_hold import SeatHold
from app.services.booking_state import SEAT_HOLDING_STATES

logger = get_logger(__name__)
settings = get_settings()


class ReservationResult(str, enum.Enum):
    RESERVED = "reserved"
    ALREADY_TAKEN = "already_taken"


class SeatLedger:
    def __init__(self, locks: Optional[KeyedLocks] = None):
        self.locks = locks or KeyedLocks("seat", timeout=settings.LOCK_TIMEOUT_SECONDS)

    async def try_reserve(
        self,
        db: AsyncSession,
        trip_id: int,
        seat_number: int,
        booking_id: uuid.UUID,
    ) -> ReservationResult:
        """
        Hold (trip_id, seat_number) for booking_id.

        Commits the session: the caller's pending booking row becomes
        durable atomically with the hold. When the seat is taken, only that
        pending row is dropped from the session; nothing else is touched.

        The cross-process conflict (IntegrityError on commit) rolls back the
        whole session, so callers must not rely on other loaded objects
        after an ALREADY_TAKEN result.
        """
        async with self.locks.hold((trip_id, seat_number)):
            # The pending booking must not reach the database before the check
            with db.sync_session.no_autoflush:
                holder = await db.scalar(
                    select(SeatHold.booking_id).where(
                        SeatHold.trip_id == trip_id,
                        SeatHold.seat_number == seat_number,
                    )
                )
            if holder is not None:
                self._discard_pending(db, booking_id)
                logger.info("seat_taken", trip_id=trip_id, seat=seat_number, holder=str(holder))
                return ReservationResult.ALREADY_TAKEN

            db.add(SeatHold(trip_id=trip_id, seat_number=seat_number, booking_id=booking_id))
            try:
                await db.commit()
            except IntegrityError:
                # Another process committed the same key first
                await db.rollback()
                logger.info("seat_taken", trip_id=trip_id, seat=seat_number, reason="integrity_conflict")
                return ReservationResult.ALREADY_TAKEN

        logger.info("seat_reserved", trip_id=trip_id, seat=seat_number, booking_id=str(booking_id))
        return ReservationResult.RESERVED

    @staticmethod
    def _discard_pending(db: AsyncSession, booking_id: uuid.UUID) -> None:
        for obj in list(db.new):
            if isinstance(obj, Booking) and obj.id == booking_id:
                db.expunge(obj)

    async def release(
        self,
        db: AsyncSession,
        trip_id: int,
        seat_number: int,
        booking_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Free the seat. Idempotent: releasing a free seat is a no-op.
        With booking_id, only a hold owned by that booking is removed.
        Runs in the caller's transaction; the caller commits.
        """
        async with self.locks.hold((trip_id, seat_number)):
            stmt = delete(SeatHold).where(
                SeatHold.trip_id == trip_id,
                SeatHold.seat_number == seat_number,
            )
            if booking_id is not None:
                stmt = stmt.where(SeatHold.booking_id == booking_id)
            result = await db.execute(stmt)

        released = result.rowcount > 0
        if released:
            logger.info("seat_released", trip_id=trip_id, seat=seat_number)
        return released

    async def list_taken(self, db: AsyncSession, trip_id: int) -> set[int]:
        """Point-in-time snapshot; may be stale as soon as it returns."""
        result = await db.execute(select(SeatHold.seat_number).where(SeatHold.trip_id == trip_id))
        return set(result.scalars().all())

    async def holder_of(self, db: AsyncSession, trip_id: int, seat_number: int) -> Optional[uuid.UUID]:
        return await db.scalar(
            select(SeatHold.booking_id).where(
                SeatHold.trip_id == trip_id,
                SeatHold.seat_number == seat_number,
            )
        )

    async def rebuild(self, db: AsyncSession) -> dict:
        """
        Reconcile seat_holds with persisted bookings after a restart.

        Drops holds whose booking is gone or no longer seat-holding, and
        restores holds for seat-holding bookings that lost theirs. If two
        live bookings claim one seat, the earliest booking keeps it.
        """
        holding = [status.value for status in SEAT_HOLDING_STATES]

        stale = await db.execute(
            delete(SeatHold).where(
                ~select(Booking.id)
                .where(
                    and_(
                        Booking.id == SeatHold.booking_id,
                        Booking.status.in_(holding),
                    )
                )
                .exists()
            )
            .execution_options(synchronize_session=False)
        )

        held = await db.execute(select(SeatHold.trip_id, SeatHold.seat_number))
        taken = {(row.trip_id, row.seat_number) for row in held}

        orphans = await db.execute(
            select(Booking)
            .where(
                Booking.status.in_(holding),
                ~select(SeatHold.booking_id).where(SeatHold.booking_id == Booking.id).exists(),
            )
            .order_by(Booking.booking_date.asc())
        )
        restored = 0
        conflicts = []
        for booking in orphans.scalars().all():
            key = (booking.trip_id, booking.seat_number)
            if key in taken:
                conflicts.append(str(booking.id))
                continue
            db.add(SeatHold(trip_id=booking.trip_id, seat_number=booking.seat_number, booking_id=booking.id))
            taken.add(key)
            restored += 1

        await db.commit()

        summary = {"dropped": stale.rowcount, "restored": restored, "conflicts": conflicts}
        logger.info("seat_ledger_rebuilt", **summary)
        if conflicts:
            logger.warning("seat_ledger_conflicts", booking_ids=conflicts)
        return summary


seat_ledger = SeatLedger()


def get_seat_ledger() -> SeatLedger:
    return seat_ledger

"""
Tests for the seat ledger, including concurrent reservation races.
"""

import asyncio
import uuid

import pytest
from sqlalchemy import select

from app.core.exceptions import BusyError
from app.core.locks import KeyedLocks
from app.db.session import AsyncSessionLocal
from app.models.booking import Booking, BookingStatus
from app.models.seat_hold import SeatHold
from app.services.seat_ledger import ReservationResult, SeatLedger


def _pending_booking(trip_id: int, seat: int, now) -> Booking:
    return Booking(
        id=uuid.uuid4(),
        trip_id=trip_id,
        seat_number=seat,
        passenger_name="Racer",
        passenger_phone="55500000",
        price=2,
        user_id="Anonymous",
        booking_date=now,
        status=BookingStatus.PENDING_PAYMENT.value,
        version=1,
    )


@pytest.mark.asyncio
async def test_reserve_free_seat(db_session, test_trip, clock):
    ledger = SeatLedger()
    booking = _pending_booking(test_trip.id, 7, clock.now())
    db_session.add(booking)

    result = await ledger.try_reserve(db_session, test_trip.id, 7, booking.id)

    assert result is ReservationResult.RESERVED
    assert await ledger.holder_of(db_session, test_trip.id, 7) == booking.id
    assert await ledger.list_taken(db_session, test_trip.id) == {7}


@pytest.mark.asyncio
async def test_reserve_taken_seat_rolls_back_pending_row(db_session, test_trip, clock):
    """The loser's booking row must not survive; the rest of the session does."""
    ledger = SeatLedger()
    first = _pending_booking(test_trip.id, 7, clock.now())
    db_session.add(first)
    await ledger.try_reserve(db_session, test_trip.id, 7, first.id)

    second = _pending_booking(test_trip.id, 7, clock.now())
    db_session.add(second)
    result = await ledger.try_reserve(db_session, test_trip.id, 7, second.id)

    assert result is ReservationResult.ALREADY_TAKEN
    assert second not in db_session.new
    # Objects loaded before the attempt stay usable without a reload
    assert test_trip.status == "OnTime"
    assert first.seat_number == 7
    assert await db_session.get(Booking, second.id) is None
    assert await ledger.holder_of(db_session, test_trip.id, 7) == first.id


@pytest.mark.asyncio
async def test_concurrent_reserve_exactly_one_winner(db_session, test_trip, clock):
    """
    20 requests for one seat, each on its own session, all at once.
    Exactly one RESERVED, and exactly one hold row.
    """
    ledger = SeatLedger()

    async def attempt():
        async with AsyncSessionLocal() as session:
            booking = _pending_booking(test_trip.id, 14, clock.now())
            session.add(booking)
            return await ledger.try_reserve(session, test_trip.id, 14, booking.id)

    results = await asyncio.gather(*(attempt() for _ in range(20)))

    assert results.count(ReservationResult.RESERVED) == 1
    assert results.count(ReservationResult.ALREADY_TAKEN) == 19

    holds = (await db_session.execute(select(SeatHold).where(SeatHold.trip_id == test_trip.id))).scalars().all()
    assert len(holds) == 1
    bookings = (await db_session.execute(select(Booking).where(Booking.trip_id == test_trip.id))).scalars().all()
    assert len(bookings) == 1


@pytest.mark.asyncio
async def test_different_seats_do_not_contend(db_session, test_trip, clock):
    ledger = SeatLedger()

    async def attempt(seat):
        async with AsyncSessionLocal() as session:
            booking = _pending_booking(test_trip.id, seat, clock.now())
            session.add(booking)
            return await ledger.try_reserve(session, test_trip.id, seat, booking.id)

    results = await asyncio.gather(*(attempt(seat) for seat in range(1, 11)))

    assert all(r is ReservationResult.RESERVED for r in results)
    assert await ledger.list_taken(db_session, test_trip.id) == set(range(1, 11))


@pytest.mark.asyncio
async def test_release_is_idempotent(db_session, test_trip, clock):
    ledger = SeatLedger()
    booking = _pending_booking(test_trip.id, 3, clock.now())
    db_session.add(booking)
    await ledger.try_reserve(db_session, test_trip.id, 3, booking.id)

    assert await ledger.release(db_session, test_trip.id, 3) is True
    await db_session.commit()
    assert await ledger.release(db_session, test_trip.id, 3) is False
    assert await ledger.list_taken(db_session, test_trip.id) == set()


@pytest.mark.asyncio
async def test_release_with_foreign_booking_id_keeps_hold(db_session, test_trip, clock):
    ledger = SeatLedger()
    booking = _pending_booking(test_trip.id, 3, clock.now())
    db_session.add(booking)
    await ledger.try_reserve(db_session, test_trip.id, 3, booking.id)

    assert await ledger.release(db_session, test_trip.id, 3, booking_id=uuid.uuid4()) is False
    assert await ledger.holder_of(db_session, test_trip.id, 3) == booking.id


@pytest.mark.asyncio
async def test_lock_timeout_raises_busy(db_session, test_trip, clock):
    """A seat whose lock is held elsewhere gives up after the timeout."""
    ledger = SeatLedger(locks=KeyedLocks("seat", timeout=0.05))
    booking = _pending_booking(test_trip.id, 9, clock.now())
    db_session.add(booking)

    async with ledger.locks.hold((test_trip.id, 9)):
        with pytest.raises(BusyError) as exc_info:
            await ledger.try_reserve(db_session, test_trip.id, 9, booking.id)

    assert exc_info.value.status_code == 503
    assert exc_info.value.headers["Retry-After"] == "1"
    assert len(ledger.locks) == 0


@pytest.mark.asyncio
async def test_rebuild_reconciles_with_bookings(db_session, test_trip, clock):
    """
    After a restart the taken-seat view is derived from bookings:
    stale holds dropped, missing holds restored, earliest booking wins.
    """
    ledger = SeatLedger()

    # Held and live: stays
    live = _pending_booking(test_trip.id, 1, clock.now())
    db_session.add(live)
    await ledger.try_reserve(db_session, test_trip.id, 1, live.id)

    # Held but cancelled behind the ledger's back: dropped
    stale = _pending_booking(test_trip.id, 2, clock.now())
    db_session.add(stale)
    await ledger.try_reserve(db_session, test_trip.id, 2, stale.id)
    stale.status = BookingStatus.CANCELLED.value

    # Confirmed but its hold went missing: restored
    orphan = _pending_booking(test_trip.id, 3, clock.now())
    orphan.status = BookingStatus.CONFIRMED.value
    db_session.add(orphan)

    # Live but claims a seat someone else holds: reported
    duplicate = _pending_booking(test_trip.id, 1, clock.now())
    db_session.add(duplicate)
    await db_session.commit()

    summary = await ledger.rebuild(db_session)

    assert summary["dropped"] == 1
    assert summary["restored"] == 1
    assert summary["conflicts"] == [str(duplicate.id)]
    assert await ledger.list_taken(db_session, test_trip.id) == {1, 3}
    assert await ledger.holder_of(db_session, test_trip.id, 1) == live.id
    assert await ledger.holder_of(db_session, test_trip.id, 3) == orphan.id

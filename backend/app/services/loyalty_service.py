"""
Loyalty points.

The balance is never stored. It is folded on demand from two ledgers:
confirmed bookings earn points, redemptions spend them.

    balance = int(POINTS_PER_UNIT * sum(confirmed prices)) - sum(redeemed)

Redeeming is check-then-append, so it runs under a per-user lock: two
concurrent redemptions for the same user cannot both pass the check
against the same balance. The lock is per process; a multi-process
deployment would need a database-side guard as well.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import InsufficientPointsError
from app.core.locks import KeyedLocks
from app.core.logging import get_logger
from app.core.metrics import record_redemption
from app.core.security import owner_key
from app.models.booking import Booking, BookingStatus
from app.models.point_redemption import PointRedemption

logger = get_logger(__name__)
settings = get_settings()

redemption_locks = KeyedLocks("redemption", timeout=settings.LOCK_TIMEOUT_SECONDS)


@dataclass(frozen=True)
class LoyaltySummary:
    earned_points: int
    redeemed_points: int
    balance: int
    redemption_cost: int
    confirmed_bookings: list[Booking]
    redemptions: list[PointRedemption]

    @property
    def can_redeem(self) -> bool:
        return self.balance >= self.redemption_cost


def earned_points(prices: Iterable[Decimal]) -> int:
    total = sum(prices, Decimal("0"))
    return int(total * settings.LOYALTY_POINTS_PER_UNIT)


def fold_balance(prices: Iterable[Decimal], redeemed: Iterable[int]) -> int:
    """Pure balance computation; no I/O."""
    return earned_points(prices) - sum(redeemed)


async def _confirmed_bookings(db: AsyncSession, user_id: int) -> list[Booking]:
    result = await db.execute(
        select(Booking)
        .where(
            Booking.user_id == owner_key(user_id),
            Booking.status == BookingStatus.CONFIRMED.value,
        )
        .order_by(Booking.booking_date.desc())
    )
    return list(result.scalars().all())


async def _redemptions(db: AsyncSession, user_id: int) -> list[PointRedemption]:
    result = await db.execute(
        select(PointRedemption)
        .where(PointRedemption.user_id == owner_key(user_id))
        .order_by(PointRedemption.redemption_date.desc())
    )
    return list(result.scalars().all())


async def get_balance(db: AsyncSession, user_id: int) -> int:
    bookings = await _confirmed_bookings(db, user_id)
    redemptions = await _redemptions(db, user_id)
    return fold_balance(
        (b.price for b in bookings),
        (r.points_redeemed for r in redemptions),
    )


async def get_summary(db: AsyncSession, user_id: int) -> LoyaltySummary:
    bookings = await _confirmed_bookings(db, user_id)
    redemptions = await _redemptions(db, user_id)
    earned = earned_points(b.price for b in bookings)
    redeemed = sum(r.points_redeemed for r in redemptions)
    return LoyaltySummary(
        earned_points=earned,
        redeemed_points=redeemed,
        balance=earned - redeemed,
        redemption_cost=settings.LOYALTY_REDEMPTION_POINTS,
        confirmed_bookings=bookings,
        redemptions=redemptions,
    )


async def redeem_points(db: AsyncSession, user_id: int, now: datetime) -> PointRedemption:
    """
    Spend LOYALTY_REDEMPTION_POINTS on a free ticket.
    Raises InsufficientPointsError when the balance is short.
    """
    cost = settings.LOYALTY_REDEMPTION_POINTS

    async with redemption_locks.hold(user_id):
        balance = await get_balance(db, user_id)
        if balance < cost:
            record_redemption(False)
            logger.info("redemption_rejected", user_id=user_id, balance=balance, cost=cost)
            raise InsufficientPointsError(
                f"Not enough points: {balance} available, {cost} required"
            )

        redemption = PointRedemption(
            user_id=owner_key(user_id),
            points_redeemed=cost,
            redemption_date=now,
            description=f"Free ticket redemption ({cost} points)",
        )
        db.add(redemption)
        await db.commit()

    record_redemption(True)
    logger.info(
        "points_redeemed",
        user_id=user_id,
        points=cost,
        balance_after=balance - cost,
    )
    return redemption

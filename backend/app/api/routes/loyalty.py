"""
Loyalty endpoints: points summary and free-ticket redemption.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.core.security import get_current_user_id
from app.db.session import get_db
from app.schemas.booking import BookingResponse
from app.schemas.loyalty import LoyaltySummaryResponse, RedemptionResponse
from app.services.loyalty_service import get_summary, redeem_points

router = APIRouter(prefix="/loyalty", tags=["Loyalty"])


@router.get("/", response_model=LoyaltySummaryResponse)
async def loyalty_summary(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Earned, redeemed and spendable points with their history."""
    summary = await get_summary(db, user_id)
    return LoyaltySummaryResponse(
        earned_points=summary.earned_points,
        redeemed_points=summary.redeemed_points,
        balance=summary.balance,
        redemption_cost=summary.redemption_cost,
        can_redeem=summary.can_redeem,
        confirmed_bookings=[BookingResponse.model_validate(b) for b in summary.confirmed_bookings],
        redemptions=[RedemptionResponse.model_validate(r) for r in summary.redemptions],
    )


@router.post("/redemptions", response_model=RedemptionResponse, status_code=status.HTTP_201_CREATED)
async def redeem(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Spend points on a free ticket. 400 insufficient_points when short."""
    return await redeem_points(db, user_id, clock.now())

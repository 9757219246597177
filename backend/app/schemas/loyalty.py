"""
Pydantic schemas for the loyalty ledger.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel

from app.schemas.booking import BookingResponse


class RedemptionResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    points_redeemed: int
    redemption_date: datetime
    description: str

    model_config = {"from_attributes": True}


class LoyaltySummaryResponse(BaseModel):
    earned_points: int
    redeemed_points: int
    balance: int
    redemption_cost: int
    can_redeem: bool
    confirmed_bookings: list[BookingResponse]
    redemptions: list[RedemptionResponse]

"""
Pydantic schemas for booking-related request/response validation.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_serializer

from app.models.booking import BookingStatus
from app.services.refund import present_amount


class PaymentMethod(str, enum.Enum):
    KNET = "KNET"
    APPLE_PAY = "APPLE_PAY"


class BookingCreate(BaseModel):
    trip_id: int
    seat_number: int = Field(..., gt=0)
    passenger_name: str = Field(..., min_length=1, max_length=255)
    passenger_phone: str = Field(..., min_length=6, max_length=32, pattern=r"^\+?[0-9]+$")
    passenger_email: Optional[EmailStr] = None


class PaymentRequest(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.KNET
    bank: Optional[str] = None
    card_number: Optional[str] = None
    expiry_date: Optional[str] = None
    pin: Optional[str] = None


class BookingResponse(BaseModel):
    id: uuid.UUID
    trip_id: int
    seat_number: int
    passenger_name: str
    passenger_phone: str
    passenger_email: Optional[str]
    price: Decimal
    user_id: str
    booking_date: datetime
    status: BookingStatus
    payment_method: Optional[str]

    model_config = {"from_attributes": True}

    @field_serializer("price")
    def serialize_price(self, price: Decimal) -> str:
        return str(present_amount(price))


class RefundQuoteResponse(BaseModel):
    booking_id: uuid.UUID
    price: Decimal
    deduction_percent: Decimal
    refund_amount: Decimal
    hours_to_departure: float

    @field_serializer("price", "refund_amount")
    def serialize_amount(self, value: Decimal) -> str:
        return str(present_amount(value))

    @field_serializer("deduction_percent")
    def serialize_percent(self, value: Decimal) -> int:
        return int(value)


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: uuid.UUID
    status: BookingStatus
    refund: RefundQuoteResponse

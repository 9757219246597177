from app.schemas.user import UserCreate, UserResponse, UserLogin, Token
from app.schemas.trip import (
    TripCreate, TripStatusUpdate, TripResponse, TripListResponse,
    TakenSeatsResponse, TripStatusChangeResponse, StationResponse, TrainResponse, SweepResponse,
)
from app.schemas.booking import (
    BookingCreate, BookingResponse, BookingCancelResponse, PaymentMethod,
    PaymentRequest, RefundQuoteResponse,
)
from app.schemas.loyalty import LoyaltySummaryResponse, RedemptionResponse
from app.schemas.notification import NotificationResponse

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "Token",
    "TripCreate", "TripStatusUpdate", "TripResponse", "TripListResponse",
    "TakenSeatsResponse", "TripStatusChangeResponse", "StationResponse", "TrainResponse", "SweepResponse",
    "BookingCreate", "BookingResponse", "BookingCancelResponse", "PaymentMethod",
    "PaymentRequest", "RefundQuoteResponse",
    "LoyaltySummaryResponse", "RedemptionResponse", "NotificationResponse",
]

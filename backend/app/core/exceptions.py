"""
Typed failures of the booking engine.

Every error is an HTTPException so services can raise it directly and
FastAPI renders it without extra handlers. The detail always carries a
stable `code` next to the human message, so clients can branch on it.
"""

from typing import Optional

from fastapi import HTTPException, status


class BookingEngineError(HTTPException):
    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"

    def __init__(self, message: str, headers: Optional[dict] = None):
        self.message = message
        super().__init__(
            status_code=self.status_code,
            detail={"code": self.code, "message": message},
            headers=headers,
        )


class SeatTakenError(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "seat_taken"


class InvalidStateError(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_state"


class TripAlreadyDepartedError(BookingEngineError):
    code = "trip_already_departed"


class InvalidPaymentInputError(BookingEngineError):
    code = "invalid_payment_input"


class InsufficientPointsError(BookingEngineError):
    code = "insufficient_points"


class InvalidSeatError(BookingEngineError):
    code = "invalid_seat"


class NotFoundError(BookingEngineError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ForbiddenError(BookingEngineError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class TripInUseError(BookingEngineError):
    status_code = status.HTTP_409_CONFLICT
    code = "trip_in_use"


class BusyError(BookingEngineError):
    """Lock contention or a lost compare-and-swap. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "busy"

    def __init__(self, message: str, retry_after: int = 1):
        super().__init__(message, headers={"Retry-After": str(retry_after)})

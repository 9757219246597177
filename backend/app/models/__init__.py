from app.models.user import User
from app.models.station import Station
from app.models.train import Train
from app.models.trip import Trip, TripStatus
from app.models.booking import Booking, BookingStatus
from app.models.seat_hold import SeatHold
from app.models.point_redemption import PointRedemption
from app.models.notification import Notification, NotificationType

__all__ = [
    "User", "Station", "Train", "Trip", "TripStatus",
    "Booking", "BookingStatus", "SeatHold", "PointRedemption",
    "Notification", "NotificationType",
]

"""
Pydantic schemas for the notification audit log.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    recipient: str
    message: str
    type: str
    trip_id: Optional[int]
    booking_id: Optional[uuid.UUID]
    is_sent: bool
    error_message: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}

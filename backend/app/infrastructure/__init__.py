"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .messaging import (
    LoggingMessagingSender,
    MessagingSender,
    SendResult,
    TwilioMessagingSender,
    get_messaging_sender,
)

__all__ = [
    "MessagingSender", "SendResult", "LoggingMessagingSender",
    "TwilioMessagingSender", "get_messaging_sender",
]

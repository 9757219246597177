"""
Outbound messaging: SMS and email.

Senders are best-effort by contract. They never raise; every call returns
a SendResult saying whether the message left and, if not, why. Callers
record the outcome and move on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SendResult:
    success: bool
    error_message: Optional[str] = None

    @classmethod
    def ok(cls) -> "SendResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(success=False, error_message=error)


class MessagingSender(ABC):
    """
    Interface for message delivery backends.

    Implementations:
    - LoggingMessagingSender: writes messages to the log (development)
    - TwilioMessagingSender: SMS through Twilio, email to the log
    """

    @abstractmethod
    async def send_sms(self, phone: str, text: str) -> SendResult:
        pass

    @abstractmethod
    async def send_email(self, address: str, subject: str, body: str) -> SendResult:
        pass

    async def close(self) -> None:
        """Release network resources, if any."""


class LoggingMessagingSender(MessagingSender):
    async def send_sms(self, phone: str, text: str) -> SendResult:
        logger.info("sms_logged", to=phone, text=text)
        return SendResult.ok()

    async def send_email(self, address: str, subject: str, body: str) -> SendResult:
        logger.info("email_logged", to=address, subject=subject, body=body)
        return SendResult.ok()


class TwilioMessagingSender(LoggingMessagingSender):
    """
    SMS via the Twilio Messages REST endpoint.
    Email stays on the logging path; there is no mail provider configured.
    """

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.from_number = from_number
        self._url = f"{api_base.rstrip('/')}/Accounts/{account_sid}/Messages.json"
        self._client = client or httpx.AsyncClient(
            auth=(account_sid, auth_token),
            timeout=timeout,
        )

    async def send_sms(self, phone: str, text: str) -> SendResult:
        if not self.account_sid or not self.from_number:
            return SendResult.failed("SMS provider is not configured")

        try:
            response = await self._client.post(
                self._url,
                data={"To": phone, "From": self.from_number, "Body": text},
            )
        except httpx.HTTPError as e:
            logger.error("sms_transport_error", to=phone, error=str(e))
            return SendResult.failed(f"transport error: {e}")

        if response.is_success:
            logger.info("sms_sent", to=phone, status_code=response.status_code)
            return SendResult.ok()

        error = _twilio_error(response)
        logger.warning("sms_rejected", to=phone, status_code=response.status_code, error=error)
        return SendResult.failed(error)

    async def close(self) -> None:
        await self._client.aclose()


def _twilio_error(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if not isinstance(payload, dict):
        return f"HTTP {response.status_code}"
    return f"HTTP {response.status_code}: {payload.get('message', 'unknown error')}"


def create_messaging_sender() -> MessagingSender:
    """
    Build the configured backend.
    MESSAGING_BACKEND: "log" (default) or "twilio".
    """
    settings = get_settings()
    if settings.MESSAGING_BACKEND == "twilio":
        return TwilioMessagingSender(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_FROM_NUMBER,
            api_base=settings.TWILIO_API_BASE,
            timeout=settings.MESSAGING_TIMEOUT_SECONDS,
        )
    return LoggingMessagingSender()


_sender: Optional[MessagingSender] = None


def get_messaging_sender() -> MessagingSender:
    """Messaging sender singleton."""
    global _sender
    if _sender is None:
        _sender = create_messaging_sender()
    return _sender


async def close_messaging_sender() -> None:
    global _sender
    if _sender is not None:
        await _sender.close()
        _sender = None

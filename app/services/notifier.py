"""SMS notification via Twilio and the dispatcher that consumes queue notification events."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


@dataclass
class SmsResult:
    """Result of a send attempt."""
    success: bool
    sid: Optional[str] = None
    error: Optional[Any] = None
    status_code: Optional[int] = None
    sent_at: Optional[datetime] = None


class SmsNotifier:
    """Sends text messages through a Twilio Messaging Service."""

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.messaging_service_sid = messaging_service_sid
        self._http_client = http_client

    @classmethod
    def from_settings(cls) -> "SmsNotifier":
        return cls(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            messaging_service_sid=settings.TWILIO_MESSAGING_SERVICE_SID,
        )

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.messaging_service_sid)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def send(self, phone: str, message: str) -> SmsResult:
        """Send one message. Never raises for provider or network failures."""
        if not self.configured:
            return SmsResult(success=False, error="SMS service not configured")

        client = await self._get_client()
        try:
            response = await client.post(
                f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json",
                auth=(self.account_sid, self.auth_token),
                data={
                    "MessagingServiceSid": self.messaging_service_sid,
                    "To": phone,
                    "Body": message,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed for {phone}: {e}")
            return SmsResult(success=False, error=str(e))

        try:
            body = response.json()
        except ValueError:
            body = {"message": response.text}

        if response.status_code not in (200, 201):
            logger.error(f"Twilio error {response.status_code}: {body}")
            return SmsResult(success=False, error=body, status_code=response.status_code)

        return SmsResult(
            success=True,
            sid=body.get("sid"),
            status_code=response.status_code,
            sent_at=datetime.now(timezone.utc),
        )

    async def aclose(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


class NotificationDispatcher:
    """Delivers notification events emitted by queue mutations.

    One attempt per event. Failures are logged and dropped so they can never
    affect the queue operation that produced them.
    """

    def __init__(self, notifier: SmsNotifier):
        self.notifier = notifier

    async def deliver(self, notification) -> Optional[SmsResult]:
        try:
            result = await self.notifier.send(notification.phone, notification.message())
        except Exception as e:
            logger.exception(f"Notification {notification.to_dict()} failed: {e}")
            return None

        if result.success:
            logger.info(f"Sent {notification.to_dict()['type']} for party {notification.party_id}: {result.sid}")
        else:
            logger.warning(f"Could not send {notification.to_dict()['type']} for party {notification.party_id}: {result.error}")
        return result


sms_notifier = SmsNotifier.from_settings()
notification_dispatcher = NotificationDispatcher(sms_notifier)

"""
License notifications

Delivers issued license keys to customers. Delivery is best effort: the
payment-completion service logs a failed delivery and keeps the license.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from html import escape

import httpx

from app.config import settings


logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True, slots=True)
class LicenseNotification:
    email: str
    license_key: str
    customer_name: str = ""


class NotificationSink(ABC):
    """Destination for license notifications"""

    @abstractmethod
    async def send_license(self, notification: LicenseNotification) -> None:
        """Deliver a license key; raises on delivery failure"""


class LoggingNotificationSink(NotificationSink):
    """Writes the notification to the log instead of sending it (development default)"""

    async def send_license(self, notification: LicenseNotification) -> None:
        logger.info(
            "License email for %s (%s): %s",
            notification.email,
            notification.customer_name or "customer",
            notification.license_key,
        )


class ResendEmailSink(NotificationSink):
    """Sends the license email through the Resend HTTP API"""

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout
        self._transport = transport

    def _render(self, notification: LicenseNotification) -> dict:
        greeting = escape(notification.customer_name or "there")
        html = (
            f"<h1>Your Live TV Premium license</h1>"
            f"<p>Hi {greeting},</p>"
            f"<p>Thank you for your purchase. Your license key is:</p>"
            f"<p><code>{notification.license_key}</code></p>"
            f"<p>Open the app, go to the unlock screen and enter this key.</p>"
        )
        return {
            "from": self._sender,
            "to": [notification.email],
            "subject": "Your Live TV Premium license",
            "html": html,
        }

    async def send_license(self, notification: LicenseNotification) -> None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json=self._render(notification),
            )
            response.raise_for_status()
        logger.info("License email sent to %s", notification.email)


def create_notification_sink() -> NotificationSink:
    """Build the sink selected by configuration"""
    if settings.resend_api_key:
        return ResendEmailSink(settings.resend_api_key, settings.license_email_from)
    return LoggingNotificationSink()

"""
Payment status client

Used by a device after the purchase was completed in an external browser:
polls the payment-status endpoint and hands an issued key to the
entitlement manager so the user can unlock with it.
"""
import asyncio
import logging

import httpx
from pydantic import ValidationError

from app.config import settings
from app.errors import FetchFailedError
from app.schemas import PaymentStatusResponse
from app.services.entitlement_service import EntitlementManager


logger = logging.getLogger(__name__)

CHECK_PAYMENT_PATH = "/api/check-payment"


class PaymentStatusClient:
    """Thin httpx client for GET /api/check-payment."""

    def __init__(self, base_url: str, *, transport: httpx.AsyncBaseTransport | None = None):
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._timeout = httpx.Timeout(settings.fetch_read_timeout_sec, connect=settings.fetch_connect_timeout_sec)

    async def check(self, device_id: str) -> PaymentStatusResponse:
        """
        Ask the server whether a license was issued for this device

        Raises:
            FetchFailedError: On network errors, error statuses or malformed responses
        """
        url = f"{self._base_url}{CHECK_PAYMENT_PATH}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url, params={"deviceId": device_id})
                response.raise_for_status()
            return PaymentStatusResponse.model_validate(response.json())
        except httpx.HTTPError as e:
            raise FetchFailedError(url, type(e).__name__) from e
        except (ValueError, ValidationError) as e:
            raise FetchFailedError(url, f"malformed response: {e}") from e

    async def poll_for_license(
        self,
        device_id: str,
        entitlements: EntitlementManager,
        *,
        attempts: int = 60,
        interval: float = 5.0,
    ) -> str | None:
        """
        Poll until a license is issued, then store it for unlocking

        Transient failures count as an unpaid attempt.

        Returns:
            The issued license key, or None if none appeared within the attempts
        """
        for attempt in range(1, attempts + 1):
            try:
                status = await self.check(device_id)
            except FetchFailedError as e:
                logger.warning(f"Payment check {attempt}/{attempts} failed: {e}")
            else:
                if status.paid and status.license_key:
                    await entitlements.remember_issued_key(status.license_key)
                    logger.info("License issued for device %s", device_id)
                    return status.license_key

            if attempt < attempts:
                await asyncio.sleep(interval)

        logger.info("No license issued for device %s after %s checks", device_id, attempts)
        return None

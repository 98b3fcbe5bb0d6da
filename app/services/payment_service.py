"""
Payment Completion Service

Issues a license when the payment provider reports a completed checkout and
answers payment-status polls from clients.

Recording is idempotent per checkout session: a redelivered webhook for a
session that is already recorded returns the stored license instead of
minting (and emailing) a different key. A new session for the same device
overwrites the previous license.
"""
import asyncio
import logging
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.schemas import CHECKOUT_COMPLETED, WebhookEvent
from app.services.license_service import DEFAULT_LICENSE_SALT, derive_license_key
from app.services.license_store_service import IssuedLicense, LicenseStore
from app.services.notification_service import LicenseNotification, NotificationSink
from app.utils.timezone import to_epoch_millis, utc_now


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PaymentStatus:
    paid: bool
    license_key: str | None = None
    issued_at: datetime | None = None


class PaymentCompletionService:
    """Webhook-driven license issuance over a LicenseStore."""

    def __init__(
        self,
        store: LicenseStore,
        notifier: NotificationSink,
        *,
        salt: str = DEFAULT_LICENSE_SALT,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._notifier = notifier
        self._salt = salt
        self._clock = clock
        self._device_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _device_lock(self, device_id: str) -> asyncio.Lock:
        lock = self._device_locks.get(device_id)
        if lock is None:
            lock = asyncio.Lock()
            self._device_locks[device_id] = lock
        return lock

    async def handle_event(self, event: WebhookEvent, received_at: datetime | None = None) -> IssuedLicense | None:
        """
        Process a verified webhook event

        Args:
            event: Parsed provider event (authenticity already checked)
            received_at: Processing instant used for key derivation (defaults to now)

        Returns:
            The license recorded for the device, or None for ignored event types
        """
        if event.type != CHECKOUT_COMPLETED:
            logger.info("Ignoring webhook event type %s", event.type)
            return None

        session = event.data.object
        issued_at = received_at or self._clock()

        device_id = session.client_reference_id
        if not device_id:
            device_id = f"device_{to_epoch_millis(issued_at)}"
            logger.warning(
                "Checkout %s has no client reference; issuing under fallback id %s (not retrievable by any device)",
                session.id,
                device_id,
            )

        details = session.customer_details
        email = (details.email if details else None) or session.customer_email
        customer_name = (details.name if details else None) or ""

        async with self._device_lock(device_id):
            existing = await self._store.get_by_key(device_id)
            if existing is not None and session.id and existing.session_id == session.id:
                logger.info(
                    "Checkout %s already recorded for device %s, keeping issued license",
                    session.id,
                    device_id,
                )
                return existing

            record = IssuedLicense(
                device_id=device_id,
                license_key=derive_license_key(device_id, issued_at, self._salt),
                issued_at=issued_at,
                session_id=session.id,
                customer_email=email,
            )
            await self._store.put(record)

        logger.info("Payment completed for device %s, license recorded", device_id)
        await self._notify(record, email, customer_name)
        return record

    async def _notify(self, record: IssuedLicense, email: str | None, customer_name: str) -> None:
        if not email:
            logger.warning("No customer email for device %s, license email skipped", record.device_id)
            return
        try:
            await self._notifier.send_license(LicenseNotification(
                email=email,
                license_key=record.license_key,
                customer_name=customer_name,
            ))
        except Exception as e:
            # The license stays recorded; the client can still poll for it
            logger.error(f"License email to {email} failed: {e}", exc_info=True)

    async def check_payment(self, device_id: str) -> PaymentStatus:
        """Look up the license issued to a device"""
        record = await self._store.get_by_key(device_id)
        if record is None:
            logger.debug("No payment found for device %s", device_id)
            return PaymentStatus(paid=False)
        return PaymentStatus(paid=True, license_key=record.license_key, issued_at=record.issued_at)

    async def purge_expired(self, retention_days: int, now: datetime | None = None) -> int:
        """Drop licenses older than the retention window (0 keeps everything)"""
        if retention_days <= 0:
            return 0
        cutoff = (now or self._clock()) - timedelta(days=retention_days)
        purged = await self._store.purge_older_than(cutoff)
        logger.info("License retention: %s records older than %s removed", purged, cutoff.isoformat())
        return purged

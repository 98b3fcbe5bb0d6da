"""
Dependency wiring

Builds the payment-completion service from configuration and exposes it to
the routers as a FastAPI dependency. Tests can install their own store or
notifier through init_services().
"""
import logging

from app.config import settings
from app.services.license_store_service import InMemoryLicenseStore, LicenseStore, SqlLicenseStore
from app.services.notification_service import NotificationSink, create_notification_sink
from app.services.payment_service import PaymentCompletionService


logger = logging.getLogger(__name__)

# Global singleton instance
_payment_service: PaymentCompletionService | None = None


def create_license_store() -> LicenseStore:
    """Build the license store selected by configuration"""
    if settings.license_store_backend == "memory":
        return InMemoryLicenseStore()
    return SqlLicenseStore()


def init_services(
    store: LicenseStore | None = None,
    notifier: NotificationSink | None = None,
) -> PaymentCompletionService:
    """
    Create the global payment-completion service.

    Args:
        store: License store override (defaults to the configured backend)
        notifier: Notification sink override (defaults to the configured sink)

    Returns:
        The global PaymentCompletionService instance
    """
    global _payment_service
    store = store or create_license_store()
    notifier = notifier or create_notification_sink()
    _payment_service = PaymentCompletionService(store, notifier, salt=settings.license_salt)
    logger.debug(
        "Payment service ready (store=%s, notifier=%s)",
        type(store).__name__,
        type(notifier).__name__,
    )
    return _payment_service


def get_payment_service() -> PaymentCompletionService:
    """
    FastAPI dependency returning the global payment-completion service.

    Raises:
        RuntimeError: If init_services() has not run
    """
    if _payment_service is None:
        raise RuntimeError("Services not initialized. Call init_services() during startup.")
    return _payment_service


def reset_services() -> None:
    """
    Reset the global services (mainly for testing).

    WARNING: Only use this in test environments!
    """
    global _payment_service
    _payment_service = None

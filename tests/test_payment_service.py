import asyncio
from datetime import timedelta

import pytest

from app.schemas import CHECKOUT_COMPLETED, WebhookEvent
from app.services.license_service import derive_license_key
from app.services.license_store_service import InMemoryLicenseStore, IssuedLicense
from app.services.notification_service import LicenseNotification, NotificationSink
from app.services.payment_service import PaymentCompletionService
from app.utils.timezone import to_epoch_millis


class RecordingSink(NotificationSink):

    def __init__(self):
        self.sent: list[LicenseNotification] = []

    async def send_license(self, notification: LicenseNotification) -> None:
        self.sent.append(notification)


class FailingSink(NotificationSink):

    async def send_license(self, notification: LicenseNotification) -> None:
        raise ConnectionError("mail server down")


def checkout_event(device_id: str | None = "device-1", session_id: str = "cs_1", email: str | None = "a@b.c"):
    return WebhookEvent.model_validate({
        "type": CHECKOUT_COMPLETED,
        "data": {"object": {
            "id": session_id,
            "client_reference_id": device_id,
            "customer_details": {"email": email, "name": "Ada"},
        }},
    })


@pytest.fixture
def store() -> InMemoryLicenseStore:
    return InMemoryLicenseStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def service(store, sink, clock) -> PaymentCompletionService:
    return PaymentCompletionService(store, sink, clock=clock)


async def test_completed_checkout_issues_and_notifies(service, sink, clock):
    record = await service.handle_event(checkout_event())

    assert record.device_id == "device-1"
    assert record.license_key == derive_license_key("device-1", clock())
    assert sink.sent == [LicenseNotification(email="a@b.c", license_key=record.license_key, customer_name="Ada")]

    status = await service.check_payment("device-1")
    assert status.paid
    assert status.license_key == record.license_key
    assert status.issued_at == clock()


async def test_other_event_types_are_ignored(service, store):
    event = WebhookEvent.model_validate({"type": "payment_intent.created", "data": {"object": {"id": "pi_1"}}})

    assert await service.handle_event(event) is None
    assert len(store) == 0


async def test_unknown_device_is_unpaid(service):
    status = await service.check_payment("nobody")

    assert not status.paid
    assert status.license_key is None
    assert status.issued_at is None


async def test_redelivered_session_keeps_original_license(service, sink, clock):
    first = await service.handle_event(checkout_event())
    clock.advance(seconds=30)
    second = await service.handle_event(checkout_event())

    assert second == first
    assert len(sink.sent) == 1


async def test_new_session_overwrites_previous_license(service, clock):
    first = await service.handle_event(checkout_event(session_id="cs_1"))
    clock.advance(seconds=30)
    second = await service.handle_event(checkout_event(session_id="cs_2"))

    assert second.license_key != first.license_key
    assert (await service.check_payment("device-1")).license_key == second.license_key


async def test_concurrent_redeliveries_record_once(service, sink):
    results = await asyncio.gather(*(service.handle_event(checkout_event()) for _ in range(5)))

    assert len({record.license_key for record in results}) == 1
    assert len(sink.sent) == 1


async def test_missing_reference_uses_fallback_device_id(service, store, clock):
    record = await service.handle_event(checkout_event(device_id=None))

    assert record.device_id == f"device_{to_epoch_millis(clock())}"
    assert (await store.get_by_key(record.device_id)) == record


async def test_notification_failure_keeps_license(store, clock):
    service = PaymentCompletionService(store, FailingSink(), clock=clock)

    record = await service.handle_event(checkout_event())

    assert (await service.check_payment("device-1")).license_key == record.license_key


async def test_missing_email_skips_notification(service, sink):
    record = await service.handle_event(checkout_event(email=None))

    assert record is not None
    assert sink.sent == []


async def test_customer_email_fallback(service, sink):
    event = WebhookEvent.model_validate({
        "type": CHECKOUT_COMPLETED,
        "data": {"object": {"id": "cs_9", "client_reference_id": "device-9", "customer_email": "x@y.z"}},
    })

    await service.handle_event(event)

    assert sink.sent[0].email == "x@y.z"
    assert sink.sent[0].customer_name == ""


async def test_purge_expired_applies_retention(service, store, clock):
    await store.put(IssuedLicense("old", "A" * 16, clock() - timedelta(days=200)))
    await store.put(IssuedLicense("new", "B" * 16, clock() - timedelta(days=10)))

    assert await service.purge_expired(0) == 0
    assert await service.purge_expired(180) == 1

    assert await store.get_by_key("old") is None
    assert await store.get_by_key("new") is not None

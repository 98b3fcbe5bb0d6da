import json

import httpx
import pytest

from app.services.notification_service import RESEND_API_URL, LicenseNotification, ResendEmailSink
from app.services.scheduler_service import LicenseRetentionScheduler


async def test_scheduler_runs_purge_job():
    scheduler = LicenseRetentionScheduler()
    calls = []

    async def purge() -> int:
        calls.append(True)
        return 3

    scheduler.start(purge)
    try:
        assert scheduler.get_next_run_time() is not None
        await scheduler._purge_job()
    finally:
        scheduler.shutdown()

    assert calls == [True]
    assert scheduler.get_next_run_time() is None


async def test_scheduler_job_survives_purge_errors():
    scheduler = LicenseRetentionScheduler()

    async def broken() -> int:
        raise RuntimeError("database locked")

    scheduler.start(broken)
    try:
        await scheduler._purge_job()
    finally:
        scheduler.shutdown()


async def test_resend_sink_posts_escaped_email():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "email_1"})

    sink = ResendEmailSink("re_key", "Live TV <noreply@livetv.local>", transport=httpx.MockTransport(handler))

    await sink.send_license(LicenseNotification("a@b.c", "ABCDEF0123456789", "<Ada>"))

    request = requests[0]
    body = json.loads(request.content)
    assert str(request.url) == RESEND_API_URL
    assert request.headers["authorization"] == "Bearer re_key"
    assert body["to"] == ["a@b.c"]
    assert "ABCDEF0123456789" in body["html"]
    assert "&lt;Ada&gt;" in body["html"]


async def test_resend_sink_raises_on_error_status():
    sink = ResendEmailSink(
        "re_key",
        "Live TV <noreply@livetv.local>",
        transport=httpx.MockTransport(lambda request: httpx.Response(422)),
    )

    with pytest.raises(httpx.HTTPStatusError):
        await sink.send_license(LicenseNotification("a@b.c", "ABCDEF0123456789"))

import asyncio

import httpx
import pytest

from app.errors import FetchFailedError, FetchSupersededError
from app.schemas import ErrorKind
from app.services.entitlement_service import EntitlementManager
from app.services.fetch_coordinator import FetchCoordinator
from app.services.guide_loader_service import GuideLoader
from app.services.payment_client_service import PaymentStatusClient
from app.state_store import StateNamespace


PLAYLIST_URL = "http://iptv.test/list.m3u"
GUIDE_URL = "http://iptv.test/guide.xml"

PLAYLIST = b"""#EXTM3U
#EXTINF:-1 tvg-id="rte1.ie" group-title="General",RTE One
http://stream.test/rte1
#EXTINF:-1,No Guide
http://stream.test/other
"""

GUIDE = b"""<tv>
  <programme channel="rte1.ie" start="20240601120000 +0000" stop="20240601130000 +0000">
    <title>Midday News</title>
  </programme>
</tv>
"""


def make_loader(routes: dict[str, httpx.Response], seen: list[httpx.Request] | None = None) -> GuideLoader:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return routes.get(str(request.url), httpx.Response(404))

    return GuideLoader(
        connect_timeout=10,
        read_timeout=15,
        parse_timeout_seconds=30,
        transport=httpx.MockTransport(handler),
    )


async def test_newer_fetch_supersedes_older():
    coordinator = FetchCoordinator()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)
        return "stale"

    async def fast():
        return "fresh"

    first = asyncio.create_task(coordinator.run("guide", slow))
    await started.wait()

    assert await coordinator.run("guide", fast) == "fresh"
    with pytest.raises(FetchSupersededError):
        await first
    assert not coordinator.is_fetching("guide")


async def test_different_targets_run_independently():
    coordinator = FetchCoordinator()

    async def value(result):
        await asyncio.sleep(0.01)
        return result

    results = await asyncio.gather(
        coordinator.run("playlist", lambda: value("p")),
        coordinator.run("schedule", lambda: value("s")),
    )

    assert results == ["p", "s"]


async def test_cancelling_caller_cancels_fetch():
    coordinator = FetchCoordinator()
    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def slow():
        started.set()
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    caller = asyncio.create_task(coordinator.run("guide", slow))
    await started.wait()
    caller.cancel()

    with pytest.raises(asyncio.CancelledError):
        await caller
    await asyncio.wait_for(cancelled.wait(), timeout=1)


async def test_fetch_errors_propagate():
    coordinator = FetchCoordinator()

    async def broken():
        raise FetchFailedError("http://x", "ConnectError")

    with pytest.raises(FetchFailedError):
        await coordinator.run("guide", broken)


async def test_load_playlist_and_guide():
    seen: list[httpx.Request] = []
    loader = make_loader(
        {PLAYLIST_URL: httpx.Response(200, content=PLAYLIST), GUIDE_URL: httpx.Response(200, content=GUIDE)},
        seen,
    )

    load = await loader.load(PLAYLIST_URL, GUIDE_URL)

    assert [c.name for c in load.channels] == ["RTE One", "No Guide"]
    assert load.schedule["rte1.ie"][0].title == "Midday News"
    assert load.issues == []
    assert not load.schedule_degraded
    assert all(request.headers["cache-control"] == "no-cache" for request in seen)
    assert seen[0].extensions["timeout"]["connect"] == 10
    assert seen[0].extensions["timeout"]["read"] == 15


async def test_playlist_http_error_raises_fetch_failed():
    loader = make_loader({PLAYLIST_URL: httpx.Response(500)})

    with pytest.raises(FetchFailedError):
        await loader.load(PLAYLIST_URL)


async def test_playlist_network_error_raises_fetch_failed():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    loader = GuideLoader(transport=httpx.MockTransport(handler))

    with pytest.raises(FetchFailedError) as exc_info:
        await loader.fetch_playlist(PLAYLIST_URL)
    assert exc_info.value.reason == "ConnectTimeout"


async def test_missing_guide_degrades_schedule():
    loader = make_loader({PLAYLIST_URL: httpx.Response(200, content=PLAYLIST)})

    load = await loader.load(PLAYLIST_URL, GUIDE_URL)

    assert len(load.channels) == 2
    assert load.schedule == {}
    assert load.issues == [ErrorKind.FETCH_FAILED]
    assert load.schedule_degraded


async def test_malformed_guide_degrades_schedule():
    loader = make_loader({
        PLAYLIST_URL: httpx.Response(200, content=PLAYLIST),
        GUIDE_URL: httpx.Response(200, content=b"<tv><programme"),
    })

    load = await loader.load(PLAYLIST_URL, GUIDE_URL)

    assert load.schedule == {}
    assert load.issues == [ErrorKind.PARSE_DEGRADED]


async def test_payment_client_polls_until_paid():
    responses = iter([
        httpx.Response(200, json={"paid": False}),
        httpx.Response(503),
        httpx.Response(200, json={"paid": True, "licenseKey": "abcdef0123456789", "timestamp": 1}),
    ])
    requests: list[httpx.Request] = []

    def handler(request):
        requests.append(request)
        return next(responses)

    client = PaymentStatusClient("http://server.test/", transport=httpx.MockTransport(handler))
    manager = EntitlementManager(StateNamespace("paywall"))

    key = await client.poll_for_license("device-1", manager, attempts=5, interval=0)

    assert key == "abcdef0123456789"
    assert len(requests) == 3
    assert requests[0].url.params["deviceId"] == "device-1"
    assert await manager.unlock("ABCDEF0123456789")


async def test_payment_client_gives_up():
    client = PaymentStatusClient(
        "http://server.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"paid": False})),
    )
    manager = EntitlementManager(StateNamespace("paywall"))

    assert await client.poll_for_license("device-1", manager, attempts=3, interval=0) is None


async def test_payment_client_malformed_response():
    client = PaymentStatusClient(
        "http://server.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"<html>")),
    )

    with pytest.raises(FetchFailedError):
        await client.check("device-1")


async def test_cancel_all_stops_inflight_fetches():
    coordinator = FetchCoordinator()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)

    caller = asyncio.create_task(coordinator.run("guide", slow))
    await started.wait()

    await coordinator.cancel_all()

    with pytest.raises(FetchSupersededError):
        await caller
    assert not coordinator.is_fetching("guide")

import asyncio
from pathlib import Path

import pytest

from app.config import settings
from app.services.guide_types import Channel
from app.services.preferences_service import Preferences
from app.services.watch_history_service import MAX_HISTORY_ITEMS, WatchHistory
from app.state_store import JsonFileNamespace, StateNamespace, open_namespace


RTE = Channel(name="RTE One", url="http://a/rte1", group="General", schedule_id="rte1.ie")
NEWS = Channel(name="News 24", url="http://a/news", group="News")


async def test_namespace_notifies_after_edit():
    namespace = StateNamespace("preferences")
    seen = []
    unsubscribe = namespace.subscribe(seen.append)

    await namespace.set("playlist_url", "http://a/list.m3u")
    await namespace.set("playlist_url", "http://a/list.m3u")
    unsubscribe()
    await namespace.set("playlist_url", "http://a/other.m3u")

    assert seen == [{"playlist_url": "http://a/list.m3u"}]


async def test_failing_listener_does_not_block_others():
    namespace = StateNamespace("preferences")
    seen = []

    def broken(snapshot):
        raise RuntimeError("boom")

    namespace.subscribe(broken)
    namespace.subscribe(seen.append)
    await namespace.set("k", 1)

    assert seen == [{"k": 1}]
    assert namespace.get("k") == 1


async def test_set_none_removes_key():
    namespace = StateNamespace("preferences", {"k": 1})

    await namespace.set("k", None)

    assert namespace.snapshot() == {}


async def test_json_namespace_round_trips(tmp_path):
    namespace = await JsonFileNamespace.open(tmp_path, "preferences")
    await namespace.set("favorites", ["rte1.ie"])

    reopened = await JsonFileNamespace.open(tmp_path, "preferences")

    assert reopened.get("favorites") == ["rte1.ie"]
    assert (tmp_path / "preferences.json").exists()


async def test_corrupt_state_file_starts_empty(tmp_path):
    (tmp_path / "paywall.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "history.json").write_text("[1, 2, 3]", encoding="utf-8")

    assert (await JsonFileNamespace.open(tmp_path, "paywall")).snapshot() == {}
    assert (await JsonFileNamespace.open(tmp_path, "history")).snapshot() == {}


async def test_preferences_defaults_and_updates():
    preferences = Preferences(StateNamespace("preferences"))
    assert preferences.playlist_url == settings.default_playlist_url
    assert preferences.schedule_url is None

    await preferences.set_playlist_url(" http://a/list.m3u ")
    await preferences.set_schedule_url("http://a/guide.xml")
    await preferences.set_last_url("http://a/rte1")
    await preferences.set_schedule_url("")

    assert preferences.playlist_url == "http://a/list.m3u"
    assert preferences.schedule_url is None
    assert preferences.last_url == "http://a/rte1"


async def test_favorites_use_channel_identity():
    preferences = Preferences(StateNamespace("preferences"))
    changes = []
    preferences.subscribe(changes.append)

    assert await preferences.toggle_favorite(RTE)
    await preferences.add_favorite(NEWS)
    assert preferences.favorites == frozenset({"rte1.ie", "News 24"})

    assert not await preferences.toggle_favorite(RTE)
    assert not preferences.is_favorite(RTE)
    assert preferences.is_favorite(NEWS)
    assert len(changes) == 3


async def test_watch_history_moves_channel_to_front(clock):
    history = WatchHistory(StateNamespace("history"), clock=clock)

    await history.record_watch(RTE, 60)
    clock.advance(minutes=5)
    await history.record_watch(NEWS, 30)
    clock.advance(minutes=5)
    await history.record_watch(RTE, 120)

    assert [item.channel_id for item in history.items()] == ["rte1.ie", "News 24"]
    assert history.last_channel_id == "rte1.ie"
    assert history.total_watch_seconds == 210
    assert history.most_watched(1)[0].channel_id == "rte1.ie"


async def test_watch_history_is_capped(clock):
    history = WatchHistory(StateNamespace("history"), clock=clock)

    for index in range(MAX_HISTORY_ITEMS + 5):
        clock.advance(seconds=1)
        await history.record_watch(Channel(name=f"Channel {index}", url=f"http://a/{index}"), 1)

    items = history.items()
    assert len(items) == MAX_HISTORY_ITEMS
    assert items[0].channel_id == f"Channel {MAX_HISTORY_ITEMS + 4}"


async def test_watch_history_stats_and_clear(clock):
    history = WatchHistory(StateNamespace("history"), clock=clock)
    await history.record_watch(RTE, 100)
    await history.record_watch(NEWS, 300)

    stats = history.stats()
    assert stats.total_channels_watched == 2
    assert stats.most_watched_group == "News"
    assert stats.average_session_seconds == 200

    await history.clear()

    assert history.items() == []
    assert history.last_channel_id is None
    assert history.recent() == []
    assert history.total_watch_seconds == 400


async def test_open_namespace_uses_configured_directory(tmp_path):
    namespace = await open_namespace("paywall")
    assert namespace.file_path.parent == Path(settings.client_state_dir)

    scoped = await open_namespace("history", tmp_path)
    await scoped.set("last_channel_id", "rte1.ie")
    assert (tmp_path / "history.json").exists()

    with pytest.raises(ValueError):
        await open_namespace("unknown")


async def test_concurrent_watches_are_all_recorded(tmp_path, clock):
    history = WatchHistory(await JsonFileNamespace.open(tmp_path, "history"), clock=clock)

    await asyncio.gather(history.record_watch(RTE, 60), history.record_watch(NEWS, 30))

    assert {item.channel_id for item in history.items()} == {"rte1.ie", "News 24"}
    assert history.total_watch_seconds == 90

    reopened = WatchHistory(await JsonFileNamespace.open(tmp_path, "history"), clock=clock)
    assert len(reopened.items()) == 2

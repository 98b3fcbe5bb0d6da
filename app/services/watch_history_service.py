"""
Watch History Service

Most-recent-first list of watched channels (one entry per channel identity)
plus a running total of watch time, kept in the `history` namespace.
"""
import logging
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime

from pydantic import TypeAdapter, ValidationError

from app.schemas import WatchHistoryItem, WatchStats
from app.services.guide_types import Channel
from app.state_store import StateNamespace
from app.utils.timezone import utc_now


logger = logging.getLogger(__name__)

MAX_HISTORY_ITEMS = 50

HISTORY_KEY = "watch_history"
LAST_CHANNEL_KEY = "last_channel_id"
TOTAL_WATCH_KEY = "total_watch_seconds"

_history_adapter = TypeAdapter(list[WatchHistoryItem])


def _parse_history(raw) -> list[WatchHistoryItem]:
    if not raw:
        return []
    try:
        return _history_adapter.validate_python(raw)
    except ValidationError as e:
        logger.warning(f"Stored watch history is unreadable, starting fresh: {e.error_count()} errors")
        return []


class WatchHistory:

    def __init__(self, namespace: StateNamespace, *, clock: Callable[[], datetime] = utc_now):
        self._namespace = namespace
        self._clock = clock

    def items(self) -> list[WatchHistoryItem]:
        return _parse_history(self._namespace.get(HISTORY_KEY))

    @property
    def last_channel_id(self) -> str | None:
        return self._namespace.get(LAST_CHANNEL_KEY)

    @property
    def total_watch_seconds(self) -> float:
        return float(self._namespace.get(TOTAL_WATCH_KEY, 0.0))

    async def record_watch(self, channel: Channel, watch_duration: float = 0.0) -> WatchHistoryItem:
        """Move the channel to the front of the history and add to the total watch time"""
        item = WatchHistoryItem(
            channel_id=channel.identity,
            channel_name=channel.name,
            channel_url=channel.url,
            channel_group=channel.group,
            last_watched=self._clock(),
            watch_duration=max(0.0, watch_duration),
        )

        def _apply(values: dict) -> None:
            current = _parse_history(values.get(HISTORY_KEY))
            history = [item] + [existing for existing in current if existing.channel_id != item.channel_id]
            values[HISTORY_KEY] = _history_adapter.dump_python(history[:MAX_HISTORY_ITEMS], mode="json")
            values[LAST_CHANNEL_KEY] = item.channel_id
            values[TOTAL_WATCH_KEY] = float(values.get(TOTAL_WATCH_KEY, 0.0)) + item.watch_duration

        await self._namespace.edit(_apply)
        return item

    def recent(self, limit: int = 10) -> list[WatchHistoryItem]:
        return self.items()[:limit]

    def most_watched(self, limit: int = 10) -> list[WatchHistoryItem]:
        return sorted(self.items(), key=lambda item: item.watch_duration, reverse=True)[:limit]

    async def clear(self) -> None:
        def _apply(values: dict) -> None:
            values.pop(HISTORY_KEY, None)
            values.pop(LAST_CHANNEL_KEY, None)

        await self._namespace.edit(_apply)

    def stats(self) -> WatchStats:
        history = self.items()
        total = self.total_watch_seconds

        by_group: dict[str, float] = defaultdict(float)
        for item in history:
            if item.channel_group:
                by_group[item.channel_group] += item.watch_duration

        return WatchStats(
            total_channels_watched=len(history),
            total_watch_seconds=total,
            most_watched_group=max(by_group, key=by_group.__getitem__) if by_group else None,
            average_session_seconds=total / len(history) if history else 0.0,
        )

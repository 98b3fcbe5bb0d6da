"""
Playlist Store

Maintains the built-in playlists plus user-added ones, tracks the active
selection and exposes search and statistics. Only user playlists are
persisted; built-ins are re-created from a constant table on every read.
"""
from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging

from pydantic import TypeAdapter, ValidationError

from app.schemas import PlaylistStats, SavedPlaylist
from app.state_store import StateNamespace


logger = logging.getLogger(__name__)

USER_PLAYLISTS_KEY = "saved_playlists"
ACTIVE_PLAYLIST_KEY = "active_playlist_id"

_BUILTIN_TIMESTAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)

# (id, name, source_url, channel_count)
_BUILTIN_TABLE = (
    ("ireland", "Ireland TV", "https://iptv-org.github.io/iptv/countries/ie.m3u", 30),
    ("uk", "UK TV", "https://iptv-org.github.io/iptv/countries/uk.m3u", 50),
    ("us", "US TV", "https://iptv-org.github.io/iptv/countries/us.m3u", 100),
    ("sports", "Sports Channels", "https://iptv-org.github.io/iptv/categories/sports.m3u", 200),
    ("news", "News Channels", "https://iptv-org.github.io/iptv/categories/news.m3u", 150),
)

BUILTIN_PLAYLIST_IDS = frozenset(row[0] for row in _BUILTIN_TABLE)

_playlist_list_adapter = TypeAdapter(list[SavedPlaylist])


def builtin_playlists() -> list[SavedPlaylist]:
    """Fresh copies of the built-in playlists, in fixed order"""
    return [
        SavedPlaylist(
            id=playlist_id,
            name=name,
            source_url=url,
            channel_count=count,
            last_updated=_BUILTIN_TIMESTAMP,
        )
        for playlist_id, name, url, count in _BUILTIN_TABLE
    ]


def _parse_user_playlists(raw) -> list[SavedPlaylist]:
    if not raw:
        return []
    try:
        playlists = _playlist_list_adapter.validate_python(raw)
    except ValidationError as e:
        logger.warning(f"Stored playlists are unreadable, treating user list as empty: {e.error_count()} errors")
        return []
    return [playlist for playlist in playlists if playlist.id not in BUILTIN_PLAYLIST_IDS]


def _dump_user_playlists(playlists: list[SavedPlaylist]) -> list[dict]:
    return [playlist.model_dump(mode="json", exclude={"is_active"}) for playlist in playlists]


class PlaylistStore:
    """Playlist collection persisted in a client state namespace."""

    def __init__(self, namespace: StateNamespace):
        self._namespace = namespace

    def _user_playlists(self) -> list[SavedPlaylist]:
        return _parse_user_playlists(self._namespace.get(USER_PLAYLISTS_KEY))

    async def _edit_user_playlists(self, change: Callable[[list[SavedPlaylist]], list[SavedPlaylist] | None]) -> None:
        """
        Read-modify-write of the user list under the namespace lock.

        `change` receives the current user playlists and returns the new list,
        or None to leave the store untouched.
        """
        def _apply(values: dict) -> None:
            updated = change(_parse_user_playlists(values.get(USER_PLAYLISTS_KEY)))
            if updated is None:
                return
            values[USER_PLAYLISTS_KEY] = _dump_user_playlists(updated)

        await self._namespace.edit(_apply)

    def active_id(self) -> str | None:
        return self._namespace.get(ACTIVE_PLAYLIST_KEY)

    def list(self) -> list[SavedPlaylist]:
        """Built-ins first (fixed order), then user playlists in insertion order"""
        active = self.active_id()
        return [
            playlist.model_copy(update={"is_active": playlist.id == active})
            for playlist in builtin_playlists() + self._user_playlists()
        ]

    def get(self, playlist_id: str) -> SavedPlaylist | None:
        return next((playlist for playlist in self.list() if playlist.id == playlist_id), None)

    async def add(self, name: str, source_url: str, schedule_url: str | None = None) -> SavedPlaylist:
        playlist = SavedPlaylist(name=name, source_url=source_url, schedule_url=schedule_url)
        await self._edit_user_playlists(lambda current: current + [playlist])
        logger.info(f"Added playlist '{name}' ({playlist.id})")
        return playlist

    async def remove(self, playlist_id: str) -> None:
        """Remove a user playlist; built-in and unknown ids are ignored"""
        if playlist_id in BUILTIN_PLAYLIST_IDS:
            logger.debug(f"Ignoring removal of built-in playlist {playlist_id}")
            return

        removed = False

        def _apply(values: dict) -> None:
            nonlocal removed
            current = _parse_user_playlists(values.get(USER_PLAYLISTS_KEY))
            remaining = [playlist for playlist in current if playlist.id != playlist_id]
            if len(remaining) == len(current):
                return
            values[USER_PLAYLISTS_KEY] = _dump_user_playlists(remaining)
            if values.get(ACTIVE_PLAYLIST_KEY) == playlist_id:
                values.pop(ACTIVE_PLAYLIST_KEY, None)
            removed = True

        await self._namespace.edit(_apply)
        if removed:
            logger.info(f"Removed playlist {playlist_id}")

    async def update(self, playlist: SavedPlaylist) -> None:
        """Replace a user playlist by id; unknown ids are ignored"""
        def _replace(current: list[SavedPlaylist]) -> list[SavedPlaylist] | None:
            if not any(existing.id == playlist.id for existing in current):
                return None
            return [playlist if existing.id == playlist.id else existing for existing in current]

        await self._edit_user_playlists(_replace)

    async def set_active(self, playlist_id: str) -> None:
        await self._namespace.set(ACTIVE_PLAYLIST_KEY, playlist_id)

    async def update_channel_count(self, playlist_id: str, count: int) -> None:
        """Record a fresh channel count for a user playlist; unknown ids are ignored"""
        fields = {"channel_count": max(0, count), "last_updated": datetime.now(timezone.utc)}

        def _refresh(current: list[SavedPlaylist]) -> list[SavedPlaylist] | None:
            if not any(existing.id == playlist_id for existing in current):
                return None
            return [
                existing.model_copy(update=fields) if existing.id == playlist_id else existing
                for existing in current
            ]

        await self._edit_user_playlists(_refresh)

    def search(self, query: str) -> list[SavedPlaylist]:
        """Case-insensitive substring match over name and source URL"""
        needle = query.casefold()
        return [
            playlist for playlist in self.list()
            if needle in playlist.name.casefold() or needle in playlist.source_url.casefold()
        ]

    def stats(self) -> PlaylistStats:
        playlists = self.list()
        return PlaylistStats(
            total_playlists=len(playlists),
            total_channels=sum(playlist.channel_count for playlist in playlists),
            user_playlist_count=sum(1 for playlist in playlists if playlist.id not in BUILTIN_PLAYLIST_IDS),
            most_recent_update=max((playlist.last_updated for playlist in playlists), default=None),
        )

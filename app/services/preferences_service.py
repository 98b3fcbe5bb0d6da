"""
Preferences

Active playlist URL, guide URL, favorite channels and the last played
stream, kept in the `preferences` namespace. Subscribe for change events
instead of re-reading.
"""
from collections.abc import Callable

from app.config import settings
from app.services.guide_types import Channel
from app.state_store import Listener, StateNamespace

PLAYLIST_URL_KEY = "playlist_url"
SCHEDULE_URL_KEY = "schedule_url"
FAVORITES_KEY = "favorites"
LAST_URL_KEY = "last_url"


class Preferences:

    def __init__(self, namespace: StateNamespace):
        self._namespace = namespace

    @property
    def playlist_url(self) -> str:
        return self._namespace.get(PLAYLIST_URL_KEY) or settings.default_playlist_url

    @property
    def schedule_url(self) -> str | None:
        return self._namespace.get(SCHEDULE_URL_KEY)

    @property
    def favorites(self) -> frozenset[str]:
        return frozenset(self._namespace.get(FAVORITES_KEY, []))

    @property
    def last_url(self) -> str | None:
        return self._namespace.get(LAST_URL_KEY)

    async def set_playlist_url(self, url: str) -> None:
        await self._namespace.set(PLAYLIST_URL_KEY, url.strip())

    async def set_schedule_url(self, url: str | None) -> None:
        await self._namespace.set(SCHEDULE_URL_KEY, url.strip() if url and url.strip() else None)

    async def set_last_url(self, url: str | None) -> None:
        await self._namespace.set(LAST_URL_KEY, url.strip() if url and url.strip() else None)

    def is_favorite(self, channel: Channel) -> bool:
        return channel.identity in self.favorites

    async def add_favorite(self, channel: Channel) -> None:
        def _apply(values: dict) -> None:
            values[FAVORITES_KEY] = sorted(set(values.get(FAVORITES_KEY, [])) | {channel.identity})

        await self._namespace.edit(_apply)

    async def remove_favorite(self, channel: Channel) -> None:
        def _apply(values: dict) -> None:
            values[FAVORITES_KEY] = sorted(set(values.get(FAVORITES_KEY, [])) - {channel.identity})

        await self._namespace.edit(_apply)

    async def toggle_favorite(self, channel: Channel) -> bool:
        """Flip favorite status; returns the new status"""
        if self.is_favorite(channel):
            await self.remove_favorite(channel)
            return False
        await self.add_favorite(channel)
        return True

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._namespace.subscribe(listener)

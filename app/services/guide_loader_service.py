"""
Guide Loader Service

Downloads a playlist and its optional XMLTV guide, parses both, and hands
the result to the UI layer. Playlist failures are reported as
FetchFailedError; guide failures only mark the load as degraded.
"""
import logging
from dataclasses import dataclass, field
from uuid import uuid4

import httpx

from app.config import settings
from app.errors import FetchFailedError
from app.schemas import ErrorKind
from app.services.fetch_coordinator import FetchCoordinator
from app.services.guide_types import Channel, ScheduleMap
from app.services.m3u_parser_service import parse_m3u
from app.services.xmltv_parser_service import parse_xmltv_async
from app.utils.file_operations import cleanup_temp_file, download_file
from app.utils.logging_helpers import log_fetch_end, log_fetch_start, sanitize_url


logger = logging.getLogger(__name__)

GUIDE_TARGET = "guide"
NO_CACHE_HEADERS = {"Cache-Control": "no-cache"}


@dataclass(slots=True)
class GuideLoad:
    playlist_url: str
    channels: list[Channel]
    schedule: ScheduleMap = field(default_factory=dict)
    issues: list[ErrorKind] = field(default_factory=list)

    @property
    def schedule_degraded(self) -> bool:
        return ErrorKind.PARSE_DEGRADED in self.issues or ErrorKind.FETCH_FAILED in self.issues


class GuideLoader:
    """Playlist + schedule loader with at-most-one in-flight load."""

    def __init__(
        self,
        *,
        connect_timeout: float | None = None,
        read_timeout: float | None = None,
        parse_timeout_seconds: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        coordinator: FetchCoordinator | None = None,
    ):
        self._timeout = httpx.Timeout(
            read_timeout or settings.fetch_read_timeout_sec,
            connect=connect_timeout or settings.fetch_connect_timeout_sec,
        )
        self._parse_timeout = (
            settings.schedule_parse_timeout_sec if parse_timeout_seconds is None else parse_timeout_seconds
        )
        self._transport = transport
        self.coordinator = coordinator or FetchCoordinator()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            headers=NO_CACHE_HEADERS,
            follow_redirects=True,
            transport=self._transport,
        )

    async def fetch_playlist(self, url: str) -> list[Channel]:
        """
        Download and parse an extended-M3U playlist

        Raises:
            FetchFailedError: On network errors, timeouts or HTTP error statuses
        """
        log_fetch_start(logger, "Playlist", url)
        try:
            async with self._client() as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Playlist fetch failed for {sanitize_url(url)}: {type(e).__name__}: {e}")
            raise FetchFailedError(sanitize_url(url), type(e).__name__) from e

        channels = parse_m3u(response.content)
        log_fetch_end(logger, "Playlist", url, f"{len(channels)} channels")
        return channels

    async def fetch_schedule(self, url: str) -> tuple[ScheduleMap, list[ErrorKind]]:
        """
        Download and parse an XMLTV guide; never raises for fetch or parse failures

        Returns:
            (schedule, issues) - schedule is empty when anything went wrong
        """
        log_fetch_start(logger, "Schedule", url)
        temp_file = None
        try:
            async with self._client() as client:
                temp_file = await download_file(client, url, f"schedule_{uuid4().hex}.xml")
            schedule = await parse_xmltv_async(temp_file, parse_timeout_seconds=self._parse_timeout)
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"Schedule unavailable from {sanitize_url(url)}, continuing without guide: {e}")
            return {}, [ErrorKind.FETCH_FAILED]
        finally:
            if temp_file:
                cleanup_temp_file(temp_file)

        if not schedule:
            return {}, [ErrorKind.PARSE_DEGRADED]

        log_fetch_end(logger, "Schedule", url, f"{len(schedule)} channels")
        return schedule, []

    async def _load(self, playlist_url: str, schedule_url: str | None) -> GuideLoad:
        channels = await self.fetch_playlist(playlist_url)
        load = GuideLoad(playlist_url=playlist_url, channels=channels)
        if schedule_url:
            load.schedule, load.issues = await self.fetch_schedule(schedule_url)
        return load

    async def load(self, playlist_url: str, schedule_url: str | None = None) -> GuideLoad:
        """
        Load a playlist and its guide, superseding any load still in progress

        Raises:
            FetchFailedError: If the playlist cannot be downloaded
            FetchSupersededError: If a newer load replaced this one
        """
        return await self.coordinator.run(GUIDE_TARGET, lambda: self._load(playlist_url, schedule_url))

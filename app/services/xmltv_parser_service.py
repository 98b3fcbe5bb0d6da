from datetime import datetime, timezone, timedelta
from io import BytesIO
from pathlib import Path
from typing import BinaryIO, Optional
import asyncio
import logging
import re

from lxml import etree # type: ignore

from app.services.guide_types import Programme, ScheduleMap

logger = logging.getLogger(__name__)

_XMLTV_TIME_RE = re.compile(r"^(\d{14}|\d{12})\s*(Z|[+-]\d{2}:?\d{2})?$")


def parse_xmltv(source: bytes | str | Path | BinaryIO) -> ScheduleMap:
    """
    Parse an XMLTV document into programmes grouped by channel id

    The document is streamed with iterparse and processed elements are cleared,
    so memory stays bounded for large guides. Guide data is optional: any
    document-level failure (malformed XML, unreadable source) yields an empty map.

    Args:
        source: Raw XML bytes or text, a file Path, or a binary file object

    Returns:
        Mapping of channel id -> programmes (unordered)
    """
    if isinstance(source, str):
        source = BytesIO(source.encode("utf-8"))
    elif isinstance(source, bytes):
        source = BytesIO(source)
    elif isinstance(source, Path):
        source = str(source)

    try:
        schedule, skipped = _parse_programmes(source)
    except (etree.XMLSyntaxError, OSError, ValueError) as e:
        logger.warning(f"XMLTV parsing failed, continuing without guide data: {e}")
        return {}

    total = sum(len(programmes) for programmes in schedule.values())
    if skipped:
        logger.warning(f"Skipped {skipped} programmes with invalid start/stop times")
    logger.info(f"XMLTV parsing complete: {len(schedule)} channels, {total} programmes")

    return schedule


def _parse_programmes(source) -> tuple[ScheduleMap, int]:
    """Walk programme elements and collect their channel, interval and first title"""
    schedule: ScheduleMap = {}
    skipped = 0

    in_programme = False
    channel_id = ""
    title: Optional[str] = None
    start: Optional[datetime] = None
    stop: Optional[datetime] = None

    context = etree.iterparse(
        source,
        events=("start", "end"),
        resolve_entities=False,
        no_network=True,
    )

    for event, elem in context:
        tag = elem.tag

        if event == "start":
            if tag == "programme":
                in_programme = True
                channel_id = elem.get("channel") or ""
                title = None
                start = _parse_optional_time(elem.get("start"))
                stop = _parse_optional_time(elem.get("stop"))
            continue

        if tag == "title":
            if in_programme and title is None and elem.text and elem.text.strip():
                title = elem.text.strip()
        elif tag == "programme":
            in_programme = False
            if start is None or stop is None or start >= stop:
                skipped += 1
            else:
                schedule.setdefault(channel_id, []).append(
                    Programme(channel_id=channel_id, title=title or "", start=start, stop=stop)
                )
            _release(elem)
        elif tag == "channel":
            _release(elem)

    return schedule, skipped


def _release(elem: etree._Element) -> None:
    """Free a processed element and its already-seen siblings"""
    elem.clear()
    parent = elem.getparent()
    if parent is None:
        return
    while elem.getprevious() is not None:
        del parent[0]


def _parse_optional_time(time_str: Optional[str]) -> Optional[datetime]:
    if not time_str:
        return None
    try:
        return parse_xmltv_time(time_str)
    except ValueError:
        return None


def parse_xmltv_time(time_str: str) -> datetime:
    """
    Convert XMLTV time format to a UTC datetime

    Args:
        time_str: XMLTV time like '20080715003000 -0600', '20080715003000Z',
            '20080715003000 +02:00' or '200807150030' (no zone means UTC)

    Returns:
        Timezone-aware datetime in UTC

    Raises:
        ValueError: If the string is not a recognized XMLTV timestamp
    """
    match = _XMLTV_TIME_RE.match(time_str.strip())
    if not match:
        raise ValueError(f"Invalid XMLTV timestamp: '{time_str}'")

    time_part, tz_part = match.groups()
    time_format = '%Y%m%d%H%M%S' if len(time_part) == 14 else '%Y%m%d%H%M'
    dt = datetime.strptime(time_part, time_format)

    if not tz_part or tz_part == 'Z':
        return dt.replace(tzinfo=timezone.utc)

    # Parse timezone offset (±HHMM or ±HH:MM)
    digits = tz_part[1:].replace(':', '')
    tz_sign = 1 if tz_part[0] == '+' else -1
    tz_offset_minutes = tz_sign * (int(digits[:2]) * 60 + int(digits[2:4]))

    dt_utc = dt - timedelta(minutes=tz_offset_minutes)

    return dt_utc.replace(tzinfo=timezone.utc)


async def parse_xmltv_async(file_path: Path | str, *, parse_timeout_seconds: int | None = None) -> ScheduleMap:
    """
    Parse an XMLTV file off the event loop with optional timeout protection.

    Args:
        file_path: Path to the downloaded XMLTV file

    Keyword Args:
        parse_timeout_seconds: Timeout in seconds for parsing (0/None disables timeout)

    Returns:
        Mapping of channel id -> programmes, empty on timeout
    """
    effective_timeout = parse_timeout_seconds if parse_timeout_seconds and parse_timeout_seconds > 0 else None

    loop = asyncio.get_running_loop()
    logger.debug(
        "Offloading XMLTV parsing to thread pool executor (timeout: %s)...",
        f"{effective_timeout}s" if effective_timeout else "disabled",
    )
    parse_task = loop.run_in_executor(None, parse_xmltv, Path(file_path))

    if not effective_timeout:
        return await parse_task

    try:
        return await asyncio.wait_for(parse_task, timeout=effective_timeout)
    except asyncio.TimeoutError:
        logger.error("XMLTV parsing timed out after %ss for %s", effective_timeout, file_path)
        return {}

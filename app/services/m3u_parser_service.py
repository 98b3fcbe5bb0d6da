import logging
import re

from app.services.guide_types import Channel

logger = logging.getLogger(__name__)

EXTINF_MARKER = "#EXTINF:"
HEADER_MARKER = "#EXTM3U"

_ATTRIBUTE_RE = re.compile(r'([A-Za-z0-9-]+)="(.*?)"')

# M3U attribute -> Channel field
_RECOGNIZED_ATTRIBUTES = {
    "tvg-logo": "logo",
    "group-title": "group",
    "tvg-id": "schedule_id",
}


def parse_m3u(text: str | bytes) -> list[Channel]:
    """
    Parse an extended-M3U playlist into channels

    Every #EXTINF line opens pending metadata that is consumed by the next
    non-comment line (the stream URL). Metadata that is never followed by a
    URL is discarded. Malformed attributes are ignored; this function never raises.

    Args:
        text: Playlist contents (bytes are decoded as UTF-8 with replacement)

    Returns:
        Channels in document order
    """
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")

    channels: list[Channel] = []
    pending: dict[str, str | None] | None = None
    discarded = 0

    for raw in text.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        line = raw.strip()
        if not line or line.startswith(HEADER_MARKER):
            continue

        if line.startswith(EXTINF_MARKER):
            if pending is not None:
                discarded += 1
            pending = _parse_extinf(line)
            continue

        if line.startswith("#") or pending is None:
            continue

        channels.append(Channel(
            name=pending["name"] or line,
            url=line,
            logo=pending["logo"],
            group=pending["group"],
            schedule_id=pending["schedule_id"],
        ))
        pending = None

    if pending is not None:
        discarded += 1

    if discarded:
        logger.debug(f"Discarded {discarded} #EXTINF entries without a stream URL")
    logger.debug(f"Parsed {len(channels)} channels from playlist")

    return channels


def _parse_extinf(line: str) -> dict[str, str | None]:
    """Split an #EXTINF line into display name and recognized attributes"""
    comma = line.find(",")
    if comma > -1:
        attributes = line[len(EXTINF_MARKER):comma]
        name = line[comma + 1:].strip()
    else:
        attributes = line[len(EXTINF_MARKER):]
        name = ""

    meta: dict[str, str | None] = {"name": name, "logo": None, "group": None, "schedule_id": None}
    for key, value in _ATTRIBUTE_RE.findall(attributes):
        field = _RECOGNIZED_ATTRIBUTES.get(key)
        if field and value.strip():
            meta[field] = value.strip()

    return meta

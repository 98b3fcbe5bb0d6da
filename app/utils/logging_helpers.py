"""
Structured logging helpers for consistent log formatting.
"""
import logging
from datetime import datetime, timezone


def sanitize_url(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url


def log_fetch_start(logger: logging.Logger, kind: str, url: str) -> None:
    """Log the start of a playlist or schedule fetch."""
    logger.info(f"{kind} fetch started at {datetime.now(timezone.utc).isoformat()}: {sanitize_url(url)}")


def log_fetch_end(logger: logging.Logger, kind: str, url: str, summary: str) -> None:
    """Log the end of a playlist or schedule fetch."""
    logger.info(f"{kind} fetch completed at {datetime.now(timezone.utc).isoformat()}: {sanitize_url(url)} ({summary})")

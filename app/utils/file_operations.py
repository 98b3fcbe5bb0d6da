"""
File operation utilities

This module handles guide downloads and JSON state files.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import aiofiles
import httpx


logger = logging.getLogger(__name__)


async def download_file(client: httpx.AsyncClient, url: str, filename: str) -> Path:
    """
    Stream a URL into a temporary file

    The body is written chunk by chunk so large guides never sit in memory.
    No retries: transient failures are reported to the caller.

    Args:
        client: Configured HTTP client (timeouts and headers already applied)
        url: URL to download from
        filename: Name for the temporary file

    Returns:
        Path to downloaded temporary file

    Raises:
        httpx.HTTPError: If the request fails or returns an error status
    """
    temp_file = Path(tempfile.gettempdir()) / filename
    size = 0

    async with client.stream("GET", url) as response:
        response.raise_for_status()
        async with aiofiles.open(temp_file, 'wb') as f:
            async for chunk in response.aiter_bytes():
                size += len(chunk)
                await f.write(chunk)

    logger.info(f"Downloaded {size / (1024 * 1024):.2f} MB to {temp_file}")
    return temp_file


def cleanup_temp_file(file_path: Path) -> bool:
    """
    Safely delete a temporary file

    Args:
        file_path: Path to file to delete

    Returns:
        True if deleted successfully, False otherwise
    """
    if not file_path or not file_path.exists():
        return False

    try:
        file_path.unlink()
        logger.debug(f"Cleaned up temporary file: {file_path}")
        return True
    except (OSError, PermissionError) as e:
        logger.warning(f"Failed to delete temporary file {file_path}: {e}")
        return False


async def read_json_file(file_path: Path) -> dict[str, Any]:
    """
    Read a JSON object from disk

    Missing, unreadable or corrupt files yield an empty dict.
    """
    if not file_path.exists():
        return {}

    try:
        async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
            content = await f.read()
        data = json.loads(content) if content.strip() else {}
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable state file {file_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring state file {file_path}: expected a JSON object")
        return {}
    return data


async def write_json_file(file_path: Path, data: dict[str, Any]) -> None:
    """
    Atomically write a JSON object to disk (write to a sibling temp file, then replace)

    Raises:
        OSError: If the file cannot be written
    """
    file_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
        await f.write(json.dumps(data, indent=2, sort_keys=True))

    os.replace(temp_path, file_path)

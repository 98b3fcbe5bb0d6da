"""
Fetch Coordination

Keeps at most one in-flight fetch per logical target (e.g. "playlist" or
"schedule"). A newer request for the same target cancels the older one, and
the older caller receives FetchSupersededError instead of a stale result.
"""
import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.errors import FetchSupersededError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class FetchCoordinator:
    """
    Coordinates fetch operations per target.

    Each run() wraps the fetch in its own task so that superseding can cancel
    the work without cancelling the waiting caller itself.
    """

    def __init__(self):
        self._inflight: dict[str, asyncio.Task] = {}

    async def run(self, target: str, fetch_func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute a fetch for a target, superseding any fetch already running for it.

        Args:
            target: Logical resource name
            fetch_func: Zero-argument coroutine function performing the fetch

        Returns:
            Result from fetch_func

        Raises:
            FetchSupersededError: If a newer request for the same target replaced this one
            Any exception raised by fetch_func
        """
        previous = self._inflight.get(target)
        if previous is not None and not previous.done():
            logger.info("Superseding in-flight fetch for %s", target)
            previous.cancel()

        task = asyncio.ensure_future(fetch_func())
        self._inflight[target] = task

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            # The caller went away; do not leave the fetch running
            task.cancel()
            raise
        finally:
            if self._inflight.get(target) is task:
                del self._inflight[target]

        if task.cancelled():
            raise FetchSupersededError(target)
        return task.result()

    def is_fetching(self, target: str) -> bool:
        """
        Check if a fetch for a target is currently in progress.

        Returns:
            True if fetch is running, False otherwise
        """
        task = self._inflight.get(target)
        return task is not None and not task.done()

    async def cancel_all(self) -> None:
        """Cancel every in-flight fetch (used on teardown)"""
        tasks = [task for task in self._inflight.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)
        self._inflight.clear()

"""
Client state namespaces

Key-value namespaces (preferences, paywall, playlists, history) that survive
restarts. Changes are published to subscribers after each successful edit, so
callers can react to updates without polling.
"""
import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from app.config import settings
from app.utils.file_operations import read_json_file, write_json_file


logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], None]

NAMESPACES = ("preferences", "paywall", "playlists", "history")


class StateNamespace:
    """
    In-memory key-value namespace with subscribe/notify.

    Edits are serialized by an internal asyncio.Lock; listeners receive a
    snapshot of the namespace after every committed edit.
    """

    def __init__(self, name: str, initial: dict[str, Any] | None = None):
        self.name = name
        self._values: dict[str, Any] = dict(initial or {})
        self._listeners: list[Listener] = []
        self._lock = asyncio.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def snapshot(self) -> dict[str, Any]:
        return dict(self._values)

    async def edit(self, mutate: Callable[[dict[str, Any]], None]) -> dict[str, Any]:
        """
        Apply a mutation atomically, persist it, then notify subscribers.

        The mutation runs against a copy; if persisting fails the in-memory
        values are left unchanged and the error propagates.

        Returns:
            Snapshot of the namespace after the edit
        """
        async with self._lock:
            updated = dict(self._values)
            mutate(updated)
            if updated == self._values:
                return dict(self._values)
            await self._persist(updated)
            self._values = updated
            snapshot = dict(updated)

        self._notify(snapshot)
        return snapshot

    async def set(self, key: str, value: Any) -> None:
        def _apply(values: dict[str, Any]) -> None:
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value

        await self.edit(_apply)

    async def remove(self, key: str) -> None:
        await self.edit(lambda values: values.pop(key, None))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a change listener

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"State listener for '{self.name}' failed: {e}", exc_info=True)

    async def _persist(self, values: dict[str, Any]) -> None:
        """Hook for durable namespaces; the base namespace keeps values in memory only"""
        pass


class JsonFileNamespace(StateNamespace):
    """Namespace backed by a JSON file (one file per namespace)."""

    def __init__(self, name: str, file_path: Path, initial: dict[str, Any] | None = None):
        super().__init__(name, initial)
        self.file_path = file_path

    @classmethod
    async def open(cls, state_dir: Path | str, name: str) -> "JsonFileNamespace":
        """Load a namespace from `<state_dir>/<name>.json`, starting empty if absent or corrupt"""
        file_path = Path(state_dir) / f"{name}.json"
        values = await read_json_file(file_path)
        logger.debug(f"Loaded state namespace '{name}' ({len(values)} keys) from {file_path}")
        return cls(name, file_path, values)

    async def _persist(self, values: dict[str, Any]) -> None:
        await write_json_file(self.file_path, values)


async def open_namespace(name: str, state_dir: Path | str | None = None) -> JsonFileNamespace:
    """Open one of the client namespaces under the configured state directory"""
    if name not in NAMESPACES:
        raise ValueError(f"Unknown state namespace '{name}', expected one of {NAMESPACES}")
    return await JsonFileNamespace.open(state_dir or settings.client_state_dir, name)

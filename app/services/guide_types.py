"""
Shared dataclasses used across the playlist and guide pipeline.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple


@dataclass(frozen=True, slots=True)
class Channel:
    """A playable entry from an extended-M3U playlist."""
    name: str
    url: str
    logo: str | None = None
    group: str | None = None
    schedule_id: str | None = None

    @property
    def identity(self) -> str:
        """Key used for favorites and watch history."""
        return self.schedule_id or self.name


@dataclass(frozen=True, slots=True)
class Programme:
    """A single guide entry; start and stop are UTC-aware."""
    channel_id: str
    title: str
    start: datetime
    stop: datetime


class NowNext(NamedTuple):
    current: str
    next: str


ScheduleMap = dict[str, list[Programme]]


__all__ = ["Channel", "Programme", "NowNext", "ScheduleMap"]

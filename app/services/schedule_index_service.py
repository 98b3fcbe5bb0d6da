"""
Schedule Index

Answers "what is on now / what is on next" for a channel at a given instant.
Queries are pure and re-evaluated by the caller on every tick; nothing is cached.
"""
from collections.abc import Mapping, Sequence
from datetime import datetime

from app.services.guide_types import Channel, NowNext, Programme

NOW_PLACEHOLDER = "Now"
NEXT_PLACEHOLDER = "Next"


def _sorted_programmes(channel: Channel, schedule: Mapping[str, Sequence[Programme]]) -> list[Programme] | None:
    if not channel.schedule_id:
        return None
    programmes = schedule.get(channel.schedule_id)
    if programmes is None:
        return None
    # sorted() is stable, so equal starts keep document order
    return sorted(programmes, key=lambda programme: programme.start)


def now_next(channel: Channel, schedule: Mapping[str, Sequence[Programme]], instant: datetime) -> NowNext:
    """
    Resolve the current and next programme titles for a channel

    Args:
        channel: Channel whose schedule_id links it to the guide
        schedule: Mapping of schedule id -> programmes (any order)
        instant: Point in time to evaluate (UTC-aware)

    Returns:
        (current title, next title), with "Now"/"Next" placeholders where
        the guide has no matching programme
    """
    programmes = _sorted_programmes(channel, schedule)
    if programmes is None:
        return NowNext(NOW_PLACEHOLDER, NEXT_PLACEHOLDER)

    current: Programme | None = None
    upcoming: Programme | None = None
    for programme in programmes:
        if programme.start <= instant < programme.stop:
            # Later starts win when intervals overlap
            current = programme
        elif programme.start > instant:
            upcoming = programme
            break

    return NowNext(
        current.title if current else NOW_PLACEHOLDER,
        upcoming.title if upcoming else NEXT_PLACEHOLDER,
    )


def upcoming_programmes(
    channel: Channel,
    schedule: Mapping[str, Sequence[Programme]],
    instant: datetime,
    limit: int = 5,
) -> list[Programme]:
    """Return up to `limit` programmes that have not ended yet, in start order"""
    programmes = _sorted_programmes(channel, schedule)
    if not programmes or limit <= 0:
        return []
    return [programme for programme in programmes if programme.stop > instant][:limit]

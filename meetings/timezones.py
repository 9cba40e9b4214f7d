"""Group UTC slots into calendar days of a visitor's timezone."""

from __future__ import annotations

import logging
from typing import Iterable, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from meetings.intervals import Timed

log = logging.getLogger("meetings.timezones")

UTC = ZoneInfo("UTC")

T = TypeVar("T", bound=Timed)


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return the named zone, or UTC when the name is missing or bogus.

    The name usually comes from a client cookie, so it is never trusted.
    """
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        log.warning("Unknown timezone %r, falling back to UTC", name)
        return UTC


def local_date_key(slot: Timed, tz: ZoneInfo) -> str:
    return slot.start.astimezone(tz).strftime("%Y-%m-%d")


def bucket_by_local_date(slots: Iterable[T], tz_name: str | None) -> dict[str, list[T]]:
    """Map ``YYYY-MM-DD`` (local to ``tz_name``) to the slots starting that day.

    A slot belongs to the day of its start, even if it ends after local
    midnight.  Keys come back sorted; slot order within a day is preserved.
    """
    tz = resolve_timezone(tz_name)
    buckets: dict[str, list[T]] = {}
    for slot in slots:
        buckets.setdefault(local_date_key(slot, tz), []).append(slot)
    return {key: buckets[key] for key in sorted(buckets)}

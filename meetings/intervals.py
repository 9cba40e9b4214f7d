"""Primitive operations over half-open time ranges.

Anything exposing ``start`` and ``end`` datetimes (slots, bookings,
availability windows, busy intervals) can be passed to these functions.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Protocol


class Timed(Protocol):
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Interval:
    """A ``[start, end)`` range of aware instants. Also used for slots."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end


def overlaps(a: Timed, b: Timed) -> bool:
    """True if the ranges share time. Touching ranges do not overlap."""
    return a.start < b.end and b.start < a.end


def overlaps_or_touches(a: Timed, b: Timed) -> bool:
    """True if the ranges overlap or abut (used when merging windows)."""
    return a.start <= b.end and b.start <= a.end


def merge_all(intervals: Iterable[Timed]) -> list[Interval]:
    """Fold overlapping or touching ranges into single spans, sorted by start."""
    ordered = sorted(
        (Interval(i.start, i.end) for i in intervals),
        key=lambda i: (i.start, i.end),
    )
    merged: list[Interval] = []
    for current in ordered:
        if merged and overlaps_or_touches(merged[-1], current):
            last = merged[-1]
            merged[-1] = Interval(last.start, max(last.end, current.end))
        else:
            merged.append(current)
    return merged


def clamp(interval: Timed, day_start: datetime, day_end: datetime) -> Interval:
    """Truncate to ``[day_start, day_end]``. Callers drop empty results."""
    return Interval(max(interval.start, day_start), min(interval.end, day_end))

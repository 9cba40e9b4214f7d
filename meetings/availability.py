"""Compile a host's availability windows into fixed-length candidate slots.

Slot generation is pure: the same windows, day and duration always yield the
same slots, and every generator can be restarted by calling the function
again.  Dropping slots that already started is a separate step
(``exclude_past``) because it depends on the wall clock.

Windows may overlap in storage (legacy data, imports); each window is
compiled on its own and duplicates are left to the conflict filter and the
consumer.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Iterator, Sequence

from meetings.conflicts import filter_conflicts, has_available_slot
from meetings.errors import InvalidState
from meetings.intervals import Interval, Timed, clamp

UTC = timezone.utc


def _check_duration(duration_minutes: int) -> timedelta:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise InvalidState(f"slot duration must be an integer, got {duration_minutes!r}")
    if duration_minutes <= 0:
        raise InvalidState(f"slot duration must be positive, got {duration_minutes}")
    return timedelta(minutes=duration_minutes)


def day_bounds(day: date, tz: tzinfo = UTC) -> tuple[datetime, datetime]:
    """Local midnight to the next local midnight, as UTC instants.

    Converting to UTC before doing any arithmetic keeps slot lengths exact
    across DST transitions.
    """
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(UTC)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(UTC)
    return start, end


def windows_for_day(
    windows: Iterable[Timed], day_start: datetime, day_end: datetime
) -> list[Timed]:
    """Windows whose start or end falls within the day, or that span it."""
    return [
        w
        for w in windows
        if day_start <= w.start <= day_end
        or day_start <= w.end <= day_end
        or (w.start <= day_start and w.end >= day_end)
    ]


def iter_window_slots(window: Timed, duration_minutes: int) -> Iterator[Interval]:
    """Consecutive slots from the window start. No partial trailing slot."""
    length = _check_duration(duration_minutes)
    current = window.start
    while current + length <= window.end:
        yield Interval(current, current + length)
        current += length


def compile_day_slots(
    windows: Iterable[Timed],
    day: date,
    duration_minutes: int,
    tz: tzinfo = UTC,
) -> Iterator[Interval]:
    """All candidate slots for one calendar day in ``tz``."""
    _check_duration(duration_minutes)
    day_start, day_end = day_bounds(day, tz)
    for window in windows_for_day(windows, day_start, day_end):
        clamped = clamp(window, day_start, day_end)
        if clamped.is_empty:
            continue
        yield from iter_window_slots(clamped, duration_minutes)


def iter_days(start_day: date, end_day: date) -> Iterator[date]:
    """Every date from ``start_day`` to ``end_day``, both inclusive."""
    current = start_day
    while current <= end_day:
        yield current
        current += timedelta(days=1)


def compile_slots(
    windows: Sequence[Timed],
    start_day: date,
    end_day: date,
    duration_minutes: int,
    tz: tzinfo = UTC,
) -> Iterator[Interval]:
    """Candidate slots for every day in ``[start_day, end_day]``."""
    _check_duration(duration_minutes)
    for day in iter_days(start_day, end_day):
        yield from compile_day_slots(windows, day, duration_minutes, tz)


def exclude_past(slots: Iterable[Timed], now: datetime) -> Iterator[Timed]:
    """Drop slots that start before ``now``."""
    for slot in slots:
        if slot.start >= now:
            yield slot


def compute_available_slots(
    windows: Sequence[Timed],
    bookings: Sequence[Timed],
    busy: Sequence[Timed],
    day: date,
    duration_minutes: int = 30,
    tz: tzinfo = UTC,
    now: datetime | None = None,
) -> list[Interval]:
    """Bookable slots for one day: compile, drop past ones, drop conflicts.

    ``bookings`` must contain only active (reconciled) bookings.
    """
    now = now or datetime.now(UTC)
    slots = exclude_past(compile_day_slots(windows, day, duration_minutes, tz), now)
    return list(filter_conflicts(slots, bookings, busy))


def compute_available_dates(
    windows: Sequence[Timed],
    bookings: Sequence[Timed],
    busy: Sequence[Timed],
    start_day: date,
    end_day: date,
    duration_minutes: int = 30,
    tz: tzinfo = UTC,
    today: date | None = None,
) -> list[str]:
    """``YYYY-MM-DD`` strings for days in range with at least one free slot.

    Days before ``today`` are skipped.  Used to highlight days on the
    booking calendar without materializing every slot.
    """
    _check_duration(duration_minutes)
    today = today or datetime.now(tz).date()
    dates: list[str] = []
    for day in iter_days(max(start_day, today), end_day):
        day_start, day_end = day_bounds(day, tz)
        if not windows_for_day(windows, day_start, day_end):
            continue
        candidates = compile_day_slots(windows, day, duration_minutes, tz)
        if has_available_slot(candidates, bookings, busy):
            dates.append(day.isoformat())
    return dates

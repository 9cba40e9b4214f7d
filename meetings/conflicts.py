"""Remove candidate slots that collide with bookings or busy intervals.

Bookings passed here must already be reconciled: anything the reconciler
classified as cancelled has to be filtered out by the caller first.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Sequence

from meetings.intervals import Timed, overlaps


def is_conflict_free(
    slot: Timed,
    bookings: Sequence[Timed],
    busy: Sequence[Timed],
) -> bool:
    """True if the slot overlaps no booking and no busy interval."""
    if any(overlaps(slot, booking) for booking in bookings):
        return False
    return not any(overlaps(slot, interval) for interval in busy)


def filter_conflicts(
    slots: Iterable[Timed],
    bookings: Sequence[Timed],
    busy: Sequence[Timed],
) -> Iterator[Timed]:
    """Yield the slots that are conflict-free. Touching intervals are kept."""
    for slot in slots:
        if is_conflict_free(slot, bookings, busy):
            yield slot


def has_available_slot(
    slots: Iterable[Timed],
    bookings: Sequence[Timed],
    busy: Sequence[Timed],
) -> bool:
    """Stop at the first conflict-free slot instead of materializing all."""
    return any(True for _ in filter_conflicts(slots, bookings, busy))

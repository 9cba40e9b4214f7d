"""Tests for the conflict filter."""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from conftest import utc
from meetings.conflicts import filter_conflicts, has_available_slot, is_conflict_free
from meetings.intervals import Interval


def iv(h1, m1, h2, m2):
    return Interval(utc(2024, 1, 15, h1, m1), utc(2024, 1, 15, h2, m2))


class TestConflictFilter:
    def test_overlapping_booking_removes_slot(self):
        assert list(filter_conflicts([iv(10, 0, 10, 30)], [iv(10, 15, 10, 45)], [])) == []

    def test_touching_busy_interval_retained(self):
        slot = iv(10, 0, 10, 30)
        assert list(filter_conflicts([slot], [], [iv(10, 30, 11, 0)])) == [slot]

    def test_busy_overlap_removes_slot(self):
        assert not is_conflict_free(iv(10, 0, 10, 30), [], [iv(9, 0, 10, 1)])

    def test_keeps_order(self):
        slots = [iv(9, 0, 9, 30), iv(9, 30, 10, 0), iv(10, 0, 10, 30)]
        assert list(filter_conflicts(slots, [iv(9, 30, 10, 0)], [])) == [slots[0], slots[2]]


class TestHasAvailableSlot:
    def test_true_when_one_free(self):
        slots = [iv(9, 0, 9, 30), iv(9, 30, 10, 0)]
        assert has_available_slot(slots, [iv(9, 0, 9, 30)], [])

    def test_false_when_all_blocked(self):
        assert not has_available_slot([iv(9, 0, 9, 30)], [], [iv(8, 0, 12, 0)])

    def test_short_circuits(self):
        consumed = []

        def slots():
            for slot in [iv(9, 0, 9, 30), iv(9, 30, 10, 0), iv(10, 0, 10, 30)]:
                consumed.append(slot)
                yield slot

        assert has_available_slot(slots(), [], [])
        assert len(consumed) == 1

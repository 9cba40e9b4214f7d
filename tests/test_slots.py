"""Tests for the public slot listing, booking page and availability editor."""

import os
import sys
from datetime import date

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from conftest import account, utc
from meetings.calendar_providers.base import CalendarProviderError
from meetings.errors import InvalidState, NotFound, Unauthorized
from meetings.intervals import Interval
from meetings.slots import SlotService

MONDAY = date(2030, 1, 7)
BEFORE = utc(2030, 1, 1)


def hm(h, m, day=7):
    return utc(2030, 1, day, h, m)


@pytest.fixture
def slots(repository, provider):
    return SlotService(repository, provider)


class TestGetAvailableSlots:
    async def test_existing_booking_excluded(self, slots, seed_host, seed_booking):
        host = await seed_host(windows=[(hm(9, 0), hm(12, 0))])
        await seed_booking(host, hm(10, 0), hm(10, 30))

        result = await slots.get_available_slots("alice", MONDAY, 30, now=BEFORE)

        assert [(s.start, s.end) for s in result] == [
            (hm(9, 0), hm(9, 30)),
            (hm(9, 30), hm(10, 0)),
            (hm(10, 30), hm(11, 0)),
            (hm(11, 0), hm(11, 30)),
            (hm(11, 30), hm(12, 0)),
        ]

    async def test_busy_times_block(self, slots, provider, seed_host):
        await seed_host(accounts=[account()], windows=[(hm(9, 0), hm(10, 0))])
        provider.add_busy("host@example.com", hm(9, 0), hm(9, 30))
        provider.add_busy("host@example.com", None, None, all_day=True)

        result = await slots.get_available_slots("alice", MONDAY, 30, now=BEFORE)

        assert result == [Interval(hm(9, 30), hm(10, 0))]

    async def test_declined_booking_frees_slot(self, slots, provider, repository, seed_host, seed_booking):
        host = await seed_host(accounts=[account()], windows=[(hm(9, 0), hm(10, 0))])
        provider.add_event("evt_1", "guest@example.com", response_status="declined")
        booking = await seed_booking(host, hm(9, 0), hm(9, 30), external_event_id="evt_1")

        result = await slots.get_available_slots("alice", MONDAY, 30, now=BEFORE)

        assert len(result) == 2
        assert await repository.get_booking(booking.id) is not None

    async def test_calendar_error_does_not_fail(self, slots, provider, seed_host):
        await seed_host(accounts=[account()], windows=[(hm(9, 0), hm(10, 0))])
        provider.list_errors["host@example.com"] = CalendarProviderError("401")
        result = await slots.get_available_slots("alice", MONDAY, 30, now=BEFORE)
        assert len(result) == 2

    async def test_no_windows_that_day(self, slots, seed_host):
        await seed_host(windows=[(hm(9, 0, day=8), hm(10, 0, day=8))])
        assert await slots.get_available_slots("alice", MONDAY, 30, now=BEFORE) == []

    async def test_default_duration(self, slots, seed_host):
        await seed_host(windows=[(hm(9, 0), hm(10, 0))])
        assert len(await slots.get_available_slots("alice", MONDAY, now=BEFORE)) == 2

    async def test_unknown_host(self, slots):
        with pytest.raises(NotFound):
            await slots.get_available_slots("nobody", MONDAY)


class TestGetAvailableDates:
    async def test_dates_in_range(self, slots, seed_host, seed_booking):
        host = await seed_host(windows=[
            (hm(9, 0, day=7), hm(10, 0, day=7)),
            (hm(9, 0, day=8), hm(9, 30, day=8)),
            (hm(9, 0, day=9), hm(10, 0, day=9)),
        ])
        await seed_booking(host, hm(9, 0, day=8), hm(9, 30, day=8))

        dates = await slots.get_available_dates(
            "alice", date(2030, 1, 7), date(2030, 1, 9), 30, today=date(2030, 1, 1)
        )

        assert dates == ["2030-01-07", "2030-01-09"]

    async def test_declined_booking_frees_date(self, slots, provider, repository, seed_host, seed_booking):
        host = await seed_host(accounts=[account()], windows=[(hm(9, 0), hm(9, 30))])
        provider.add_event("evt_1", "guest@example.com", response_status="declined")
        booking = await seed_booking(host, hm(9, 0), hm(9, 30), external_event_id="evt_1")

        dates = await slots.get_available_dates(
            "alice", MONDAY, MONDAY, 30, today=date(2030, 1, 1)
        )
        day_slots = await slots.get_available_slots("alice", MONDAY, 30, now=BEFORE)

        assert dates == ["2030-01-07"]
        assert len(day_slots) == 1
        assert await repository.get_booking(booking.id) is not None

    async def test_unknown_host_has_no_dates(self, slots):
        assert await slots.get_available_dates("nobody", MONDAY, MONDAY) == []


class TestBookingPage:
    async def test_grouped_by_visitor_day(self, slots, seed_host):
        # 23:30-00:30 UTC: in New York both slots fall on the 7th
        await seed_host(windows=[(hm(23, 30), utc(2030, 1, 8, 0, 30))])

        page = await slots.booking_page("alice", visitor_timezone="America/New_York", now=BEFORE)

        assert page.timezone == "America/New_York"
        assert page.available_dates == ["2030-01-07"]
        assert [s.start for s in page.slots_by_date["2030-01-07"]] == [hm(23, 30), utc(2030, 1, 8, 0, 0)]

    async def test_bad_timezone_falls_back_to_utc(self, slots, seed_host):
        await seed_host(windows=[(hm(23, 30), utc(2030, 1, 8, 0, 30))])

        page = await slots.booking_page("alice", visitor_timezone="Nowhere/Land", now=BEFORE)

        assert page.timezone == "UTC"
        assert page.available_dates == ["2030-01-07", "2030-01-08"]

    async def test_meeting_type_duration(self, slots, repository, seed_host):
        host = await seed_host(windows=[(hm(9, 0), hm(10, 30))])
        await repository.create_meeting_type(host.id, "Long", "long", 45)

        page = await slots.booking_page("alice", "long", now=BEFORE)

        assert page.duration == 45
        assert page.meeting_type.slug == "long"
        assert len(page.slots_by_date["2030-01-07"]) == 2

    async def test_unknown_meeting_type(self, slots, seed_host):
        await seed_host()
        with pytest.raises(NotFound):
            await slots.booking_page("alice", "nope")

    async def test_cancelled_bookings_reconciled(self, slots, provider, repository, seed_host, seed_booking):
        host = await seed_host(accounts=[account()], windows=[(hm(9, 0), hm(10, 0))])
        gone = await seed_booking(host, hm(9, 0), hm(9, 30), external_event_id="gone")

        page = await slots.booking_page("alice", now=BEFORE)

        assert len(page.slots_by_date["2030-01-07"]) == 2
        assert await repository.get_booking(gone.id) is None

    async def test_without_credentials_all_bookings_block(self, slots, seed_host, seed_booking):
        host = await seed_host(windows=[(hm(9, 0), hm(10, 0))])
        await seed_booking(host, hm(9, 0), hm(9, 30), external_event_id="gone")

        page = await slots.booking_page("alice", now=BEFORE)

        assert [s.start for s in page.slots_by_date["2030-01-07"]] == [hm(9, 30)]

    async def test_quota_exceeded(self, slots, seed_host, seed_booking):
        host = await seed_host(plan="free", windows=[(hm(9, 0), hm(10, 0))])
        await seed_booking(host, utc(2030, 1, 2, 9), utc(2030, 1, 2, 9, 30))
        await seed_booking(host, utc(2030, 1, 3, 9), utc(2030, 1, 3, 9, 30))

        page = await slots.booking_page("alice", now=utc(2030, 1, 4))

        assert page.quota_exceeded is True
        assert page.slots_by_date == {}

    async def test_past_availability_only(self, slots, seed_host):
        await seed_host(windows=[(hm(9, 0), hm(10, 0))])
        page = await slots.booking_page("alice", now=utc(2030, 2, 1))
        assert page.available_dates == []

    async def test_unknown_host(self, slots):
        with pytest.raises(NotFound):
            await slots.booking_page("nobody")


class TestSaveAvailability:
    async def test_merges_before_saving(self, slots, repository, seed_host):
        await seed_host()
        saved = await slots.save_availability("user_1", [
            Interval(hm(9, 30), hm(11, 0)),
            Interval(hm(9, 0), hm(10, 0)),
        ])

        assert [(w.start, w.end) for w in saved] == [(hm(9, 0), hm(11, 0))]
        host = await repository.get_host_by_identity("user_1")
        assert host.availability == saved

    async def test_replaces_with_fresh_keys(self, slots, repository, seed_host):
        host = await seed_host(windows=[(hm(9, 0), hm(10, 0))])
        old_key = host.availability[0].key

        saved = await slots.save_availability("user_1", [Interval(hm(9, 0), hm(10, 0))])

        assert saved[0].key != old_key

    async def test_rejects_inverted_window(self, slots, seed_host):
        await seed_host()
        with pytest.raises(InvalidState):
            await slots.save_availability("user_1", [Interval(hm(10, 0), hm(9, 0))])

    async def test_requires_identity(self, slots):
        with pytest.raises(Unauthorized):
            await slots.save_availability(None, [])


class TestHostBusyTimes:
    async def test_collects_all_accounts(self, slots, provider, seed_host):
        await seed_host(accounts=[
            account(),
            account("acc_2", email="work@example.com", is_default=False),
        ])
        provider.add_busy("work@example.com", hm(11, 0), hm(12, 0), title="Standup")
        provider.add_busy("host@example.com", hm(9, 0), hm(10, 0))

        busy = await slots.host_busy_times("user_1", hm(0, 0), hm(23, 0))

        assert [(b.account_email, b.title) for b in busy] == [
            ("host@example.com", "Busy"),
            ("work@example.com", "Standup"),
        ]

    async def test_requires_identity(self, slots):
        with pytest.raises(Unauthorized):
            await slots.host_busy_times(None, hm(0, 0), hm(23, 0))

"""Public booking-page flows and the host's availability editor."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional, Sequence

from meetings.availability import (
    compute_available_dates,
    compute_available_slots,
    day_bounds,
    windows_for_day,
)
from meetings.busy_times import BusyInterval, fetch_busy_intervals
from meetings.calendar_providers.base import CalendarProvider
from meetings.config import settings
from meetings.errors import InvalidState, NotFound, Unauthorized
from meetings.hosts import HostService
from meetings.intervals import Interval, Timed, merge_all
from meetings.models import AvailabilityWindow, BookingPage, SlotOut
from meetings.quota import QuotaGate
from meetings.reconciler import BookingReconciler
from meetings.repository import Repository
from meetings.timezones import bucket_by_local_date, resolve_timezone

log = logging.getLogger("meetings.slots")


class SlotService:
    def __init__(
        self,
        repository: Repository,
        provider: CalendarProvider,
        reconciler: Optional[BookingReconciler] = None,
        quota: Optional[QuotaGate] = None,
        hosts: Optional[HostService] = None,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.reconciler = reconciler or BookingReconciler(repository, provider)
        self.quota = quota or QuotaGate(repository)
        self.hosts = hosts or HostService(repository)

    # ── Public ───────────────────────────────────────────────────────

    async def get_available_slots(
        self,
        host_slug: str,
        day: date,
        duration_minutes: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Interval]:
        """Bookable slots for one server-local day.

        Bookings whose guest declined (or whose event is gone) free their
        slot again; nothing is deleted on this path.
        """
        duration = duration_minutes or settings.default_slot_minutes
        host = await self.repository.get_host_by_slug(host_slug)
        if host is None:
            raise NotFound("Host not found")

        tz = settings.tz
        day_start, day_end = day_bounds(day, tz)
        if not windows_for_day(host.availability, day_start, day_end):
            return []

        bookings = await self.repository.bookings_overlapping(host.id, day_start, day_end)
        bookings = await self.reconciler.exclude_cancelled(host.default_account, bookings)
        busy = await fetch_busy_intervals(
            self.provider, host.connected_accounts, day_start, day_end
        )
        return compute_available_slots(
            host.availability, bookings, busy, day, duration, tz, now
        )

    async def get_available_dates(
        self,
        host_slug: str,
        start_day: date,
        end_day: date,
        duration_minutes: Optional[int] = None,
        today: Optional[date] = None,
    ) -> list[str]:
        """Days in ``[start_day, end_day]`` with at least one free slot.

        An unknown host has no dates.
        """
        duration = duration_minutes or settings.default_slot_minutes
        host = await self.repository.get_host_by_slug(host_slug)
        if host is None:
            return []

        tz = settings.tz
        range_start = day_bounds(start_day, tz)[0]
        range_end = day_bounds(end_day, tz)[1]
        bookings = await self.repository.bookings_overlapping(host.id, range_start, range_end)
        bookings = await self.reconciler.exclude_cancelled(host.default_account, bookings)
        busy = await fetch_busy_intervals(
            self.provider, host.connected_accounts, range_start, range_end
        )
        return compute_available_dates(
            host.availability, bookings, busy, start_day, end_day, duration, tz, today
        )

    async def booking_page(
        self,
        host_slug: str,
        meeting_type_slug: Optional[str] = None,
        visitor_timezone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BookingPage:
        """Slots from today to the host's last availability, grouped by the
        visitor's local date.

        Bookings are reconciled first, so cancelled ones are removed from
        the store as a side effect.
        """
        host = await self.repository.get_host_by_slug(host_slug)
        if host is None:
            raise NotFound("Host not found")

        meeting_type = None
        if meeting_type_slug:
            meeting_type = await self.repository.get_meeting_type(host.id, meeting_type_slug)
            if meeting_type is None:
                raise NotFound("Meeting type not found")

        visitor_tz = resolve_timezone(visitor_timezone)
        duration = meeting_type.duration if meeting_type else settings.default_slot_minutes
        page = BookingPage(
            host_name=host.name or "Host",
            host_slug=host_slug,
            meeting_type=meeting_type,
            duration=duration,
            timezone=visitor_tz.key,
        )

        now = now or datetime.now(timezone.utc)
        quota = await self.quota.for_host(host, now)
        if quota.is_exceeded:
            page.quota_exceeded = True
            return page

        all_bookings = await self.repository.bookings_for_host(host.id)
        active_ids = await self.reconciler.active_booking_ids(
            host.default_account, all_bookings
        )
        bookings = [b for b in all_bookings if b.id in active_ids]

        tz = settings.tz
        today = now.astimezone(tz).date()
        range_start = day_bounds(today, tz)[0]
        range_end = max((w.end for w in host.availability), default=range_start)
        if range_end <= range_start:
            return page
        last_day = range_end.astimezone(tz).date()

        busy = await fetch_busy_intervals(
            self.provider, host.connected_accounts, range_start, range_end
        )
        slots: list[Interval] = []
        for day_key in compute_available_dates(
            host.availability, bookings, busy, today, last_day, duration, tz, today
        ):
            slots.extend(
                compute_available_slots(
                    host.availability, bookings, busy,
                    date.fromisoformat(day_key), duration, tz, now,
                )
            )

        buckets = bucket_by_local_date(slots, visitor_tz.key)
        page.slots_by_date = {
            key: [SlotOut(start=s.start, end=s.end) for s in day_slots]
            for key, day_slots in buckets.items()
        }
        page.available_dates = list(page.slots_by_date)
        return page

    # ── Host ─────────────────────────────────────────────────────────

    async def save_availability(
        self, identity: Optional[str], windows: Sequence[Timed]
    ) -> list[AvailabilityWindow]:
        """Replace the host's availability with the merged ``windows``."""
        for window in windows:
            if window.start >= window.end:
                raise InvalidState("Availability window must start before it ends")
        host = await self.hosts.ensure_host(identity)
        merged = merge_all(windows)
        saved = await self.repository.replace_availability(host.id, merged)
        log.info("Saved %d availability window(s) for host %s", len(saved), host.id)
        return saved

    async def host_busy_times(
        self, identity: Optional[str], start: datetime, end: datetime
    ) -> list[BusyInterval]:
        if not identity:
            raise Unauthorized("Not authenticated")
        host = await self.repository.get_host_by_identity(identity)
        if host is None:
            return []
        return await fetch_busy_intervals(
            self.provider, host.connected_accounts, start, end
        )

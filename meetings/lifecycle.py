"""Booking creation and cancellation.

Creating a booking re-checks the requested interval against the current
bookings and busy times right before persisting.  This is optimistic: two
guests who both pass the re-check before either write lands can still
double-book the same slot.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from meetings.busy_times import fetch_busy_intervals
from meetings.calendar_providers.base import (
    Attendee,
    CalendarProvider,
    CalendarProviderError,
    NewEvent,
)
from meetings.conflicts import is_conflict_free
from meetings.errors import InvalidState, NotFound, QuotaExceeded, SlotUnavailable, Unauthorized
from meetings.intervals import Interval
from meetings.models import Booking, BookingRequest, Host, MeetingType
from meetings.quota import QuotaGate
from meetings.reconciler import BookingReconciler, redact_pii
from meetings.repository import Repository

log = logging.getLogger("meetings.lifecycle")


def event_summary(host: Host, guest_name: str, meeting_type: Optional[MeetingType]) -> str:
    prefix = meeting_type.name if meeting_type and meeting_type.name else "Meeting"
    return f"{prefix}: {host.name} x {guest_name}"


class BookingService:
    def __init__(
        self,
        repository: Repository,
        provider: CalendarProvider,
        reconciler: Optional[BookingReconciler] = None,
        quota: Optional[QuotaGate] = None,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.reconciler = reconciler or BookingReconciler(repository, provider)
        self.quota = quota or QuotaGate(repository)

    # ── Re-verification ──────────────────────────────────────────────

    async def is_slot_available(self, host: Host, slot: Interval) -> bool:
        """Check ``slot`` against the host's current bookings and busy times.

        Bookings the external calendar reports as cancelled or declined do
        not block.  Provider failures leave bookings blocking.
        """
        bookings = await self.repository.bookings_overlapping(host.id, slot.start, slot.end)
        bookings = await self.reconciler.exclude_cancelled(host.default_account, bookings)
        busy = await fetch_busy_intervals(
            self.provider, host.connected_accounts, slot.start, slot.end
        )
        return is_conflict_free(slot, bookings, busy)

    # ── Create ───────────────────────────────────────────────────────

    async def create_booking(self, request: BookingRequest) -> Booking:
        if request.start >= request.end:
            raise InvalidState("Booking must start before it ends")

        host = await self.repository.get_host_by_slug(request.host_slug)
        if host is None:
            raise NotFound("Host not found")

        quota = await self.quota.for_host(host)
        if quota.is_exceeded:
            raise QuotaExceeded("Host has reached their monthly booking limit")

        meeting_type = None
        if request.meeting_type_slug:
            meeting_type = await self.repository.get_meeting_type(
                host.id, request.meeting_type_slug
            )
            if meeting_type is None:
                log.info(
                    "Meeting type %r not found for host %s, booking unattributed",
                    request.meeting_type_slug, host.id,
                )

        slot = Interval(request.start, request.end)
        if not await self.is_slot_available(host, slot):
            raise SlotUnavailable("This time slot is no longer available")

        external_event_id = None
        meeting_link = None
        account = host.default_account
        if account is not None and account.has_tokens:
            event = NewEvent(
                summary=event_summary(host, request.guest_name, meeting_type),
                start=request.start,
                end=request.end,
                description=request.notes or "",
                attendees=[
                    Attendee(host.email, response_status="accepted"),
                    Attendee(request.guest_email),
                ],
                conference_request_id=f"booking-{uuid.uuid4().hex}",
            )
            try:
                created = await self.provider.insert_event(account, event)
                external_event_id = created.id
                meeting_link = created.meeting_link
            except CalendarProviderError as e:
                log.error("Failed to create calendar event for host %s: %s", host.id, e)

        booking = await self.repository.create_booking(
            host_id=host.id,
            guest_name=request.guest_name,
            guest_email=request.guest_email,
            start=request.start,
            end=request.end,
            meeting_type_id=meeting_type.id if meeting_type else None,
            external_event_id=external_event_id,
            meeting_link=meeting_link,
            notes=request.notes,
        )
        log.info(
            "Booking %s created for host %s, guest %s",
            booking.id, host.id, redact_pii(request.guest_email),
        )
        return booking

    # ── Cancel / list ────────────────────────────────────────────────

    async def _host_for(self, identity: Optional[str]) -> Host:
        if not identity:
            raise Unauthorized("Not authenticated")
        host = await self.repository.get_host_by_identity(identity)
        if host is None:
            raise NotFound("Host not found")
        return host

    async def cancel_booking(self, identity: Optional[str], booking_id: str) -> None:
        host = await self._host_for(identity)
        booking = await self.repository.get_booking(booking_id)
        if booking is None or booking.host_id != host.id:
            raise NotFound("Booking not found")

        account = host.default_account
        if booking.external_event_id and account is not None and account.has_tokens:
            try:
                await self.provider.delete_event(account, booking.external_event_id)
            except CalendarProviderError as e:
                log.error(
                    "Failed to delete event %s for booking %s: %s",
                    booking.external_event_id, booking.id, e,
                )

        await self.repository.delete_booking(booking.id)
        log.info("Booking %s cancelled by host %s", booking.id, host.id)

    async def list_host_bookings(self, identity: Optional[str]) -> list[Booking]:
        host = await self._host_for(identity)
        bookings = await self.repository.bookings_for_host(host.id)
        return await self.reconciler.process_bookings(identity, bookings)

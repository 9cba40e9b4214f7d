"""Read-time reconciliation of bookings against the external calendar.

The external calendar is authoritative: a booking whose event was deleted,
cancelled, or declined by the guest is considered cancelled and is removed
from the store.  The work is split in two phases so listing code can be
tested without deletion side effects:

    classify(account, bookings)   query only, returns a status per booking
    reconcile(account, statuses)  deletes whatever classify marked cancelled

Both phases fan out concurrently; each booking is independent and every
step is idempotent, so overlapping passes over the same booking are safe.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from meetings.calendar_providers.base import (
    CalendarProvider,
    CalendarProviderError,
    EventNotFoundError,
)
from meetings.errors import NotFound, Unauthorized
from meetings.models import Booking, ConnectedAccount, GuestStatus
from meetings.repository import Repository

log = logging.getLogger("meetings.reconciler")


def redact_pii(value: str) -> str:
    """Mask PII for logging: show first 3 and last 2 chars only."""
    if not value or len(value) <= 5:
        return "***"
    return value[:3] + "***" + value[-2:]


@dataclass
class BookingStatus:
    booking_id: str
    guest_status: GuestStatus = "unknown"
    is_cancelled: bool = False
    event_exists: bool = True
    external_event_id: Optional[str] = None


class BookingReconciler:
    """Classifies bookings through one connected account and cleans up."""

    def __init__(self, repository: Repository, provider: CalendarProvider) -> None:
        self.repository = repository
        self.provider = provider

    # ---- Phase 1: classify (no side effects) ----

    async def _classify_one(
        self, account: ConnectedAccount, booking: Booking
    ) -> BookingStatus:
        event_id = booking.external_event_id
        try:
            event = await self.provider.get_event(account, event_id)
        except EventNotFoundError:
            log.info("Event %s for booking %s is gone", event_id, booking.id)
            return BookingStatus(
                booking.id, is_cancelled=True, event_exists=False,
                external_event_id=event_id,
            )
        except CalendarProviderError as e:
            # Cannot verify: keep the booking.
            log.warning("Could not check event %s for booking %s: %s", event_id, booking.id, e)
            return BookingStatus(booking.id, external_event_id=event_id)

        if event.status == "cancelled":
            return BookingStatus(
                booking.id, is_cancelled=True, external_event_id=event_id
            )

        attendee = event.attendee(booking.guest_email)
        guest_status = (attendee.response_status if attendee else None) or "needsAction"
        if guest_status not in ("accepted", "declined", "tentative", "needsAction"):
            guest_status = "unknown"
        if guest_status == "declined":
            log.info(
                "Guest %s declined booking %s",
                redact_pii(booking.guest_email), booking.id,
            )
        return BookingStatus(
            booking.id,
            guest_status=guest_status,
            is_cancelled=guest_status == "declined",
            external_event_id=event_id,
        )

    async def classify(
        self, account: ConnectedAccount, bookings: Sequence[Booking]
    ) -> dict[str, BookingStatus]:
        """Status of every booking that carries an external event id.

        Bookings without one are internal-only and never reported.
        """
        linked = [b for b in bookings if b.external_event_id]
        statuses = await asyncio.gather(
            *(self._classify_one(account, b) for b in linked)
        )
        return {s.booking_id: s for s in statuses}

    # ---- Phase 2: reconcile (deletes cancelled bookings) ----

    async def _remove(self, account: ConnectedAccount, status: BookingStatus) -> None:
        if status.event_exists and status.external_event_id:
            try:
                await self.provider.delete_event(account, status.external_event_id)
            except CalendarProviderError as e:
                log.error(
                    "Failed to delete event %s for booking %s: %s",
                    status.external_event_id, status.booking_id, e,
                )
        try:
            await self.repository.delete_booking(status.booking_id)
        except Exception as e:
            # Left in place; the next pass re-evaluates it.
            log.error("Failed to delete booking %s: %s", status.booking_id, e)
            return
        log.info("Removed cancelled booking %s", status.booking_id)

    async def reconcile(
        self, account: ConnectedAccount, statuses: Iterable[BookingStatus]
    ) -> None:
        cancelled = [s for s in statuses if s.is_cancelled]
        if cancelled:
            await asyncio.gather(*(self._remove(account, s) for s in cancelled))

    # ---- Read paths ----

    async def exclude_cancelled(
        self, account: Optional[ConnectedAccount], bookings: Sequence[Booking]
    ) -> list[Booking]:
        """Drop bookings classified as cancelled, without deleting anything."""
        if not bookings or account is None or not account.has_tokens:
            return list(bookings)
        statuses = await self.classify(account, bookings)
        return [
            b for b in bookings
            if not (b.id in statuses and statuses[b.id].is_cancelled)
        ]

    async def active_booking_ids(
        self, account: Optional[ConnectedAccount], bookings: Sequence[Booking]
    ) -> set[str]:
        """Ids of bookings that should still block slots on the booking page.

        Without a usable account nothing can be verified, so every booking
        counts as active.
        """
        ids = {b.id for b in bookings}
        if account is None or not account.has_tokens:
            return ids
        statuses = await self.classify(account, bookings)
        await self.reconcile(account, statuses.values())
        return {i for i in ids if not (i in statuses and statuses[i].is_cancelled)}

    async def process_bookings(
        self, identity: Optional[str], bookings: Sequence[Booking]
    ) -> list[Booking]:
        """Reconcile a host's bookings and return the active ones.

        Active bookings are annotated with the guest's response status.
        """
        if not identity:
            raise Unauthorized("Not authenticated")
        host = await self.repository.get_host_by_identity(identity)
        if host is None:
            raise NotFound("Host not found")

        account = host.default_account
        if account is None or not account.has_tokens:
            return list(bookings)

        statuses = await self.classify(account, bookings)
        await self.reconcile(account, statuses.values())

        active = []
        for booking in bookings:
            status = statuses.get(booking.id)
            if status is None:
                active.append(booking)
            elif not status.is_cancelled:
                active.append(booking.model_copy(update={"guest_status": status.guest_status}))
        return active

"""Abstract base class for calendar providers.

Defines the interface the scheduling core needs from an external calendar:
list a host's events, read one event's attendee state, create an event with
a conference link, delete an event.  Any calendar backend (Google, Outlook,
etc.) implements this ABC.

Every call acts through one of the host's connected accounts.  Refreshing
that account's access token is the provider's job and stays invisible to
callers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from meetings.errors import ExternalSyncFailure
from meetings.models import ConnectedAccount


class CalendarProviderError(ExternalSyncFailure):
    """A calendar API call failed (network, auth, quota, ...)."""


class EventNotFoundError(CalendarProviderError):
    """The event does not exist any more (deleted or gone)."""


@dataclass
class Attendee:
    email: str
    response_status: Optional[str] = None


@dataclass
class ExternalEvent:
    """An event as read back from the calendar."""

    id: str
    status: str = "confirmed"  # confirmed | tentative | cancelled
    title: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    all_day: bool = False
    attendees: list[Attendee] = field(default_factory=list)

    def attendee(self, email: str) -> Optional[Attendee]:
        """Attendee entry matching ``email`` case-insensitively."""
        wanted = email.lower()
        for attendee in self.attendees:
            if attendee.email and attendee.email.lower() == wanted:
                return attendee
        return None


@dataclass
class NewEvent:
    """Represents a calendar event to be created."""

    summary: str
    start: datetime
    end: datetime
    description: str = ""
    attendees: list[Attendee] = field(default_factory=list)
    conference_request_id: Optional[str] = None  # ask for a video link


@dataclass
class CreatedEvent:
    id: str
    meeting_link: Optional[str] = None


class CalendarProvider(ABC):
    """Abstract calendar backend.

    Subclasses must implement event listing, lookup, creation and deletion.
    Failures raise ``CalendarProviderError``; a missing event raises
    ``EventNotFoundError``.
    """

    @abstractmethod
    async def list_events(
        self,
        account: ConnectedAccount,
        time_min: datetime,
        time_max: datetime,
    ) -> list[ExternalEvent]:
        """Return the account's events overlapping ``[time_min, time_max)``.

        All-day events are returned with ``all_day=True`` and no start/end.
        """

    @abstractmethod
    async def get_event(
        self, account: ConnectedAccount, event_id: str
    ) -> ExternalEvent:
        """Fetch one event with its status and attendees.

        Raises:
            EventNotFoundError: the event was deleted.
        """

    @abstractmethod
    async def insert_event(
        self, account: ConnectedAccount, event: NewEvent
    ) -> CreatedEvent:
        """Create an event and send invitations to its attendees."""

    @abstractmethod
    async def delete_event(
        self, account: ConnectedAccount, event_id: str
    ) -> None:
        """Delete an event. Deleting an already-deleted event succeeds."""

    async def revoke_token(self, token: str) -> None:
        """Revoke an OAuth token when an account is disconnected.

        Best effort; the default implementation does nothing.
        """

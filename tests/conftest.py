"""Shared fixtures: in-memory store and a scriptable calendar provider."""

import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest

from meetings.calendar_providers.base import (
    Attendee,
    CalendarProvider,
    CreatedEvent,
    EventNotFoundError,
    ExternalEvent,
)
from meetings.intervals import Interval
from meetings.models import ConnectedAccount
from meetings.repository import Repository
from meetings.store import MemoryStore


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeCalendarProvider(CalendarProvider):
    """Records every call; events live in plain dicts."""

    def __init__(self):
        self.events: dict[str, ExternalEvent] = {}
        self.calendars: dict[str, list[ExternalEvent]] = {}  # email -> events
        self.get_errors: dict[str, Exception] = {}
        self.list_errors: dict[str, Exception] = {}
        self.insert_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.inserted = []
        self.deleted: list[str] = []
        self.get_calls: list[str] = []
        self.revoked: list[str] = []

    def add_event(self, event_id, guest_email, response_status="accepted", status="confirmed"):
        self.events[event_id] = ExternalEvent(
            id=event_id,
            status=status,
            attendees=[Attendee(guest_email, response_status)],
        )

    def add_busy(self, email, start, end, title="Busy", all_day=False):
        self.calendars.setdefault(email, []).append(
            ExternalEvent(
                id=f"busy_{len(self.calendars.get(email, []))}",
                title=title,
                start=None if all_day else start,
                end=None if all_day else end,
                all_day=all_day,
            )
        )

    async def list_events(self, account, time_min, time_max):
        if account.email in self.list_errors:
            raise self.list_errors[account.email]
        return [
            e for e in self.calendars.get(account.email, [])
            if e.all_day or (e.start < time_max and e.end > time_min)
        ]

    async def get_event(self, account, event_id):
        self.get_calls.append(event_id)
        if event_id in self.get_errors:
            raise self.get_errors[event_id]
        if event_id not in self.events:
            raise EventNotFoundError(event_id)
        return self.events[event_id]

    async def insert_event(self, account, event):
        if self.insert_error is not None:
            raise self.insert_error
        self.inserted.append(event)
        event_id = f"evt_{len(self.inserted)}"
        self.events[event_id] = ExternalEvent(
            id=event_id,
            title=event.summary,
            start=event.start,
            end=event.end,
            attendees=list(event.attendees),
        )
        return CreatedEvent(id=event_id, meeting_link=f"https://meet.google.com/{event_id}")

    async def delete_event(self, account, event_id):
        self.deleted.append(event_id)
        if self.delete_error is not None:
            raise self.delete_error
        self.events.pop(event_id, None)

    async def revoke_token(self, token):
        self.revoked.append(token)


def account(key="acc_1", email="host@example.com", is_default=True, tokens=True, account_id=None):
    return ConnectedAccount(
        key=key,
        account_id=account_id or f"google_{key}",
        email=email,
        access_token="access" if tokens else None,
        refresh_token="refresh" if tokens else None,
        is_default=is_default,
    )


@pytest.fixture(autouse=True)
def _pinned_settings(monkeypatch):
    """Keep tests independent of a developer's .env."""
    from meetings.config import settings

    monkeypatch.setattr(settings, "calendar_timezone", "UTC")
    monkeypatch.setattr(settings, "default_slot_minutes", 30)
    monkeypatch.setattr(settings, "app_base_url", "https://meet.test")


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def repository(store):
    return Repository(store)


@pytest.fixture
def provider():
    return FakeCalendarProvider()


@pytest.fixture
def seed_host(repository):
    """Factory creating a host with accounts and availability windows."""

    async def _seed(
        identity="user_1",
        slug="alice",
        name="Alice",
        email="host@example.com",
        plan="pro",
        accounts=(),
        windows=(),
    ):
        host = await repository.create_host(identity, name, email, slug=slug, plan=plan)
        for acc in accounts:
            await repository.append_account(host.id, acc)
        if windows:
            await repository.replace_availability(
                host.id, [Interval(start, end) for start, end in windows]
            )
        return await repository.get_host(host.id)

    return _seed


@pytest.fixture
def seed_booking(repository):
    async def _seed(host, start, end, guest_email="guest@example.com", external_event_id=None):
        return await repository.create_booking(
            host_id=host.id,
            guest_name="Guest",
            guest_email=guest_email,
            start=start,
            end=end,
            external_event_id=external_event_id,
        )

    return _seed


"""Busy intervals gathered from every calendar a host has connected."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from meetings.calendar_providers.base import CalendarProvider, CalendarProviderError
from meetings.models import ConnectedAccount

log = logging.getLogger("meetings.busy_times")


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    account_email: str
    title: str = "Busy"


async def _busy_for_account(
    provider: CalendarProvider,
    account: ConnectedAccount,
    start: datetime,
    end: datetime,
) -> list[BusyInterval]:
    try:
        events = await provider.list_events(account, start, end)
    except CalendarProviderError as e:
        log.error("Error fetching busy times for %s: %s", account.email, e)
        return []

    busy = []
    for event in events:
        # All-day events (no start/end instants) do not block slots.
        if event.all_day or event.start is None or event.end is None:
            continue
        if event.status == "cancelled":
            continue
        busy.append(
            BusyInterval(
                start=event.start,
                end=event.end,
                account_email=account.email,
                title=event.title or "Busy",
            )
        )
    return busy


async def fetch_busy_intervals(
    provider: CalendarProvider,
    accounts: Iterable[ConnectedAccount],
    start: datetime,
    end: datetime,
) -> list[BusyInterval]:
    """Busy intervals across all accounts with tokens, sorted by start.

    An account whose calendar cannot be read contributes nothing; the others
    are still returned.
    """
    usable = [a for a in accounts if a.has_tokens]
    if not usable:
        return []
    results = await asyncio.gather(
        *(_busy_for_account(provider, account, start, end) for account in usable)
    )
    busy = [interval for batch in results for interval in batch]
    busy.sort(key=lambda b: (b.start, b.end))
    return busy

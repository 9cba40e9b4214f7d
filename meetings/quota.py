"""Monthly booking quota per plan tier."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional

from meetings.config import settings
from meetings.models import BookingQuotaStatus, Host
from meetings.repository import Repository

log = logging.getLogger("meetings.quota")

# None = unbounded
PLAN_LIMITS: dict[str, dict[str, Optional[int]]] = {
    "free": {"max_calendars": 1, "max_bookings_per_month": 2},
    "starter": {"max_calendars": 3, "max_bookings_per_month": 10},
    "pro": {"max_calendars": None, "max_bookings_per_month": None},
}


def plan_for(host: Optional[Host]) -> str:
    plan = host.plan if host else "free"
    return plan if plan in PLAN_LIMITS else "free"


def plan_limits(plan: str) -> dict[str, Optional[int]]:
    return PLAN_LIMITS.get(plan, PLAN_LIMITS["free"])


def month_bounds(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """``[first of month 00:00, first of next month 00:00)`` in ``tz``, as UTC."""
    local = now.astimezone(tz)
    start = datetime(local.year, local.month, 1, tzinfo=tz)
    if local.month == 12:
        end = datetime(local.year + 1, 1, 1, tzinfo=tz)
    else:
        end = datetime(local.year, local.month + 1, 1, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def quota_status(plan: str, used: int) -> BookingQuotaStatus:
    limit = plan_limits(plan)["max_bookings_per_month"]
    if limit is None:
        return BookingQuotaStatus(
            used=used, limit=None, remaining=None, is_exceeded=False, plan=plan
        )
    return BookingQuotaStatus(
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
        is_exceeded=used >= limit,
        plan=plan,
    )


def _blocked(plan: str = "free") -> BookingQuotaStatus:
    return BookingQuotaStatus(used=0, limit=0, remaining=0, is_exceeded=True, plan=plan)


class QuotaGate:
    """Counts the bookings a host received this calendar month."""

    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    async def for_host(
        self, host: Host, now: Optional[datetime] = None
    ) -> BookingQuotaStatus:
        now = now or datetime.now(timezone.utc)
        start, end = month_bounds(now, settings.tz)
        used = await self.repository.count_bookings_starting_in(host.id, start, end)
        status = quota_status(plan_for(host), used)
        if status.is_exceeded:
            log.info("Host %s is over its %s booking quota (%d used)", host.id, status.plan, used)
        return status

    async def for_host_slug(
        self, slug: str, now: Optional[datetime] = None
    ) -> BookingQuotaStatus:
        host = await self.repository.get_host_by_slug(slug)
        if host is None:
            return _blocked()
        return await self.for_host(host, now)

    async def for_identity(
        self, identity: Optional[str], now: Optional[datetime] = None
    ) -> BookingQuotaStatus:
        if not identity:
            return _blocked()
        host = await self.repository.get_host_by_identity(identity)
        if host is None:
            return _blocked()
        return await self.for_host(host, now)

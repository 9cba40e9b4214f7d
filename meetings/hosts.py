"""Host documents, public booking links and meeting types."""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from meetings.config import settings
from meetings.errors import InvalidState, Unauthorized
from meetings.models import Host, MeetingType
from meetings.repository import Repository

log = logging.getLogger("meetings.hosts")

MEETING_DURATIONS = (15, 30, 45, 60, 90)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def slugify(text: str) -> str:
    """Lowercase, dash-separated, at most 50 characters."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:50]


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def unique_slug(name: str, now_ms: Optional[int] = None) -> str:
    """``slugify(name)`` plus a base-36 millisecond timestamp."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{slugify(name) or 'user'}-{to_base36(now_ms)}"


def booking_url(host_slug: str, meeting_type_slug: Optional[str] = None) -> str:
    url = f"{settings.app_base_url.rstrip('/')}/book/{host_slug}"
    if meeting_type_slug:
        url = f"{url}/{meeting_type_slug}"
    return url


class HostService:
    def __init__(self, repository: Repository) -> None:
        self.repository = repository

    async def ensure_host(
        self, identity: Optional[str], name: str = "", email: str = ""
    ) -> Host:
        """Return the caller's host document, creating it on first use."""
        if not identity:
            raise Unauthorized("Not authenticated")
        host = await self.repository.get_host_by_identity(identity)
        if host is not None:
            return host
        host = await self.repository.create_host(identity, name or "User", email)
        log.info("Created host %s", host.id)
        return host

    async def booking_link(self, identity: Optional[str]) -> dict[str, str]:
        """Return ``{slug, url}``, assigning a slug on first call."""
        host = await self.ensure_host(identity)
        slug = host.slug
        if not slug:
            now_ms = int(time.time() * 1000)
            slug = unique_slug(host.name or "user", now_ms)
            while await self.repository.slug_taken(slug):
                now_ms += 1
                slug = unique_slug(host.name or "user", now_ms)
            await self.repository.set_host_slug(host.id, slug)
            log.info("Assigned booking slug %s to host %s", slug, host.id)
        return {"slug": slug, "url": booking_url(slug)}

    async def booking_link_for_meeting_type(
        self, identity: Optional[str], meeting_type_slug: str
    ) -> dict[str, str]:
        link = await self.booking_link(identity)
        return {"url": booking_url(link["slug"], meeting_type_slug)}

    async def list_meeting_types(self, identity: Optional[str]) -> list[MeetingType]:
        if not identity:
            raise Unauthorized("Not authenticated")
        host = await self.repository.get_host_by_identity(identity)
        if host is None:
            return []
        return await self.repository.meeting_types_for_host(host.id)

    async def create_meeting_type(
        self,
        identity: Optional[str],
        name: str,
        duration: int,
        description: Optional[str] = None,
        is_default: bool = True,
    ) -> MeetingType:
        if duration not in MEETING_DURATIONS:
            raise InvalidState(
                f"Meeting duration must be one of {MEETING_DURATIONS}, got {duration!r}"
            )
        slug = slugify(name)
        if not slug:
            raise InvalidState("Meeting type name must contain letters or digits")
        host = await self.ensure_host(identity)
        meeting_type = await self.repository.create_meeting_type(
            host.id, name, slug, duration, description, is_default
        )
        log.info("Created meeting type %s (%d min) for host %s", slug, duration, host.id)
        return meeting_type

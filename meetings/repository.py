"""Named document queries and model mapping over the persistent store.

Everything that knows the document layout lives here: services work with
pydantic models and never build queries or patch paths themselves.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Optional

from meetings.intervals import Timed
from meetings.models import (
    AvailabilityWindow,
    Booking,
    ConnectedAccount,
    Host,
    MeetingType,
)
from meetings.store import PersistentStore, Query

log = logging.getLogger("meetings.repository")

HOST = "host"
BOOKING = "booking"
MEETING_TYPE = "meeting_type"


def account_path(key: str, field: str | None = None) -> str:
    path = f'connected_accounts[_key=="{key}"]'
    return f"{path}.{field}" if field else path


# ── Document <-> model mapping ──────────────────────────────────────


def _host_from_doc(doc: dict[str, Any]) -> Host:
    return Host(
        id=doc["_id"],
        identity=doc.get("identity", ""),
        name=doc.get("name", ""),
        email=doc.get("email", ""),
        slug=doc.get("slug"),
        plan=doc.get("plan") or "free",
        availability=[
            AvailabilityWindow(key=w["_key"], start=w["start"], end=w["end"])
            for w in doc.get("availability") or []
        ],
        connected_accounts=[
            ConnectedAccount(
                key=a["_key"],
                account_id=a.get("account_id", ""),
                email=a.get("email", ""),
                access_token=a.get("access_token"),
                refresh_token=a.get("refresh_token"),
                expiry=a.get("expiry"),
                is_default=bool(a.get("is_default")),
            )
            for a in doc.get("connected_accounts") or []
        ],
    )


def _booking_from_doc(doc: dict[str, Any]) -> Booking:
    return Booking(
        id=doc["_id"],
        host_id=doc["host"],
        meeting_type_id=doc.get("meeting_type"),
        guest_name=doc.get("guest_name", ""),
        guest_email=doc.get("guest_email", ""),
        start=doc["start_time"],
        end=doc["end_time"],
        external_event_id=doc.get("external_event_id"),
        meeting_link=doc.get("meeting_link"),
        notes=doc.get("notes"),
        status=doc.get("status", "confirmed"),
    )


def _meeting_type_from_doc(doc: dict[str, Any]) -> MeetingType:
    return MeetingType(
        id=doc["_id"],
        host_id=doc["host"],
        name=doc.get("name", ""),
        slug=doc.get("slug", ""),
        duration=doc.get("duration") or 30,
        description=doc.get("description"),
        is_default=bool(doc.get("is_default")),
    )


def window_to_doc(window: Timed, key: str | None = None) -> dict[str, Any]:
    return {"_key": key or uuid.uuid4().hex, "start": window.start, "end": window.end}


def account_to_doc(account: ConnectedAccount) -> dict[str, Any]:
    return {
        "_key": account.key,
        "account_id": account.account_id,
        "email": account.email,
        "provider": "google",
        "access_token": account.access_token,
        "refresh_token": account.refresh_token,
        "expiry": account.expiry,
        "is_default": account.is_default,
    }


class Repository:
    """Typed access to hosts, bookings and meeting types."""

    def __init__(self, store: PersistentStore) -> None:
        self.store = store

    # ── Hosts ────────────────────────────────────────────────────────

    async def create_host(
        self,
        identity: str,
        name: str,
        email: str,
        slug: Optional[str] = None,
        plan: str = "free",
    ) -> Host:
        doc = {
            "_type": HOST,
            "identity": identity,
            "name": name,
            "email": email,
            "slug": slug,
            "plan": plan,
            "availability": [],
            "connected_accounts": [],
        }
        doc["_id"] = await self.store.create(doc)
        return _host_from_doc(doc)

    async def get_host(self, host_id: str) -> Optional[Host]:
        doc = await self.store.fetch_one(Query(HOST, [("_id", "==", host_id)]))
        return _host_from_doc(doc) if doc else None

    async def get_host_by_slug(self, slug: str) -> Optional[Host]:
        doc = await self.store.fetch_one(Query(HOST, [("slug", "==", slug)]))
        return _host_from_doc(doc) if doc else None

    async def get_host_by_identity(self, identity: str) -> Optional[Host]:
        doc = await self.store.fetch_one(Query(HOST, [("identity", "==", identity)]))
        return _host_from_doc(doc) if doc else None

    async def get_host_by_account_key(self, account_key: str) -> Optional[Host]:
        for doc in await self.store.fetch_many(Query(HOST)):
            if any(a.get("_key") == account_key for a in doc.get("connected_accounts") or []):
                return _host_from_doc(doc)
        return None

    async def slug_taken(self, slug: str) -> bool:
        return await self.store.count(Query(HOST, [("slug", "==", slug)])) > 0

    async def set_host_slug(self, host_id: str, slug: str) -> None:
        await self.store.patch(host_id).set({"slug": slug}).commit()

    async def replace_availability(
        self, host_id: str, windows: list[Timed]
    ) -> list[AvailabilityWindow]:
        """Overwrite the whole availability array; every window gets a new key."""
        docs = [window_to_doc(w) for w in windows]
        await self.store.patch(host_id).set({"availability": docs}).commit()
        return [AvailabilityWindow(key=d["_key"], start=d["start"], end=d["end"]) for d in docs]

    # ── Connected accounts ───────────────────────────────────────────

    async def append_account(self, host_id: str, account: ConnectedAccount) -> None:
        await self.store.patch(host_id).append(
            "connected_accounts", [account_to_doc(account)]
        ).commit()

    async def update_account_tokens(
        self,
        host_id: str,
        account_key: str,
        access_token: str,
        expiry: Optional[datetime],
        refresh_token: Optional[str] = None,
    ) -> None:
        fields: dict[str, Any] = {
            account_path(account_key, "access_token"): access_token,
            account_path(account_key, "expiry"): expiry,
        }
        if refresh_token:
            fields[account_path(account_key, "refresh_token")] = refresh_token
        await self.store.patch(host_id).set(fields).commit()

    async def set_account_default_flag(
        self, host_id: str, account_key: str, is_default: bool
    ) -> None:
        await self.store.patch(host_id).set(
            {account_path(account_key, "is_default"): is_default}
        ).commit()

    async def remove_account(self, host_id: str, account_key: str) -> None:
        await self.store.patch(host_id).unset([account_path(account_key)]).commit()

    # ── Bookings ─────────────────────────────────────────────────────

    async def create_booking(
        self,
        host_id: str,
        guest_name: str,
        guest_email: str,
        start: datetime,
        end: datetime,
        meeting_type_id: Optional[str] = None,
        external_event_id: Optional[str] = None,
        meeting_link: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Booking:
        doc: dict[str, Any] = {
            "_type": BOOKING,
            "host": host_id,
            "guest_name": guest_name,
            "guest_email": guest_email,
            "start_time": start,
            "end_time": end,
            "status": "confirmed",
        }
        optional = {
            "meeting_type": meeting_type_id,
            "external_event_id": external_event_id,
            "meeting_link": meeting_link,
            "notes": notes,
        }
        doc.update({k: v for k, v in optional.items() if v})
        doc["_id"] = await self.store.create(doc)
        return _booking_from_doc(doc)

    async def get_booking(self, booking_id: str) -> Optional[Booking]:
        doc = await self.store.fetch_one(Query(BOOKING, [("_id", "==", booking_id)]))
        return _booking_from_doc(doc) if doc else None

    async def delete_booking(self, booking_id: str) -> None:
        await self.store.delete(booking_id)

    async def bookings_for_host(self, host_id: str) -> list[Booking]:
        docs = await self.store.fetch_many(
            Query(BOOKING, [("host", "==", host_id)], order_by="start_time")
        )
        return [_booking_from_doc(d) for d in docs]

    async def bookings_overlapping(
        self, host_id: str, start: datetime, end: datetime
    ) -> list[Booking]:
        """Bookings sharing any time with ``[start, end)``."""
        docs = await self.store.fetch_many(
            Query(
                BOOKING,
                [("host", "==", host_id), ("start_time", "<", end), ("end_time", ">", start)],
                order_by="start_time",
            )
        )
        return [_booking_from_doc(d) for d in docs]

    async def count_bookings_starting_in(
        self, host_id: str, start: datetime, end: datetime
    ) -> int:
        """Bookings whose start falls in the half-open ``[start, end)``."""
        return await self.store.count(
            Query(
                BOOKING,
                [("host", "==", host_id), ("start_time", ">=", start), ("start_time", "<", end)],
            )
        )

    # ── Meeting types ────────────────────────────────────────────────

    async def create_meeting_type(
        self,
        host_id: str,
        name: str,
        slug: str,
        duration: int,
        description: Optional[str] = None,
        is_default: bool = True,
    ) -> MeetingType:
        doc = {
            "_type": MEETING_TYPE,
            "host": host_id,
            "name": name,
            "slug": slug,
            "duration": duration,
            "description": description,
            "is_default": is_default,
        }
        doc["_id"] = await self.store.create(doc)
        return _meeting_type_from_doc(doc)

    async def meeting_types_for_host(self, host_id: str) -> list[MeetingType]:
        docs = await self.store.fetch_many(
            Query(MEETING_TYPE, [("host", "==", host_id)], order_by="name")
        )
        types = [_meeting_type_from_doc(d) for d in docs]
        # Defaults first, then by name.
        return sorted(types, key=lambda t: (not t.is_default, t.name))

    async def get_meeting_type(self, host_id: str, slug: str) -> Optional[MeetingType]:
        doc = await self.store.fetch_one(
            Query(MEETING_TYPE, [("host", "==", host_id), ("slug", "==", slug)])
        )
        return _meeting_type_from_doc(doc) if doc else None

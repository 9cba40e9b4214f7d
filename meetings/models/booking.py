"""Pydantic models for booking requests and stored bookings."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, field_validator

from ._time import to_utc

GuestStatus = Literal["accepted", "declined", "tentative", "needsAction", "unknown"]


class BookingRequest(BaseModel):
    """Data submitted by a guest to book a slot."""

    host_slug: str
    meeting_type_slug: Optional[str] = None
    start: datetime
    end: datetime
    guest_name: str
    guest_email: str
    notes: Optional[str] = None

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)


class Booking(BaseModel):
    """A confirmed booking as held by the persistent store."""

    id: str
    host_id: str
    meeting_type_id: Optional[str] = None
    guest_name: str
    guest_email: str
    start: datetime
    end: datetime
    external_event_id: Optional[str] = None
    meeting_link: Optional[str] = None
    notes: Optional[str] = None
    status: str = "confirmed"

    # Filled in by reconciliation on host listings; never persisted.
    guest_status: Optional[GuestStatus] = None

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)

"""Response shapes for the public booking page."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .host import MeetingType


class SlotOut(BaseModel):
    start: datetime
    end: datetime


class BookingPage(BaseModel):
    """Everything the booking calendar needs, grouped by the visitor's day."""

    host_name: str
    host_slug: str
    meeting_type: Optional[MeetingType] = None
    duration: int
    timezone: str
    quota_exceeded: bool = False
    available_dates: list[str] = []
    slots_by_date: dict[str, list[SlotOut]] = {}

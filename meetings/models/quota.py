"""Pydantic model for a host's monthly booking quota."""

from typing import Optional

from pydantic import BaseModel


class BookingQuotaStatus(BaseModel):
    used: int
    limit: Optional[int]  # None = unbounded
    remaining: Optional[int]
    is_exceeded: bool
    plan: str

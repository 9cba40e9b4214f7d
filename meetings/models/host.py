"""Pydantic models for hosts, their availability and connected calendars."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator, model_validator

from ._time import to_utc


class AvailabilityWindow(BaseModel):
    """A contiguous period the host is willing to be booked."""

    key: str
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @model_validator(mode="after")
    def _ordered(self) -> "AvailabilityWindow":
        if self.start >= self.end:
            raise ValueError("availability window must start before it ends")
        return self


class ConnectedAccount(BaseModel):
    """An external calendar account linked to a host."""

    key: str
    account_id: str = ""
    email: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    is_default: bool = False

    @property
    def has_tokens(self) -> bool:
        return bool(self.access_token and self.refresh_token)


class Host(BaseModel):
    """The user who owns availability and receives bookings."""

    id: str
    identity: str = ""  # stable id from the auth provider
    name: str = ""
    email: str = ""
    slug: Optional[str] = None
    plan: str = "free"
    availability: list[AvailabilityWindow] = []
    connected_accounts: list[ConnectedAccount] = []

    @property
    def default_account(self) -> Optional[ConnectedAccount]:
        # A crash between the two patches of a default switch can leave zero
        # or two defaults; the first one found is canonical.
        for account in self.connected_accounts:
            if account.is_default:
                return account
        return None


class MeetingType(BaseModel):
    """A bookable meeting template (name + duration) owned by a host."""

    id: str
    host_id: str
    name: str
    slug: str
    duration: int = 30
    description: Optional[str] = None
    is_default: bool = False

"""Data models for the scheduling core."""

from .booking import Booking, BookingRequest, GuestStatus
from .host import AvailabilityWindow, ConnectedAccount, Host, MeetingType
from .page import BookingPage, SlotOut
from .quota import BookingQuotaStatus

__all__ = [
    "AvailabilityWindow",
    "Booking",
    "BookingPage",
    "BookingQuotaStatus",
    "BookingRequest",
    "ConnectedAccount",
    "GuestStatus",
    "Host",
    "MeetingType",
    "SlotOut",
]

"""Calendar provider abstractions and implementations."""

from .base import (
    Attendee,
    CalendarProvider,
    CalendarProviderError,
    CreatedEvent,
    EventNotFoundError,
    ExternalEvent,
    NewEvent,
)

__all__ = [
    "Attendee",
    "CalendarProvider",
    "CalendarProviderError",
    "CreatedEvent",
    "EventNotFoundError",
    "ExternalEvent",
    "NewEvent",
]

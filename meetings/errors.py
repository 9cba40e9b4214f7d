"""Error taxonomy for the scheduling core.

Each class maps to one user-visible outcome.  The HTTP layer turns them into
status codes (see ``meetings.app``); inside the core they are raised only for
policy-relevant outcomes, everything else is logged and swallowed at the
operation boundary.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for all scheduling errors."""


class Unauthorized(SchedulingError):
    """No caller identity where a host-only operation requires one."""


class NotFound(SchedulingError):
    """Host, booking, account or meeting type is absent."""


class SlotUnavailable(SchedulingError):
    """The requested interval conflicts with a booking or busy time."""


class QuotaExceeded(SchedulingError):
    """The host is over a plan limit."""


class ExternalSyncFailure(SchedulingError):
    """An external calendar call failed."""


class InvalidState(SchedulingError, ValueError):
    """Malformed ephemeral input with no safe default."""

"""FastAPI application: HTTP endpoints for booking pages and host settings.

Endpoints:

  GET    /health                          Health check

  Public (guests):
  GET    /api/hosts/{slug}/slots          Bookable slots for one day
  GET    /api/hosts/{slug}/dates          Days with at least one free slot
  GET    /api/hosts/{slug}/page           Booking page, slots grouped by visitor day
  POST   /api/bookings                    Book a slot

  Host (identity forwarded by the auth gateway):
  GET    /api/bookings                    Reconciled bookings with guest status
  DELETE /api/bookings/{booking_id}       Cancel a booking
  PUT    /api/availability                Replace availability windows
  GET    /api/busy                        Busy times across connected calendars
  GET    /api/quota                       This month's booking quota
  POST   /api/accounts                    Attach a connected calendar account
  POST   /api/accounts/{key}/default      Make an account the default
  DELETE /api/accounts/{key}              Disconnect an account
  GET    /api/meeting-types               List meeting types
  POST   /api/meeting-types               Create a meeting type
  GET    /api/booking-link                Public booking URL
"""

from __future__ import annotations

# Load .env into os.environ before settings are read.
from dotenv import load_dotenv
load_dotenv()

import logging
import time
from datetime import date, datetime
from typing import Optional

# Configure root logger early so all meetings.* loggers have a handler when
# run via `uvicorn meetings.app:app`.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)-20s %(levelname)-7s %(message)s",
)

from fastapi import Cookie, Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from meetings.accounts import AccountService
from meetings.auth import current_identity
from meetings.calendar_providers.base import CalendarProvider
from meetings.config import settings
from meetings.errors import (
    ExternalSyncFailure,
    InvalidState,
    NotFound,
    QuotaExceeded,
    SchedulingError,
    SlotUnavailable,
    Unauthorized,
)
from meetings.hosts import HostService
from meetings.lifecycle import BookingService
from meetings.models import BookingRequest
from meetings.quota import QuotaGate
from meetings.reconciler import BookingReconciler
from meetings.repository import Repository
from meetings.slots import SlotService
from meetings.store import MemoryStore, PersistentStore

log = logging.getLogger("meetings.app")

_START_TIME = time.time()

_STATUS_BY_ERROR: list[tuple[type[SchedulingError], int]] = [
    (Unauthorized, 401),
    (NotFound, 404),
    (SlotUnavailable, 409),
    (QuotaExceeded, 403),
    (ExternalSyncFailure, 502),
    (InvalidState, 400),
]


# ── Request bodies ────────────────────────────────────────────────

class WindowIn(BaseModel):
    start: datetime
    end: datetime


class AvailabilityIn(BaseModel):
    windows: list[WindowIn]


class AccountIn(BaseModel):
    """Tokens from a completed OAuth exchange."""

    account_id: str
    email: str
    access_token: str
    refresh_token: Optional[str] = None
    expiry: Optional[datetime] = None
    name: str = ""


class MeetingTypeIn(BaseModel):
    name: str
    duration: int = 30
    description: Optional[str] = None
    is_default: bool = True


def status_for(error: SchedulingError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def create_app(
    store: Optional[PersistentStore] = None,
    provider: Optional[CalendarProvider] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a store the app runs on an empty ``MemoryStore``; without a
    provider it talks to Google Calendar with the configured OAuth client.
    """
    for warning in settings.validate_startup():
        log.warning(warning)

    app = FastAPI(
        title="Meetings",
        description="Availability and booking service with calendar sync",
        version="0.1.0",
    )

    repository = Repository(store if store is not None else MemoryStore())

    async def _persist_refreshed_token(account, token, expiry) -> None:
        await app.state.accounts.on_token_refresh(account, token, expiry)

    if provider is None:
        from meetings.calendar_providers.google import GoogleCalendarProvider
        provider = GoogleCalendarProvider(
            client_id=settings.google_client_id,
            client_secret=settings.google_client_secret,
            calendar_id=settings.google_calendar_id,
            on_token_refresh=_persist_refreshed_token,
        )

    reconciler = BookingReconciler(repository, provider)
    quota = QuotaGate(repository)
    hosts = HostService(repository)

    app.state.repository = repository
    app.state.hosts = hosts
    app.state.quota = quota
    app.state.bookings = BookingService(repository, provider, reconciler, quota)
    app.state.slots = SlotService(repository, provider, reconciler, quota, hosts)
    app.state.accounts = AccountService(repository, provider, hosts)

    # ── Error mapping ──────────────────────────────────────────

    @app.exception_handler(SchedulingError)
    async def scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": str(exc)}, status_code=status_code)

    # ── Health check ───────────────────────────────────────────

    @app.get("/health")
    async def health() -> JSONResponse:
        uptime = round(time.time() - _START_TIME, 1)
        return JSONResponse({"status": "ok", "uptime": uptime})

    # ── Public booking page ────────────────────────────────────

    @app.get("/api/hosts/{slug}/slots")
    async def get_slots(slug: str, day: date, duration: Optional[int] = None):
        slots = await app.state.slots.get_available_slots(slug, day, duration)
        return {"slots": [{"start": s.start, "end": s.end} for s in slots]}

    @app.get("/api/hosts/{slug}/dates")
    async def get_dates(
        slug: str, start: date, end: date, duration: Optional[int] = None
    ):
        dates = await app.state.slots.get_available_dates(slug, start, end, duration)
        return {"dates": dates}

    @app.get("/api/hosts/{slug}/page")
    async def get_page(
        slug: str,
        meeting_type: Optional[str] = None,
        tz: Optional[str] = None,
        timezone: Optional[str] = Cookie(default=None),
    ):
        """Booking page data. The visitor zone comes from ``?tz=`` or the
        ``timezone`` cookie, falling back to UTC."""
        page = await app.state.slots.booking_page(slug, meeting_type, tz or timezone)
        return page

    @app.post("/api/bookings", status_code=201)
    async def create_booking(body: BookingRequest):
        booking = await app.state.bookings.create_booking(body)
        return booking

    # ── Host: bookings ─────────────────────────────────────────

    @app.get("/api/bookings")
    async def list_bookings(identity: Optional[str] = Depends(current_identity)):
        bookings = await app.state.bookings.list_host_bookings(identity)
        return {"bookings": bookings}

    @app.delete("/api/bookings/{booking_id}", status_code=204)
    async def cancel_booking(
        booking_id: str, identity: Optional[str] = Depends(current_identity)
    ) -> Response:
        await app.state.bookings.cancel_booking(identity, booking_id)
        return Response(status_code=204)

    @app.get("/api/quota")
    async def get_quota(identity: Optional[str] = Depends(current_identity)):
        return await app.state.quota.for_identity(identity)

    # ── Host: availability and calendars ───────────────────────

    @app.put("/api/availability")
    async def save_availability(
        body: AvailabilityIn, identity: Optional[str] = Depends(current_identity)
    ):
        saved = await app.state.slots.save_availability(identity, body.windows)
        return {
            "windows": [{"id": w.key, "start": w.start, "end": w.end} for w in saved]
        }

    @app.get("/api/busy")
    async def get_busy(
        start: datetime,
        end: datetime,
        identity: Optional[str] = Depends(current_identity),
    ):
        busy = await app.state.slots.host_busy_times(identity, start, end)
        return {
            "busy": [
                {"start": b.start, "end": b.end, "account_email": b.account_email, "title": b.title}
                for b in busy
            ]
        }

    @app.post("/api/accounts", status_code=201)
    async def attach_account(
        body: AccountIn, identity: Optional[str] = Depends(current_identity)
    ):
        account = await app.state.accounts.attach(
            identity,
            account_id=body.account_id,
            email=body.email,
            access_token=body.access_token,
            refresh_token=body.refresh_token,
            expiry=body.expiry,
            name=body.name,
        )
        return {"key": account.key, "email": account.email, "is_default": account.is_default}

    @app.post("/api/accounts/{account_key}/default", status_code=204)
    async def set_default_account(
        account_key: str, identity: Optional[str] = Depends(current_identity)
    ) -> Response:
        await app.state.accounts.set_default(identity, account_key)
        return Response(status_code=204)

    @app.delete("/api/accounts/{account_key}", status_code=204)
    async def disconnect_account(
        account_key: str, identity: Optional[str] = Depends(current_identity)
    ) -> Response:
        await app.state.accounts.disconnect(identity, account_key)
        return Response(status_code=204)

    # ── Host: meeting types and links ──────────────────────────

    @app.get("/api/meeting-types")
    async def list_meeting_types(identity: Optional[str] = Depends(current_identity)):
        return {"meeting_types": await app.state.hosts.list_meeting_types(identity)}

    @app.post("/api/meeting-types", status_code=201)
    async def create_meeting_type(
        body: MeetingTypeIn, identity: Optional[str] = Depends(current_identity)
    ):
        return await app.state.hosts.create_meeting_type(
            identity, body.name, body.duration, body.description, body.is_default
        )

    @app.get("/api/booking-link")
    async def get_booking_link(
        meeting_type: Optional[str] = None,
        identity: Optional[str] = Depends(current_identity),
    ):
        if meeting_type:
            return await app.state.hosts.booking_link_for_meeting_type(identity, meeting_type)
        return await app.state.hosts.booking_link(identity)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = (
        "%(asctime)s %(name)-12s %(levelname)-8s %(message)s"
    )

    uvicorn.run(
        "meetings.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_config=log_config,
    )

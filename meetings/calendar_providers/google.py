"""Google Calendar provider implementation.

Acts on behalf of a host's connected Google account using the OAuth user
tokens stored on the account.  Access tokens expiring within a minute are
refreshed with the app's OAuth client (``GOOGLE_CLIENT_ID`` /
``GOOGLE_CLIENT_SECRET``) before the call, and the new token is handed to
``on_token_refresh`` so it can be persisted.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Optional

import httpx
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error

from meetings.models import ConnectedAccount

from .base import (
    Attendee,
    CalendarProvider,
    CalendarProviderError,
    CreatedEvent,
    EventNotFoundError,
    ExternalEvent,
    NewEvent,
)

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]
TOKEN_URI = "https://oauth2.googleapis.com/token"
REVOKE_URI = "https://oauth2.googleapis.com/revoke"

# Refresh tokens that expire within this window.
REFRESH_MARGIN = timedelta(seconds=60)

_GONE = (404, 410)

# Network-level failures below the HTTP status layer (timeouts, resets, DNS).
_TRANSPORT_ERRORS = (TransportError, HttpLib2Error, OSError)

TokenRefreshCallback = Callable[[ConnectedAccount, str, datetime], Awaitable[None]]


def _utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _status_of(error: HttpError) -> Optional[int]:
    status = getattr(error, "status_code", None) or getattr(error.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


class GoogleCalendarProvider(CalendarProvider):
    """CalendarProvider backed by Google Calendar API v3."""

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        calendar_id: str = "primary",
        on_token_refresh: Optional[TokenRefreshCallback] = None,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._calendar_id = calendar_id
        self._on_token_refresh = on_token_refresh

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_in_executor(self, func, *args, **kwargs) -> Any:
        """Run a synchronous Google API call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    async def _execute(self, request: Any, operation: str) -> Any:
        """Execute an API request. HttpError propagates for status handling."""
        try:
            return await self._run_in_executor(request.execute)
        except _TRANSPORT_ERRORS as e:
            logger.warning("%s failed at transport level: %s", operation, e)
            raise CalendarProviderError(f"{operation} failed: {e}") from e

    @staticmethod
    def _to_rfc3339(dt: datetime) -> str:
        """Convert a datetime to an RFC 3339 string with timezone."""
        return _utc(dt).isoformat()

    @staticmethod
    def _parse_time(value: dict[str, Any] | None) -> Optional[datetime]:
        if not value or "dateTime" not in value:
            return None
        return _utc(datetime.fromisoformat(value["dateTime"].replace("Z", "+00:00")))

    def _credentials(self, account: ConnectedAccount) -> Credentials:
        # google-auth compares expiry against a naive UTC clock.
        expiry = _utc(account.expiry).replace(tzinfo=None) if account.expiry else None
        return Credentials(
            token=account.access_token,
            refresh_token=account.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=SCOPES,
            expiry=expiry,
        )

    async def _service(self, account: ConnectedAccount) -> Any:
        """Build a Calendar client for the account, refreshing if needed."""
        if not account.has_tokens:
            raise CalendarProviderError(f"Account {account.email} has no tokens")

        credentials = self._credentials(account)
        now = datetime.now(timezone.utc)
        if account.expiry and now >= _utc(account.expiry) - REFRESH_MARGIN:
            try:
                await self._run_in_executor(credentials.refresh, Request())
            except RefreshError as e:
                logger.error("Token refresh failed for %s: %s", account.email, e)
                raise CalendarProviderError(
                    "Token refresh failed. Please reconnect your account."
                ) from e
            except _TRANSPORT_ERRORS as e:
                logger.warning("Token refresh for %s could not reach Google: %s", account.email, e)
                raise CalendarProviderError(f"Token refresh failed: {e}") from e
            if not credentials.token or not credentials.expiry:
                raise CalendarProviderError("Invalid credentials received from refresh")
            if self._on_token_refresh is not None:
                await self._on_token_refresh(
                    account, credentials.token, _utc(credentials.expiry)
                )

        return build(
            "calendar", "v3", credentials=credentials, cache_discovery=False
        )

    @staticmethod
    def _to_event(item: dict[str, Any]) -> ExternalEvent:
        start = GoogleCalendarProvider._parse_time(item.get("start"))
        end = GoogleCalendarProvider._parse_time(item.get("end"))
        return ExternalEvent(
            id=item.get("id", ""),
            status=item.get("status", "confirmed"),
            title=item.get("summary") or "Busy",
            start=start,
            end=end,
            all_day=start is None or end is None,
            attendees=[
                Attendee(email=a.get("email", ""), response_status=a.get("responseStatus"))
                for a in item.get("attendees", [])
            ],
        )

    # ------------------------------------------------------------------
    # CalendarProvider interface
    # ------------------------------------------------------------------

    async def list_events(
        self,
        account: ConnectedAccount,
        time_min: datetime,
        time_max: datetime,
    ) -> list[ExternalEvent]:
        """List single (expanded) events in the window, ordered by start."""
        service = await self._service(account)
        events: list[ExternalEvent] = []
        page_token: Optional[str] = None

        try:
            while True:
                response = await self._execute(
                    service.events().list(
                        calendarId=self._calendar_id,
                        timeMin=self._to_rfc3339(time_min),
                        timeMax=self._to_rfc3339(time_max),
                        singleEvents=True,
                        orderBy="startTime",
                        pageToken=page_token,
                    ),
                    "events.list",
                )
                events.extend(self._to_event(item) for item in response.get("items", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except HttpError as e:
            raise CalendarProviderError(f"events.list failed: {e}") from e

        return events

    async def get_event(
        self, account: ConnectedAccount, event_id: str
    ) -> ExternalEvent:
        service = await self._service(account)
        try:
            item = await self._execute(
                service.events().get(calendarId=self._calendar_id, eventId=event_id),
                "events.get",
            )
        except HttpError as e:
            if _status_of(e) in _GONE:
                raise EventNotFoundError(event_id) from e
            raise CalendarProviderError(f"events.get failed: {e}") from e
        return self._to_event(item)

    async def insert_event(
        self, account: ConnectedAccount, event: NewEvent
    ) -> CreatedEvent:
        """Insert an event into the Google Calendar.

        Sends email invitations to every attendee and, when a conference
        request id is set, asks Google for a Meet link.
        """
        body: dict[str, Any] = {
            "summary": event.summary,
            "start": {"dateTime": self._to_rfc3339(event.start)},
            "end": {"dateTime": self._to_rfc3339(event.end)},
        }
        if event.description:
            body["description"] = event.description
        if event.attendees:
            body["attendees"] = [
                {"email": a.email, **({"responseStatus": a.response_status} if a.response_status else {})}
                for a in event.attendees
            ]
        if event.conference_request_id:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": event.conference_request_id,
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }

        service = await self._service(account)
        try:
            result = await self._execute(
                service.events().insert(
                    calendarId=self._calendar_id,
                    body=body,
                    sendUpdates="all",
                    conferenceDataVersion=1,
                ),
                "events.insert",
            )
        except HttpError as e:
            raise CalendarProviderError(f"events.insert failed: {e}") from e

        logger.info("Created event %s on calendar %s", result["id"], self._calendar_id)

        link = result.get("hangoutLink")
        if not link:
            for entry in result.get("conferenceData", {}).get("entryPoints", []):
                if entry.get("entryPointType") == "video":
                    link = entry.get("uri")
                    break
        return CreatedEvent(id=result["id"], meeting_link=link)

    async def delete_event(
        self, account: ConnectedAccount, event_id: str
    ) -> None:
        """Delete an event from Google Calendar, sending cancellation emails."""
        service = await self._service(account)
        try:
            await self._execute(
                service.events().delete(
                    calendarId=self._calendar_id, eventId=event_id, sendUpdates="all"
                ),
                "events.delete",
            )
        except HttpError as e:
            if _status_of(e) in _GONE:
                logger.info("Event %s already deleted", event_id)
                return
            raise CalendarProviderError(f"events.delete failed: {e}") from e
        logger.info("Deleted event %s on calendar %s", event_id, self._calendar_id)

    async def revoke_token(self, token: str) -> None:
        """Revoke a token with Google. Failures are logged; the token expires anyway."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(REVOKE_URI, params={"token": token})
            if resp.status_code != 200:
                logger.warning("Token revoke returned HTTP %d", resp.status_code)
        except httpx.HTTPError as e:
            logger.warning("Failed to revoke token: %s", e)

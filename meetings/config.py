"""Application configuration via environment variables."""

from __future__ import annotations

import logging
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings

log = logging.getLogger("meetings.config")


class Settings(BaseSettings):
    # Server-local zone: day boundaries for slot compilation and the
    # calendar month used by the booking quota.
    calendar_timezone: str = "UTC"
    default_slot_minutes: int = 30

    # Google Calendar (OAuth client used to refresh host tokens)
    google_client_id: str = ""
    google_client_secret: str = ""
    google_calendar_id: str = "primary"

    # Identity forwarded by the upstream auth gateway
    identity_header: str = "X-Host-Identity"
    gateway_api_key: str = ""

    # Public booking links
    app_base_url: str = "http://localhost:8080"

    # Server
    host: str = "127.0.0.1"
    port: int = 8080
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def validate_startup(self) -> list[str]:
        """Validate configuration at startup. Returns warnings, raises on errors."""
        warnings: list[str] = []
        _placeholders = {"your-client-id", "your-client-secret", "changeme"}

        try:
            ZoneInfo(self.calendar_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(
                f"CALENDAR_TIMEZONE {self.calendar_timezone!r} is not a valid "
                "IANA timezone."
            )

        if self.default_slot_minutes <= 0:
            raise ValueError("DEFAULT_SLOT_MINUTES must be a positive integer.")

        # Gateway key: warn if unset
        if not self.gateway_api_key:
            if self.debug:
                warnings.append(
                    "GATEWAY_API_KEY not set. Identity header is trusted as-is (DEBUG=true)."
                )
            else:
                warnings.append(
                    "GATEWAY_API_KEY not set. Host endpoints reject every caller in "
                    "production. Set GATEWAY_API_KEY in .env."
                )

        # Google OAuth client: token refresh needs it
        if not self.google_client_id or self.google_client_id in _placeholders:
            warnings.append(
                "GOOGLE_CLIENT_ID is missing or a placeholder; expired host "
                "tokens cannot be refreshed."
            )
        if not self.google_client_secret or self.google_client_secret in _placeholders:
            warnings.append(
                "GOOGLE_CLIENT_SECRET is missing or a placeholder; expired host "
                "tokens cannot be refreshed."
            )

        return warnings

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.calendar_timezone)


settings = Settings()

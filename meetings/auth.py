"""Caller identity for host-only endpoints.

The upstream auth gateway authenticates the user and forwards their stable
id in ``IDENTITY_HEADER``; it proves itself with ``GATEWAY_API_KEY`` as a
bearer token.

Behavior matrix:
  GATEWAY_API_KEY set + valid token   → identity header trusted
  GATEWAY_API_KEY set + wrong/missing → 401 Unauthorized
  GATEWAY_API_KEY empty + DEBUG=true  → identity header trusted (local dev)
  GATEWAY_API_KEY empty + DEBUG=false → 403 Forbidden (locked in production)

A trusted request without the header resolves to ``None``; the core
operations turn that into ``Unauthorized``.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from meetings.config import settings

log = logging.getLogger("meetings.auth")

_bearer_scheme = HTTPBearer(auto_error=False)


async def current_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Optional[str]:
    """FastAPI dependency returning the caller's identity, or None."""
    key = settings.gateway_api_key

    if not key:
        if not settings.debug:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Gateway API key not configured. Set GATEWAY_API_KEY in .env.",
            )
    elif credentials is None or not secrets.compare_digest(
        credentials.credentials.encode(), key.encode()
    ):
        log.warning("Rejected request with invalid gateway token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing gateway token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    identity = request.headers.get(settings.identity_header, "").strip()
    return identity or None

"""Bearer API-key guard for the HealthySnacks routes."""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from healthysnacks.config import Settings

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

MISSING_KEY = "Missing API key"
INVALID_KEY = "Invalid API key"


def _rejection_reason(credentials: HTTPAuthorizationCredentials | None, expected: str) -> str | None:
    if credentials is None:
        return MISSING_KEY
    if not secrets.compare_digest(credentials.credentials.encode(), expected.encode()):
        return INVALID_KEY
    return None


async def require_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Guard photo uploads and screen state behind HEALTHYSNACKS_API_KEY, when set."""
    settings: Settings = request.app.state.settings
    if settings.api_key is None:
        return

    reason = _rejection_reason(credentials, settings.api_key)
    if reason is None:
        return

    client = request.client.host if request.client is not None else "unknown"
    logger.warning("Rejected %s %s from %s: %s", request.method, request.url.path, client, reason)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=reason,
        headers={"WWW-Authenticate": "Bearer"},
    )

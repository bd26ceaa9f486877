"""Access control for the embedding endpoints.

When ``PIXELEMBED_API_KEY`` is set, ``/embed`` and ``/model`` require the key,
either as ``Authorization: Bearer <key>`` or as an ``X-API-Key`` header.
``/health`` stays open so orchestrators can check liveness without the key.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

if TYPE_CHECKING:
    from pixelembed.config import Settings

logger = logging.getLogger(__name__)

_bearer_token = HTTPBearer(auto_error=False)
_api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def _supplied_key(bearer: HTTPAuthorizationCredentials | None, header_key: str | None) -> str | None:
    if bearer is not None:
        return bearer.credentials
    return header_key


async def require_api_key(
    request: Request,
    bearer: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_token)],
    header_key: Annotated[str | None, Depends(_api_key_header)],
) -> None:
    """Reject the request unless it carries the configured embedding API key."""
    settings: Settings = request.app.state.settings
    expected = settings.api_key
    if expected is None:
        return

    supplied = _supplied_key(bearer, header_key)
    if supplied is not None and secrets.compare_digest(supplied.encode(), expected.encode()):
        return

    logger.warning("Rejected %s %s: missing or wrong API key", request.method, request.url.path)
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )

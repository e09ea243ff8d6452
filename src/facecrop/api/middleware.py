"""Middleware: API key authentication."""

from __future__ import annotations

import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from facecrop.api.dependencies import get_settings

_bearer_scheme = HTTPBearer(auto_error=False)


def _key_matches(presented: str, expected: str) -> bool:
    return secrets.compare_digest(presented.encode(), expected.encode())


async def verify_api_key(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> None:
    """Check the Bearer token against the configured API key.

    Upload forms send the key as 'Authorization: Bearer <key>'. Without
    FACECROP_API_KEY every request passes.
    """
    expected = get_settings(request).api_key
    if expected is None:
        return

    if credentials is None or not _key_matches(credentials.credentials, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

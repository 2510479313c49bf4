# tandril/interfaces/api/security.py
"""API security: authentication and rate limiting."""

import hashlib
import secrets
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from slowapi import Limiter
from slowapi.util import get_remote_address

from tandril.config import settings

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def rate_limit_key(request: Request) -> str:
    """Rate-limit bucket: one per API key, else one per client address.

    Several shops behind one proxy share an address but not a key.
    """
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode()).hexdigest()[:16]
    return get_remote_address(request)


limiter = Limiter(key_func=rate_limit_key)


def verify_api_key(api_key: Annotated[str | None, Depends(api_key_header)]) -> str:
    """Verify API key from X-API-Key header.

    Authentication is disabled while API_AUTH_KEY is unset.

    Raises:
        HTTPException: 401 if key missing, 403 if key invalid.
    """
    if not settings.api_auth_key:
        return "auth_disabled"

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Include X-API-Key header.",
        )

    if not secrets.compare_digest(api_key, settings.api_auth_key):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key.",
        )

    return api_key


def get_rate_limit_string() -> str:
    """Rate limit string for slowapi, e.g. "60/minute"."""
    return f"{settings.api_rate_limit}/minute"

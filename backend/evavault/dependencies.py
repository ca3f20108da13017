"""FastAPI dependency injection for the records API."""

from __future__ import annotations

from hmac import compare_digest

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from evavault.config import get_settings

_bearer_scheme = HTTPBearer(auto_error=True)


def require_api_token(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """Validate the bearer token against the configured API token.

    Raises HTTPException 401 on mismatch. With ALLOW_INSECURE_API and no
    token configured, any bearer token is accepted.
    """
    settings = get_settings()
    if not settings.api_token and settings.allow_insecure_api:
        return credentials.credentials
    if not compare_digest(
        credentials.credentials.encode("utf-8"), settings.api_token.encode("utf-8")
    ):
        raise HTTPException(status_code=401, detail="Invalid API token")
    return credentials.credentials

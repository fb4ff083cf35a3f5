"""
User authentication for the DriveQ API.

Callers send a Google OAuth access token as a bearer token. The token is
verified against Google's tokeninfo endpoint and the account email becomes
the identity every query, sync and rate limit is scoped to.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

import httpx
from cachetools import TTLCache
from fastapi import HTTPException, Request, status

from driveq.observability.logging import get_logger

logger = get_logger(__name__)

GOOGLE_TOKEN_INFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

_CACHE_MAX_SIZE = 1000
_CACHE_TTL_SECONDS = 600  # shorter than Google's 1 hour token lifetime


@dataclass
class AuthenticatedUser:
    """The Google account behind a verified bearer token."""

    id: str
    email: str
    name: str | None = None
    picture: str | None = None

    def __str__(self) -> str:
        return f"User({self.id}, {self.email})"


# Verified tokens; the TTL bounds how long a revoked token keeps working
_token_cache: TTLCache[str, AuthenticatedUser] = TTLCache(
    maxsize=_CACHE_MAX_SIZE, ttl=_CACHE_TTL_SECONDS
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def verify_google_token(token: str) -> AuthenticatedUser:
    """
    Verify a Google OAuth token and return the user behind it.

    Raises:
        HTTPException: 401 if the token is invalid, expired or issued for
            another client; 503 if Google cannot be reached
    """
    if token in _token_cache:
        return _token_cache[token]

    async with httpx.AsyncClient(timeout=10.0) as client:
        try:
            token_response = await client.get(GOOGLE_TOKEN_INFO_URL, params={"access_token": token})
        except httpx.HTTPError as e:
            logger.warning("Token validation request failed: %s", type(e).__name__)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication service unavailable",
            ) from None

        if token_response.status_code != 200:
            logger.warning("Invalid token (tokeninfo status %d)", token_response.status_code)
            raise _unauthorized("Invalid or expired token")

        token_info = token_response.json()

        expected_client_id = os.getenv("GOOGLE_OAUTH_CLIENT_ID")
        is_production = os.getenv("DRIVEQ_ENV", "development") == "production"

        if not expected_client_id and is_production:
            logger.error("GOOGLE_OAUTH_CLIENT_ID not configured in production!")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Server misconfiguration",
            )

        if expected_client_id:
            # Exact match; substring checks would accept other apps' tokens
            aud = token_info.get("aud", "")
            if aud != expected_client_id:
                logger.warning("Token audience mismatch: got=%s", aud)
                raise _unauthorized("Token not issued for this application")
        else:
            logger.warning("GOOGLE_OAUTH_CLIENT_ID not set - skipping audience validation (dev mode only)")

        try:
            userinfo_response = await client.get(
                GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            logger.error("Failed to get user info: %s", type(e).__name__)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Failed to retrieve user information",
            ) from None

        if userinfo_response.status_code != 200:
            raise _unauthorized("Failed to retrieve user information")

        userinfo = userinfo_response.json()
        email = userinfo.get("email")
        if not email:
            raise _unauthorized("Token has no email scope")

        user = AuthenticatedUser(
            id=userinfo.get("id", ""),
            email=email,
            name=userinfo.get("name"),
            picture=userinfo.get("picture"),
        )

    _token_cache[token] = user
    logger.info("Authenticated user: %s (cache size: %d)", user, len(_token_cache))
    return user


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise _unauthorized("Missing authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise _unauthorized("Invalid authorization header format. Expected: Bearer <token>")

    return parts[1]


async def get_current_user(request: Request) -> AuthenticatedUser:
    """
    FastAPI dependency for the authenticated user.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: AuthenticatedUser = Depends(get_current_user)):
            ...  # user.email is the account id
    """
    token = _extract_bearer_token(request.headers.get("Authorization"))
    return await verify_google_token(token)


def clear_token_cache() -> None:
    """Clear the token cache. Useful for testing."""
    _token_cache.clear()

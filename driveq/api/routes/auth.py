"""Google Drive connection endpoints (OAuth consent, callback, status, disconnect)"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from driveq.api.dependencies import Services, get_services
from driveq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from driveq.config import CLIENT_ORIGIN
from driveq.drive.oauth import OAuthConfigurationError
from driveq.observability.logging import get_logger
from driveq.storage.credentials_repository import CredentialNotFoundError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _client_redirect(**params: str) -> RedirectResponse:
    url = f"{CLIENT_ORIGIN}?{urlencode(params)}" if params else CLIENT_ORIGIN
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/google")
async def google_consent(services: Services = Depends(get_services)) -> RedirectResponse:
    """Redirect the browser to Google's consent screen."""
    try:
        url = services.oauth_service.authorization_url()
    except OAuthConfigurationError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google sign-in is not configured",
        ) from None
    return RedirectResponse(url, status_code=status.HTTP_302_FOUND)


@router.get("/google/callback")
async def google_callback(
    code: str | None = Query(None),
    error: str | None = Query(None),
    services: Services = Depends(get_services),
) -> RedirectResponse:
    """
    Exchange the authorization code, store the credential, and send the
    browser back to the client app (with ?error=oauth_failed on failure).
    """
    if error or not code:
        logger.warning("OAuth callback without code (error=%s)", error)
        return _client_redirect(error="oauth_failed")

    try:
        account_id = await run_in_threadpool(services.oauth_service.complete_authorization, code)
    except (ValueError, OAuthConfigurationError) as e:
        logger.error("OAuth callback failed: %s", e)
        return _client_redirect(error="oauth_failed")

    logger.info("Connected Google Drive for %s", account_id)
    return _client_redirect()


@router.get("/status")
async def connection_status(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    try:
        credential = await run_in_threadpool(services.credential_store.get, user.email)
    except CredentialNotFoundError:
        return {"connected": False}

    return {
        "connected": True,
        "email": credential.account_id,
        "hasRefreshToken": bool(credential.refresh_token),
        "accessTokenExpiresAt": credential.expires_at.isoformat(),
        "lastSyncAt": credential.last_sync_at,
    }


@router.delete("/disconnect")
async def disconnect(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, bool]:
    """Revoke at Google (best effort) and delete the stored credential. Mirrored files stay."""
    await run_in_threadpool(services.oauth_service.revoke, user.email)
    return {"disconnected": True}

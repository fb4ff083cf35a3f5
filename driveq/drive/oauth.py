"""Google Drive OAuth2 service

Handles the web OAuth2 flow for Drive access:
- Build the consent URL (offline access so Google issues a refresh token)
- Exchange the callback code and store the credential under the account email
- Open authenticated Drive sessions, refreshing an expired token first
- Revoke and delete on disconnect

SECURITY:
- Tokens are stored encrypted via CredentialStore
- A token refreshed here is persisted before the session is handed out
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from driveq.config import (
    GOOGLE_OAUTH_CLIENT_ID,
    GOOGLE_OAUTH_CLIENT_SECRET,
    GOOGLE_OAUTH_REDIRECT_URI,
    GOOGLE_OAUTH_SCOPES,
)
from driveq.drive.client import (
    CredentialRefreshError,
    DriveSession,
    ProviderError,
    credential_expiry,
)
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter, log_event
from driveq.storage.credentials_repository import (
    Credential,
    CredentialNotFoundError,
    CredentialStore,
    TokenUpdate,
)

logger = get_logger(__name__)

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
GOOGLE_REVOKE_URI = "https://oauth2.googleapis.com/revoke"


class OAuthConfigurationError(RuntimeError):
    """Raised when the Google OAuth client id/secret are not configured."""


class DriveOAuthService:
    def __init__(
        self,
        credential_store: CredentialStore,
        client_id: str | None = GOOGLE_OAUTH_CLIENT_ID,
        client_secret: str | None = GOOGLE_OAUTH_CLIENT_SECRET,
        redirect_uri: str = GOOGLE_OAUTH_REDIRECT_URI,
        scopes: list[str] | None = None,
    ):
        self.credential_store = credential_store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes or GOOGLE_OAUTH_SCOPES

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _build_flow(self, state: str | None = None) -> Flow:
        if not self.is_configured():
            raise OAuthConfigurationError("Google OAuth client is not configured")

        client_config = {
            "web": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": [self.redirect_uri],
            }
        }
        # Consent and callback are separate requests, so no PKCE verifier to carry over
        return Flow.from_client_config(
            client_config,
            scopes=self.scopes,
            redirect_uri=self.redirect_uri,
            state=state,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, state: str | None = None) -> str:
        """
        Consent-screen URL for the browser redirect

        Raises:
            OAuthConfigurationError: If client id/secret are missing
        """
        flow = self._build_flow(state=state)
        auth_url, _ = flow.authorization_url(
            access_type="offline",  # Get refresh token
            prompt="consent",  # Force consent so Google reissues the refresh token
            include_granted_scopes="true",
        )
        return auth_url

    def complete_authorization(self, code: str) -> str:
        """
        Exchange the callback code and store the credential

        Returns:
            The connected account's email (the account id)

        Raises:
            OAuthConfigurationError: If client id/secret are missing
            ValueError: If the exchange or the identity lookup fails

        Side Effects:
            - Creates or updates the account's row in credentials
        """
        flow = self._build_flow()
        try:
            flow.fetch_token(code=code)
        except Exception as e:
            # oauthlib raises its own error hierarchy for every bad-code case
            logger.error("Failed to exchange authorization code: %s", type(e).__name__)
            raise ValueError("Token exchange failed") from e

        credentials = flow.credentials
        account_id = self._fetch_account_email(credentials)

        self.credential_store.upsert(
            account_id,
            access_token=credentials.token,
            expires_at=credential_expiry(credentials),
            refresh_token=credentials.refresh_token,
            scopes=list(credentials.scopes or self.scopes),
        )

        counter("oauth.code_exchanged.count")
        log_event("oauth.code_exchanged", account_id=account_id)
        return account_id

    def _fetch_account_email(self, credentials: Credentials) -> str:
        try:
            service = build("oauth2", "v2", credentials=credentials, cache_discovery=False)
            userinfo: dict[str, Any] = service.userinfo().get().execute()
        except HttpError as e:
            raise ValueError("Could not read the Google account email") from e

        email = userinfo.get("email")
        if not email:
            raise ValueError("Google account has no email address")
        return email

    def _google_credentials(self, stored: Credential) -> Credentials:
        return Credentials(
            token=stored.access_token,
            refresh_token=stored.refresh_token,
            token_uri=GOOGLE_TOKEN_URI,
            client_id=self.client_id,
            client_secret=self.client_secret,
            scopes=stored.scopes or self.scopes,
            # google-auth compares against naive UTC
            expiry=stored.expires_at.astimezone(UTC).replace(tzinfo=None),
        )

    def open_session(self, account_id: str) -> DriveSession:
        """
        Authenticated Drive session for an account

        An expired (or nearly expired) access token is refreshed here and the
        new token is written to the credential store before this returns.

        Raises:
            CredentialNotFoundError: If the account never connected
            CredentialRefreshError: If the token is expired and cannot be refreshed
            ProviderError: If the token endpoint is unreachable
        """
        stored = self.credential_store.get(account_id)
        credentials = self._google_credentials(stored)

        if stored.is_expired(datetime.now(UTC)):
            if not stored.refresh_token:
                raise CredentialRefreshError("Access token expired and no refresh token on record")
            try:
                credentials.refresh(Request())
            except RefreshError as e:
                logger.warning("Token refresh rejected for account: %s", account_id)
                counter("oauth.token_refresh_failed.count")
                raise CredentialRefreshError("Drive authorization expired or revoked") from e
            except TransportError as e:
                logger.error("Token endpoint unreachable: %s", e)
                raise ProviderError("Token refresh failed: network error") from e

            self.credential_store.apply_refresh(
                account_id,
                TokenUpdate(
                    access_token=credentials.token,
                    expires_at=credential_expiry(credentials),
                    # Only a rotated refresh token is written back
                    refresh_token=(
                        credentials.refresh_token
                        if credentials.refresh_token != stored.refresh_token
                        else None
                    ),
                ),
            )
            counter("oauth.token_refreshed.count")
            log_event("oauth.token_refreshed", account_id=account_id)

        return DriveSession(account_id, credentials)

    def persist_session_token(self, session: DriveSession) -> bool:
        """
        Write back a token the session obtained mid-call

        Returns:
            True if there was an update to persist
        """
        update = session.token_update()
        if update is None:
            return False
        self.credential_store.apply_refresh(session.account_id, update)
        session.mark_persisted()
        log_event("oauth.token_refreshed", account_id=session.account_id, during="api_call")
        return True

    def revoke(self, account_id: str) -> bool:
        """
        Revoke the token at Google (best effort) and delete the stored credential

        Returns:
            True if a stored credential was deleted
        """
        try:
            stored = self.credential_store.get(account_id)
        except CredentialNotFoundError:
            stored = None

        if stored is not None:
            try:
                # Revoking the refresh token also invalidates its access tokens
                token = stored.refresh_token or stored.access_token
                httpx.post(GOOGLE_REVOKE_URI, data={"token": token}, timeout=10.0)
            except httpx.HTTPError as e:
                logger.warning("Failed to revoke token (may already be invalid): %s", e)

        deleted = self.credential_store.delete(account_id)
        counter("oauth.credentials_revoked.count")
        log_event("oauth.credentials_revoked", account_id=account_id)
        return deleted

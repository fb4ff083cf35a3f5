"""Authenticated Google Drive API session

A DriveSession wraps one account's google-auth Credentials and a Drive v3
service. google-auth may refresh the access token in the middle of any API
call (on a 401). Instead of a callback, the session exposes the new token
through token_update(); whoever opened the session persists it before
returning to its own caller.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import google_auth_httplib2
import httplib2
from google.auth.exceptions import RefreshError, TransportError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from driveq.config import DEFAULT_TOKEN_LIFETIME_SECONDS, DRIVE_TIMEOUT_SECONDS
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter, log_event
from driveq.storage.credentials_repository import TokenUpdate

logger = get_logger(__name__)

FILE_LIST_FIELDS = (
    "nextPageToken,"
    "files(id,name,mimeType,size,owners(emailAddress,displayName),"
    "createdTime,modifiedTime,webViewLink,trashed)"
)


class ProviderError(Exception):
    """A Drive API request failed (HTTP error or network failure)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CredentialRefreshError(Exception):
    """The stored credential could not be refreshed; the user must reconnect."""


@dataclass
class DrivePage:
    files: list[dict[str, Any]] = field(default_factory=list)
    next_page_token: str | None = None


def credential_expiry(credentials: Credentials) -> datetime:
    """Aware UTC expiry of a google-auth credential (google-auth stores naive UTC)."""
    if credentials.expiry is None:
        return datetime.now(UTC) + timedelta(seconds=DEFAULT_TOKEN_LIFETIME_SECONDS)
    expiry = credentials.expiry
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=UTC)
    return expiry


class DriveSession:
    def __init__(
        self,
        account_id: str,
        credentials: Credentials,
        timeout: int = DRIVE_TIMEOUT_SECONDS,
    ) -> None:
        self.account_id = account_id
        self.credentials = credentials
        self.timeout = timeout
        self._persisted_token = credentials.token
        self._persisted_refresh = credentials.refresh_token
        self._service = None

    @property
    def service(self) -> Any:
        """Lazily built Drive v3 service with a per-request socket timeout"""
        if self._service is None:
            http = google_auth_httplib2.AuthorizedHttp(
                self.credentials, http=httplib2.Http(timeout=self.timeout)
            )
            self._service = build("drive", "v3", http=http, cache_discovery=False)
        return self._service

    def token_update(self) -> TokenUpdate | None:
        """
        The token google-auth obtained since the last mark_persisted(), if any.

        refresh_token is only reported when the provider rotated it.
        """
        if not self.credentials.token or self.credentials.token == self._persisted_token:
            return None
        rotated = self.credentials.refresh_token
        return TokenUpdate(
            access_token=self.credentials.token,
            expires_at=credential_expiry(self.credentials),
            refresh_token=rotated if rotated != self._persisted_refresh else None,
        )

    def mark_persisted(self) -> None:
        self._persisted_token = self.credentials.token
        self._persisted_refresh = self.credentials.refresh_token

    def _execute(self, request: Any, operation: str) -> Any:
        try:
            return request.execute()
        except HttpError as e:
            status_code = e.resp.status if e.resp is not None else None
            logger.error("Drive API error during %s: status=%s", operation, status_code)
            counter(f"drive.{operation}.http_error")
            log_event("drive.api_error", operation=operation, status=status_code)
            raise ProviderError(f"Drive {operation} failed", status_code=status_code) from e
        except RefreshError as e:
            logger.warning("Token refresh failed during %s for %s", operation, self.account_id)
            raise CredentialRefreshError("Drive authorization expired or revoked") from e
        except (TransportError, httplib2.HttpLib2Error, OSError) as e:
            logger.error("Drive network error during %s: %s", operation, e)
            counter(f"drive.{operation}.network_error")
            raise ProviderError(f"Drive {operation} failed: network error") from e

    def list_files_page(self, page_token: str | None, page_size: int) -> DrivePage:
        """One page of the account's file listing, trashed files included."""
        params: dict[str, Any] = {"pageSize": page_size, "fields": FILE_LIST_FIELDS}
        if page_token:
            params["pageToken"] = page_token
        response = self._execute(self.service.files().list(**params), "list")
        return DrivePage(
            files=response.get("files", []),
            next_page_token=response.get("nextPageToken"),
        )

    def rename_file(self, drive_id: str, name: str) -> str | None:
        """Rename remotely; returns the provider's new modifiedTime."""
        response = self._execute(
            self.service.files().update(fileId=drive_id, body={"name": name}, fields="id,modifiedTime"),
            "rename",
        )
        return response.get("modifiedTime")

    def trash_file(self, drive_id: str) -> None:
        self._execute(
            self.service.files().update(fileId=drive_id, body={"trashed": True}, fields="id"),
            "trash",
        )

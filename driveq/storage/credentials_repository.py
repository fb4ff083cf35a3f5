"""Credential store for Google Drive OAuth tokens

SECURITY:
- Access and refresh tokens are encrypted with Fernet before they touch disk
- Encryption key must be set via DRIVEQ_ENCRYPTION_KEY
- A stored refresh token is never replaced with NULL; Google only issues one
  on the first consent, so losing it means forcing the user to reconnect
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from cryptography.fernet import Fernet, InvalidToken

from driveq.config import TOKEN_EXPIRY_BUFFER_SECONDS
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter
from driveq.storage import BaseRepository
from driveq.utils.timestamps import format_timestamp, parse_timestamp, utc_now_iso

logger = get_logger(__name__)


class CredentialEncryptionError(Exception):
    """Raised when credential encryption/decryption fails"""


class CredentialNotFoundError(LookupError):
    """Raised when an account has no stored credential (never connected or disconnected)"""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"No stored credential for account {account_id}")
        self.account_id = account_id


@dataclass
class Credential:
    account_id: str
    access_token: str
    expires_at: datetime
    refresh_token: str | None = None
    scopes: list[str] = field(default_factory=list)
    last_refresh_at: str | None = None
    last_sync_at: str | None = None

    def is_expired(self, now: datetime, buffer_seconds: int = TOKEN_EXPIRY_BUFFER_SECONDS) -> bool:
        """Expired, or expiring within buffer_seconds of now."""
        return self.expires_at <= now + timedelta(seconds=buffer_seconds)


@dataclass(frozen=True)
class TokenUpdate:
    """A newly issued access token; refresh_token is set only when the provider rotated it."""

    access_token: str
    expires_at: datetime
    refresh_token: str | None = None


class CredentialStore(BaseRepository):
    """
    Repository for encrypted per-account OAuth credentials

    One row per Google account. Rows are created by the OAuth callback,
    updated whenever a new access token is issued, and deleted only by an
    explicit disconnect.
    """

    def __init__(self, encryption_key: str | None = None):
        super().__init__("credentials")
        self._cipher = self._get_cipher(encryption_key)

    def _get_cipher(self, encryption_key: str | None) -> Fernet:
        """
        Raises:
            ValueError: If DRIVEQ_ENCRYPTION_KEY is not set or malformed
        """
        encryption_key = encryption_key or os.getenv("DRIVEQ_ENCRYPTION_KEY")

        if not encryption_key:
            raise ValueError(
                "DRIVEQ_ENCRYPTION_KEY environment variable must be set. "
                "Generate one with: python -c "
                "'from cryptography.fernet import Fernet; "
                "print(Fernet.generate_key().decode())'"
            )

        try:
            return Fernet(encryption_key.encode())
        except ValueError as e:
            raise ValueError(f"Invalid encryption key format: {e}") from e

    def _encrypt(self, value: str | None) -> str | None:
        if value is None:
            return None
        return self._cipher.encrypt(value.encode()).decode()

    def _decrypt(self, value: str | None) -> str | None:
        if value is None:
            return None
        try:
            return self._cipher.decrypt(value.encode()).decode()
        except InvalidToken as e:
            logger.error("Failed to decrypt stored token (key rotated?)")
            counter("credentials.decrypt_failed")
            raise CredentialEncryptionError("Decryption failed") from e

    def get(self, account_id: str) -> Credential:
        """
        Load and decrypt the credential for an account.

        Raises:
            CredentialNotFoundError: If the account never connected or disconnected
            CredentialEncryptionError: If the stored token cannot be decrypted
        """
        row = self.query_one("SELECT * FROM credentials WHERE account_id = ?", (account_id,))
        if row is None:
            raise CredentialNotFoundError(account_id)

        return Credential(
            account_id=row["account_id"],
            access_token=self._decrypt(row["access_token"]),
            refresh_token=self._decrypt(row["refresh_token"]),
            expires_at=parse_timestamp(row["expires_at"]),
            scopes=json.loads(row["scopes"]) if row["scopes"] else [],
            last_refresh_at=row["last_refresh_at"],
            last_sync_at=row["last_sync_at"],
        )

    def exists(self, account_id: str) -> bool:
        row = self.query_one("SELECT 1 FROM credentials WHERE account_id = ?", (account_id,))
        return row is not None

    def upsert(
        self,
        account_id: str,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None = None,
        scopes: list[str] | None = None,
    ) -> None:
        """
        Store the result of an authorization-code exchange

        Creates the row on first connect. On reconnect the access token and
        expiry are replaced; the refresh token only when a new one was issued.

        Raises:
            ValueError: If access_token is empty
        """
        if not access_token:
            raise ValueError("access_token must be non-empty")

        now = utc_now_iso()
        self.execute(
            """
            INSERT INTO credentials (
                account_id, access_token, refresh_token, expires_at, scopes,
                created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(account_id) DO UPDATE SET
                access_token = excluded.access_token,
                refresh_token = COALESCE(excluded.refresh_token, credentials.refresh_token),
                expires_at = excluded.expires_at,
                scopes = COALESCE(excluded.scopes, credentials.scopes),
                updated_at = excluded.updated_at
            """,
            (
                account_id,
                self._encrypt(access_token),
                self._encrypt(refresh_token),
                format_timestamp(expires_at),
                json.dumps(scopes) if scopes is not None else None,
                now,
                now,
            ),
        )
        logger.info("Stored credentials for account: %s", account_id)

    def apply_refresh(self, account_id: str, update: TokenUpdate) -> None:
        """
        Persist a refreshed token

        Field-level UPDATE, so applying the same update twice is harmless.
        The row must already exist; a refresh for a disconnected account is
        dropped with a warning rather than resurrecting the credential.
        """
        if not update.access_token:
            raise ValueError("access_token must be non-empty")

        now = utc_now_iso()
        rows = self.execute(
            """
            UPDATE credentials
            SET access_token = ?,
                expires_at = ?,
                refresh_token = COALESCE(?, refresh_token),
                last_refresh_at = ?,
                updated_at = ?
            WHERE account_id = ?
            """,
            (
                self._encrypt(update.access_token),
                format_timestamp(update.expires_at),
                self._encrypt(update.refresh_token),
                now,
                now,
                account_id,
            ),
        )
        if rows == 0:
            logger.warning("Dropped token refresh for disconnected account: %s", account_id)
            return
        counter("credentials.refreshed")

    def record_sync(self, account_id: str) -> None:
        self.execute(
            "UPDATE credentials SET last_sync_at = ? WHERE account_id = ?",
            (utc_now_iso(), account_id),
        )

    def delete(self, account_id: str) -> bool:
        """
        Delete an account's credential (disconnect)

        Returns:
            True if a row was removed
        """
        rows = self.execute("DELETE FROM credentials WHERE account_id = ?", (account_id,))
        logger.info("Deleted credentials for account: %s", account_id)
        return rows > 0

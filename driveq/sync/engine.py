"""Drive listing -> local mirror synchronization

One sync run walks the full files.list pagination for an account and
upserts every item into drive_files. Guarantees:

- Each remote item is upserted at most once per run (ids are de-duplicated
  across pages, so a listing that shifts while paging cannot double-count)
- Writes are chunked, one transaction per chunk; a failure mid-run keeps the
  chunks already committed. Re-running is safe because upserts are idempotent
- A failed page is not retried here; the caller decides whether to re-sync
- A token google-auth refreshed during the run is persisted before sync()
  returns or raises
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from driveq.config import SYNC_CHUNK_SIZE, SYNC_PAGE_SIZE
from driveq.drive.client import DriveSession
from driveq.drive.oauth import DriveOAuthService
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter, log_event, time_block
from driveq.storage.credentials_repository import CredentialStore
from driveq.storage.file_repository import FileRepository
from driveq.storage.models import FileRecord
from driveq.utils.timestamps import normalize_timestamp, utc_now_iso

logger = get_logger(__name__)

DEFAULT_NAME = "Untitled"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class SyncResult:
    synced: int


def parse_size(value: Any) -> int | None:
    """Drive reports size as a decimal string; anything unparseable or negative is unknown."""
    if value is None or isinstance(value, bool):
        return None
    try:
        size = int(value)
    except (TypeError, ValueError):
        return None
    return size if size >= 0 else None


def to_file_record(item: dict[str, Any]) -> FileRecord | None:
    """Map one files.list item to a record, or None if it carries no id."""
    drive_id = item.get("id")
    if not drive_id:
        return None

    owners = item.get("owners") or []
    owner = owners[0] if owners and isinstance(owners[0], dict) else {}

    return FileRecord(
        drive_id=drive_id,
        name=item.get("name") or DEFAULT_NAME,
        mime_type=item.get("mimeType") or DEFAULT_MIME_TYPE,
        size=parse_size(item.get("size")),
        owner_email=owner.get("emailAddress"),
        owner_name=owner.get("displayName"),
        created_time=normalize_timestamp(item.get("createdTime")),
        modified_time=normalize_timestamp(item.get("modifiedTime")),
        web_view_link=item.get("webViewLink"),
        trashed=bool(item.get("trashed", False)),
    )


def chunked(records: list[FileRecord], size: int) -> Iterator[list[FileRecord]]:
    for start in range(0, len(records), size):
        yield records[start : start + size]


class SyncEngine:
    def __init__(
        self,
        oauth_service: DriveOAuthService,
        file_repository: FileRepository,
        credential_store: CredentialStore,
        page_size: int = SYNC_PAGE_SIZE,
        chunk_size: int = SYNC_CHUNK_SIZE,
    ):
        if page_size < 1 or chunk_size < 1:
            raise ValueError("page_size and chunk_size must be positive")
        self.oauth_service = oauth_service
        self.file_repository = file_repository
        self.credential_store = credential_store
        self.page_size = page_size
        self.chunk_size = chunk_size

    def sync(self, account_id: str) -> SyncResult:
        """
        Mirror the account's full Drive listing

        Raises:
            CredentialNotFoundError: No credential on record for the account
            CredentialRefreshError: Token expired and could not be refreshed
            ProviderError: A page request failed (committed chunks are kept)
        """
        session = self.oauth_service.open_session(account_id)
        synced_at = utc_now_iso()
        log_event("sync.started", account_id=account_id)

        try:
            with time_block("sync.duration"):
                synced = self._run(session, account_id, synced_at)
        except Exception:
            counter("sync.failed")
            raise
        finally:
            self.oauth_service.persist_session_token(session)

        self.credential_store.record_sync(account_id)
        counter("sync.completed")
        log_event("sync.completed", account_id=account_id, synced=synced)
        return SyncResult(synced=synced)

    def _run(self, session: DriveSession, account_id: str, synced_at: str) -> int:
        seen: set[str] = set()
        synced = 0
        page_token: str | None = None
        pages = 0

        while True:
            page = session.list_files_page(page_token, self.page_size)
            pages += 1

            records = []
            for item in page.files:
                record = to_file_record(item)
                if record is None:
                    counter("sync.item_without_id")
                    continue
                if record.drive_id in seen:
                    counter("sync.duplicate_item")
                    continue
                seen.add(record.drive_id)
                records.append(record)

            for chunk in chunked(records, self.chunk_size):
                synced += self.file_repository.upsert_chunk(account_id, chunk, synced_at)

            logger.debug(
                "Synced page %d for %s: %d items (%d total)", pages, account_id, len(records), synced
            )

            page_token = page.next_page_token
            if not page_token:
                return synced

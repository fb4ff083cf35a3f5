"""
Shared fixtures for DriveQ tests

Every DB-backed test gets its own SQLite file via DRIVEQ_DB_PATH and a fresh
connection pool. Drive and Gemini are replaced with scripted fakes.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from cryptography.fernet import Fernet

from driveq.drive.client import DrivePage
from driveq.infrastructure.database import init_database, reset_pool
from driveq.observability.telemetry import reset_telemetry
from driveq.storage.credentials_repository import CredentialStore, TokenUpdate
from driveq.storage.file_repository import FileRepository
from driveq.storage.models import FileRecord

ACCOUNT = "alice@example.com"


@pytest.fixture(autouse=True)
def _clean_telemetry():
    reset_telemetry()
    yield


@pytest.fixture
def encryption_key(monkeypatch) -> str:
    key = Fernet.generate_key().decode()
    monkeypatch.setenv("DRIVEQ_ENCRYPTION_KEY", key)
    return key


@pytest.fixture
def db(tmp_path, monkeypatch) -> Iterator[None]:
    monkeypatch.setenv("DRIVEQ_DB_PATH", str(tmp_path / "driveq_test.db"))
    reset_pool()
    init_database()
    yield
    reset_pool()


@pytest.fixture
def credential_store(db, encryption_key) -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def file_repo(db) -> FileRepository:
    return FileRepository()


def make_record(drive_id: str, **overrides: Any) -> FileRecord:
    fields = {
        "drive_id": drive_id,
        "name": f"{drive_id}.txt",
        "mime_type": "text/plain",
        "size": 10,
        "owner_email": ACCOUNT,
        "owner_name": "Alice",
        "created_time": "2024-01-01T00:00:00.000Z",
        "modified_time": "2024-01-15T12:00:00.000Z",
        "web_view_link": f"https://drive.google.com/file/d/{drive_id}/view",
        "trashed": False,
    }
    fields.update(overrides)
    return FileRecord(**fields)


def seed(repo: FileRepository, records: list[FileRecord], account: str = ACCOUNT) -> None:
    repo.upsert_chunk(account, records, "2024-02-01T00:00:00.000Z")


def drive_item(drive_id: str, **overrides: Any) -> dict[str, Any]:
    """A files.list item as the Drive API returns it."""
    item = {
        "id": drive_id,
        "name": f"{drive_id}.pdf",
        "mimeType": "application/pdf",
        "size": "1024",
        "owners": [{"emailAddress": ACCOUNT, "displayName": "Alice"}],
        "createdTime": "2024-01-01T00:00:00.000Z",
        "modifiedTime": "2024-03-10T08:30:00.000Z",
        "webViewLink": f"https://drive.google.com/file/d/{drive_id}/view",
        "trashed": False,
    }
    item.update(overrides)
    return item


class FakeDriveSession:
    """Serves scripted pages; an Exception in the script is raised for that page."""

    def __init__(self, account_id: str = ACCOUNT, pages: list[Any] | None = None):
        self.account_id = account_id
        self.pages = list(pages or [])
        self.page_requests: list[tuple[str | None, int]] = []
        self.pending_update: TokenUpdate | None = None
        self.renamed: list[tuple[str, str]] = []
        self.trashed: list[str] = []
        self.modified_time = "2024-04-01T09:00:00.000Z"

    def list_files_page(self, page_token, page_size):
        self.page_requests.append((page_token, page_size))
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def token_update(self):
        return self.pending_update

    def mark_persisted(self):
        self.pending_update = None

    def rename_file(self, drive_id, name):
        self.renamed.append((drive_id, name))
        return self.modified_time

    def trash_file(self, drive_id):
        self.trashed.append(drive_id)


class FakeOAuthService:
    def __init__(self, session: FakeDriveSession | None = None, open_error: Exception | None = None):
        self.session = session or FakeDriveSession()
        self.open_error = open_error
        self.persisted: list[TokenUpdate] = []
        self.configured = True

    def open_session(self, account_id):
        if self.open_error is not None:
            raise self.open_error
        return self.session

    def persist_session_token(self, session):
        update = session.token_update()
        if update is None:
            return False
        self.persisted.append(update)
        session.mark_persisted()
        return True

    def is_configured(self):
        return self.configured


def pages(*batches: list[dict[str, Any]]) -> list[DrivePage]:
    """Chain batches into pages with continuation tokens on all but the last."""
    result = []
    for i, files in enumerate(batches):
        token = f"token-{i + 1}" if i < len(batches) - 1 else None
        result.append(DrivePage(files=files, next_page_token=token))
    return result


class ScriptedLLM:
    """Stands in for call_llm: returns (or raises) scripted responses in order."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []

    def __call__(self, prompt: str, **kwargs: Any) -> str:
        self.calls.append({"prompt": prompt, **kwargs})
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


def future(minutes: int = 60) -> datetime:
    return datetime.now(UTC) + timedelta(minutes=minutes)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

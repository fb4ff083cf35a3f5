"""Repository for the mirrored Drive file listing

Every read is scoped to one account and, unless stated otherwise, to rows
that are not trashed. Rows are never deleted: remote deletion and the
"delete" action both set trashed = 1.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from typing import Any

from driveq.infrastructure.database import db_transaction, retry_on_db_lock
from driveq.observability.logging import get_logger
from driveq.storage import BaseRepository
from driveq.storage.models import FileRecord, size_from_db, size_to_db
from driveq.utils.timestamps import utc_now_iso

logger = get_logger(__name__)

# API sort key -> (column, ordering expressions). Allow-list, never interpolate user input.
# size is decimal text without leading zeros: shorter means smaller, then lexical order.
SORT_COLUMNS: dict[str, tuple[str, tuple[str, ...]]] = {
    "size": ("size", ("length(size)", "size")),
    "modifiedTime": ("modified_time", ("modified_time",)),
    "createdTime": ("created_time", ("created_time",)),
    "name": ("name", ("name COLLATE NOCASE",)),
    "mimeType": ("mime_type", ("mime_type",)),
    "ownerEmail": ("owner_email", ("owner_email",)),
}

_UPSERT_SQL = """
    INSERT INTO drive_files (
        account_id, drive_id, name, mime_type, size, owner_email, owner_name,
        created_time, modified_time, web_view_link, trashed, last_synced_at
    )
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(account_id, drive_id) DO UPDATE SET
        name = excluded.name,
        mime_type = excluded.mime_type,
        size = excluded.size,
        owner_email = excluded.owner_email,
        owner_name = excluded.owner_name,
        created_time = excluded.created_time,
        modified_time = excluded.modified_time,
        web_view_link = excluded.web_view_link,
        trashed = excluded.trashed,
        last_synced_at = excluded.last_synced_at
"""


def _order_by(sort_by: str, direction: str) -> str:
    """Rows lacking the sort value come last in either direction."""
    column, expressions = SORT_COLUMNS.get(sort_by, SORT_COLUMNS["modifiedTime"])
    terms = [f"{column} IS NULL", *(f"{expr} {direction}" for expr in expressions), "id ASC"]
    return ", ".join(terms)


def _contains(column: str) -> str:
    # instr() avoids LIKE wildcard escaping for user-supplied text
    return f"instr(lower(coalesce({column}, '')), lower(?)) > 0"


class FileFilter:
    """Accumulates WHERE clauses for one account's non-trashed files."""

    def __init__(self, account_id: str, include_trashed: bool = False) -> None:
        self.clauses = ["account_id = ?"]
        self.params: list[Any] = [account_id]
        if not include_trashed:
            self.clauses.append("trashed = 0")

    def name_contains(self, text: str | None) -> FileFilter:
        if text:
            self.clauses.append(_contains("name"))
            self.params.append(text)
        return self

    def mime_contains(self, text: str | None) -> FileFilter:
        if text:
            self.clauses.append(_contains("mime_type"))
            self.params.append(text)
        return self

    def owner_contains(self, text: str | None) -> FileFilter:
        if text:
            self.clauses.append(f"({_contains('owner_email')} OR {_contains('owner_name')})")
            self.params.extend([text, text])
        return self

    def modified_between(self, start: str | None, end: str | None) -> FileFilter:
        """Inclusive bounds; both are stored-format UTC timestamps."""
        if start:
            self.clauses.append("modified_time >= ?")
            self.params.append(start)
        if end:
            self.clauses.append("modified_time <= ?")
            self.params.append(end)
        return self

    @property
    def where(self) -> str:
        return " AND ".join(self.clauses)


class FileRepository(BaseRepository):
    def __init__(self) -> None:
        super().__init__("drive_files")

    @retry_on_db_lock()
    def upsert_chunk(self, account_id: str, records: Sequence[FileRecord], synced_at: str) -> int:
        """
        Upsert one chunk of records in a single transaction

        Returns:
            Number of records written

        Side Effects:
            - Inserts or updates drive_files rows keyed by (account_id, drive_id)
            - Rolls the whole chunk back on error
        """
        rows = [
            (
                account_id,
                r.drive_id,
                r.name,
                r.mime_type,
                size_to_db(r.size),
                r.owner_email,
                r.owner_name,
                r.created_time,
                r.modified_time,
                r.web_view_link,
                1 if r.trashed else 0,
                synced_at,
            )
            for r in records
        ]
        with db_transaction() as conn:
            conn.executemany(_UPSERT_SQL, rows)
        return len(rows)

    def find(
        self,
        file_filter: FileFilter,
        sort_by: str = "modifiedTime",
        descending: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> list[sqlite3.Row]:
        order = _order_by(sort_by, "DESC" if descending else "ASC")
        return self.query_all(
            f"SELECT * FROM drive_files WHERE {file_filter.where} ORDER BY {order} LIMIT ? OFFSET ?",
            (*file_filter.params, limit, offset),
        )

    def count(self, file_filter: FileFilter) -> int:
        row = self.query_one(
            f"SELECT COUNT(*) AS n FROM drive_files WHERE {file_filter.where}",
            tuple(file_filter.params),
        )
        return row["n"]

    def summary_rows(self, account_id: str) -> list[sqlite3.Row]:
        """Type, owner and modification time of every non-trashed file."""
        return self.query_all(
            "SELECT mime_type, owner_email, modified_time FROM drive_files "
            "WHERE account_id = ? AND trashed = 0",
            (account_id,),
        )

    def _sizes(self, account_id: str) -> list[sqlite3.Row]:
        return self.query_all(
            "SELECT mime_type, size FROM drive_files "
            "WHERE account_id = ? AND trashed = 0 AND size IS NOT NULL",
            (account_id,),
        )

    def totals(self, account_id: str) -> dict[str, int]:
        """File count, distinct owners and the exact byte total (summed in Python, not SQL)."""
        row = self.query_one(
            "SELECT COUNT(*) AS file_count, COUNT(DISTINCT owner_email) AS unique_owners "
            "FROM drive_files WHERE account_id = ? AND trashed = 0",
            (account_id,),
        )
        return {
            "file_count": row["file_count"],
            "unique_owners": row["unique_owners"],
            "total_size": sum(size_from_db(r["size"]) for r in self._sizes(account_id)),
        }

    def type_breakdown(self, account_id: str, limit: int) -> list[dict[str, Any]]:
        """Most common content types with file count and exact summed bytes (None when no sizes)."""
        rows = self.query_all(
            "SELECT mime_type, COUNT(*) AS file_count "
            "FROM drive_files WHERE account_id = ? AND trashed = 0 "
            "GROUP BY mime_type ORDER BY file_count DESC, mime_type ASC LIMIT ?",
            (account_id, limit),
        )
        bytes_by_type: dict[str, int] = {}
        for r in self._sizes(account_id):
            bytes_by_type[r["mime_type"]] = bytes_by_type.get(r["mime_type"], 0) + size_from_db(r["size"])
        return [
            {
                "mime_type": r["mime_type"],
                "file_count": r["file_count"],
                "total_size": bytes_by_type.get(r["mime_type"]),
            }
            for r in rows
        ]

    def owner_breakdown(self, account_id: str, limit: int) -> list[sqlite3.Row]:
        return self.query_all(
            "SELECT owner_email, COUNT(*) AS file_count "
            "FROM drive_files WHERE account_id = ? AND trashed = 0 AND owner_email IS NOT NULL "
            "GROUP BY owner_email ORDER BY file_count DESC, owner_email ASC LIMIT ?",
            (account_id, limit),
        )

    def monthly_activity(self, account_id: str) -> list[sqlite3.Row]:
        return self.query_all(
            "SELECT substr(modified_time, 1, 7) AS month, COUNT(*) AS file_count "
            "FROM drive_files WHERE account_id = ? AND trashed = 0 AND modified_time IS NOT NULL "
            "GROUP BY month ORDER BY month ASC",
            (account_id,),
        )

    def sync_status(self, account_id: str) -> sqlite3.Row:
        return self.query_one(
            "SELECT SUM(CASE WHEN trashed = 0 THEN 1 ELSE 0 END) AS file_count, "
            "MAX(last_synced_at) AS last_synced_at "
            "FROM drive_files WHERE account_id = ?",
            (account_id,),
        )

    def get_by_drive_id(self, account_id: str, drive_id: str) -> sqlite3.Row | None:
        return self.query_one(
            "SELECT * FROM drive_files WHERE account_id = ? AND drive_id = ? AND trashed = 0",
            (account_id, drive_id),
        )

    @retry_on_db_lock()
    def rename(self, account_id: str, drive_id: str, name: str, modified_time: str | None) -> bool:
        rows = self.execute(
            "UPDATE drive_files SET name = ?, modified_time = COALESCE(?, modified_time), "
            "last_synced_at = ? WHERE account_id = ? AND drive_id = ?",
            (name, modified_time, utc_now_iso(), account_id, drive_id),
        )
        return rows > 0

    @retry_on_db_lock()
    def mark_trashed(self, account_id: str, drive_id: str) -> bool:
        rows = self.execute(
            "UPDATE drive_files SET trashed = 1, last_synced_at = ? WHERE account_id = ? AND drive_id = ?",
            (utc_now_iso(), account_id, drive_id),
        )
        if rows:
            logger.info("Marked file trashed: account=%s drive_id=%s", account_id, drive_id)
        return rows > 0

"""
Database schema initialization for DriveQ.

Two tables: encrypted OAuth credentials per account, and the mirrored Drive
file listing. File rows are keyed by (account_id, drive_id) so repeated syncs
upsert in place.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from driveq.observability.logging import get_logger

logger = get_logger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS credentials (
        account_id TEXT PRIMARY KEY,
        access_token TEXT NOT NULL,
        refresh_token TEXT,
        expires_at TEXT NOT NULL,
        scopes TEXT,
        last_refresh_at TEXT,
        last_sync_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS drive_files (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        account_id TEXT NOT NULL,
        drive_id TEXT NOT NULL,
        name TEXT NOT NULL,
        mime_type TEXT NOT NULL,
        size TEXT,
        owner_email TEXT,
        owner_name TEXT,
        created_time TEXT,
        modified_time TEXT,
        web_view_link TEXT,
        trashed INTEGER NOT NULL DEFAULT 0,
        last_synced_at TEXT NOT NULL,
        UNIQUE(account_id, drive_id)
    );

    CREATE INDEX IF NOT EXISTS idx_drive_files_account_modified
        ON drive_files(account_id, trashed, modified_time);
    CREATE INDEX IF NOT EXISTS idx_drive_files_account_mime
        ON drive_files(account_id, mime_type);
    CREATE INDEX IF NOT EXISTS idx_drive_files_account_owner
        ON drive_files(account_id, owner_email);
"""

REQUIRED_TABLES = {
    "credentials": ["account_id", "access_token", "refresh_token", "expires_at"],
    "drive_files": [
        "account_id",
        "drive_id",
        "name",
        "mime_type",
        "size",
        "owner_email",
        "modified_time",
        "trashed",
        "last_synced_at",
    ],
}


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Side Effects:
    - Creates the parent directory if needed
    - Creates tables and indexes that don't exist yet
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database schema ready at %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Raises:
        ValueError: If tables or columns are missing
    """
    cursor = conn.cursor()

    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(REQUIRED_TABLES) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in REQUIRED_TABLES.items():
        # Identifiers come from the constant above and cannot be parameterized
        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}

        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True

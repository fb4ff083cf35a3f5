"""Mirrored Drive file records and their API projections"""

from __future__ import annotations

import math
import sqlite3
import sys
from dataclasses import dataclass
from typing import Any

# Largest integer a JSON number (IEEE-754 double) carries exactly
MAX_SAFE_INTEGER = 2**53
MAX_FLOAT_INTEGER = int(sys.float_info.max)


@dataclass(frozen=True)
class FileRecord:
    """One Drive file as written by a sync upsert. size is an exact int (or None)."""

    drive_id: str
    name: str
    mime_type: str
    size: int | None = None
    owner_email: str | None = None
    owner_name: str | None = None
    created_time: str | None = None
    modified_time: str | None = None
    web_view_link: str | None = None
    trashed: bool = False


def size_to_db(size: int | None) -> str | None:
    """Sizes are stored as decimal text; SQLite INTEGER stops at 2**63 - 1."""
    return None if size is None else str(size)


def size_from_db(value: str | int | None) -> int | None:
    if value is None:
        return None
    return int(value)


def size_to_number(size: int | None) -> int | float | None:
    """Convert an exact byte count for JSON output.

    Values up to 2**53 pass through unchanged. Larger values become floats
    and lose low-order precision, which is fine for display but not for
    accounting; callers needing exact totals must read the int. Values beyond
    the largest double are clamped to it.
    """
    if size is None:
        return None
    if abs(size) <= MAX_SAFE_INTEGER:
        return size
    if abs(size) > MAX_FLOAT_INTEGER:
        return math.copysign(sys.float_info.max, size)
    return float(size)


def project_file(row: sqlite3.Row) -> dict[str, Any]:
    """Camel-cased projection returned by the query and files endpoints."""
    return {
        "id": row["id"],
        "driveId": row["drive_id"],
        "name": row["name"],
        "mimeType": row["mime_type"],
        "size": size_to_number(size_from_db(row["size"])),
        "ownerEmail": row["owner_email"],
        "ownerName": row["owner_name"],
        "modifiedTime": row["modified_time"],
        "webViewLink": row["web_view_link"],
    }


def project_file_detail(row: sqlite3.Row) -> dict[str, Any]:
    return {
        **project_file(row),
        "createdTime": row["created_time"],
        "trashed": bool(row["trashed"]),
    }

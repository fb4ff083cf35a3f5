"""UTC timestamp helpers.

Every timestamp DriveQ stores is a UTC ISO-8601 string with millisecond
precision and a trailing "Z", so lexical order in SQLite equals time order.
"""

from __future__ import annotations

from datetime import UTC, datetime


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return format_timestamp(datetime.now(UTC))


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an RFC 3339 / ISO-8601 string. Naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def normalize_timestamp(value: str | None) -> str | None:
    """Re-format a provider timestamp into the stored form, or None if unparseable."""
    parsed = parse_timestamp(value)
    return format_timestamp(parsed) if parsed else None

"""Deterministic execution of classified intents against the local mirror.

Every branch is scoped to one account's non-trashed files. File-returning
branches return at most QUERY_RESULT_LIMIT projections, newest first unless
the intent asks for another order.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from typing import Any

from driveq.config import QUERY_RESULT_LIMIT, SORT_DEFAULT_LIMIT, SUMMARY_TOP_N
from driveq.observability.telemetry import counter
from driveq.query.intents import (
    CountIntent,
    FilterDateIntent,
    FilterOwnerIntent,
    FilterTypeIntent,
    Intent,
    IntentType,
    SearchIntent,
    SortIntent,
    SummaryIntent,
)
from driveq.storage.file_repository import FileFilter, FileRepository
from driveq.storage.models import project_file
from driveq.utils.timestamps import format_timestamp, parse_timestamp

SORTABLE_FIELDS = ("size", "modifiedTime", "createdTime", "name")


class IntentExecutionError(RuntimeError):
    """Raised for an intent the executor has no branch for."""


@dataclass
class QueryResult:
    files: list[dict[str, Any]]
    total: int | None = None
    stats: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"files": self.files}
        if self.total is not None:
            payload["total"] = self.total
        if self.stats is not None:
            payload["stats"] = self.stats
        return payload


def parse_date_bound(value: str | None, end_of_day: bool = False) -> str | None:
    """
    Stored-format timestamp for a date filter bound, or None if unparseable.

    A date-only upper bound ("2024-03-31") covers that whole day, so the
    range stays inclusive for files modified during it.
    """
    if not value:
        return None
    try:
        day = date.fromisoformat(value)
    except ValueError:
        parsed = parse_timestamp(value)
        return format_timestamp(parsed) if parsed else None
    bound = time.max if end_of_day else time.min
    return format_timestamp(datetime.combine(day, bound, tzinfo=UTC))


def clamp_limit(limit: int | None) -> int:
    if not limit:
        return SORT_DEFAULT_LIMIT
    return max(1, min(limit, QUERY_RESULT_LIMIT))


def top_counts(counts: Counter, label: str, n: int) -> list[dict[str, Any]]:
    """Largest counts first; ties ordered by key so output is stable."""
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:n]
    return [{label: key, "count": count} for key, count in ranked]


class IntentExecutor:
    def __init__(self, file_repository: FileRepository):
        self.files = file_repository

    def _list(self, file_filter: FileFilter, **kwargs: Any) -> list[dict[str, Any]]:
        kwargs.setdefault("limit", QUERY_RESULT_LIMIT)
        return [project_file(row) for row in self.files.find(file_filter, **kwargs)]

    def execute(self, intent: Intent, account_id: str) -> QueryResult:
        """
        Raises:
            IntentExecutionError: If intent is not one of the known variants
        """
        intent_type = getattr(intent, "type", None)
        label = intent_type.value if isinstance(intent_type, IntentType) else "unknown"
        counter(f"query.execute.{label}")
        base = FileFilter(account_id)

        if isinstance(intent, SearchIntent):
            return QueryResult(files=self._list(base.name_contains(intent.query)))

        if isinstance(intent, FilterDateIntent):
            start = parse_date_bound(intent.from_date)
            end = parse_date_bound(intent.to_date, end_of_day=True)
            return QueryResult(files=self._list(base.modified_between(start, end)))

        if isinstance(intent, FilterTypeIntent):
            return QueryResult(files=self._list(base.mime_contains(intent.mime_type)))

        if isinstance(intent, FilterOwnerIntent):
            return QueryResult(files=self._list(base.owner_contains(intent.owner)))

        if isinstance(intent, SortIntent):
            sort_by = intent.sort_by if intent.sort_by in SORTABLE_FIELDS else "modifiedTime"
            files = self._list(
                base,
                sort_by=sort_by,
                descending=intent.order != "asc",
                limit=clamp_limit(intent.limit),
            )
            return QueryResult(files=files)

        if isinstance(intent, CountIntent):
            return QueryResult(files=[], total=self.files.count(base.name_contains(intent.filter)))

        if isinstance(intent, SummaryIntent):
            return self._summary(account_id)

        raise IntentExecutionError(f"Unknown intent type: {type(intent).__name__}")

    def _summary(self, account_id: str) -> QueryResult:
        rows = self.files.summary_rows(account_id)

        types: Counter = Counter()
        owners: Counter = Counter()
        months: Counter = Counter()
        for row in rows:
            types[row["mime_type"]] += 1
            if row["owner_email"]:
                owners[row["owner_email"]] += 1
            if row["modified_time"]:
                months[row["modified_time"][:7]] += 1

        stats = {
            "topTypes": top_counts(types, "type", SUMMARY_TOP_N),
            "topOwners": top_counts(owners, "owner", SUMMARY_TOP_N),
            "uniqueOwners": len(owners),
            "dateDistribution": [
                {"month": month, "count": months[month]} for month in sorted(months)
            ],
        }
        return QueryResult(files=[], total=len(rows), stats=stats)

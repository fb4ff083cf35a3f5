"""Deterministic Drive analytics for one account (non-trashed files only)."""

from __future__ import annotations

from typing import Any

from driveq.config import ANALYTICS_TOP_N
from driveq.observability.telemetry import time_block
from driveq.storage.file_repository import FileRepository
from driveq.storage.models import size_to_number


def compute_analytics(repo: FileRepository, account_id: str) -> dict[str, Any]:
    """
    Returns:
        totalFiles, totalSize, uniqueOwners, topTypes, topOwners,
        storageByType (bytes desc) and activityByMonth (YYYY-MM ascending)
    """
    with time_block("analytics.compute"):
        totals = repo.totals(account_id)
        type_rows = repo.type_breakdown(account_id, ANALYTICS_TOP_N)
        owner_rows = repo.owner_breakdown(account_id, ANALYTICS_TOP_N)
        month_rows = repo.monthly_activity(account_id)

    # Types whose files all lack a size have no storage figure
    storage = sorted(
        ((row["mime_type"], row["total_size"]) for row in type_rows if row["total_size"] is not None),
        key=lambda item: (-item[1], item[0]),
    )

    return {
        "totalFiles": totals["file_count"],
        "totalSize": size_to_number(totals["total_size"]),
        "uniqueOwners": totals["unique_owners"],
        "topTypes": [{"type": row["mime_type"], "count": row["file_count"]} for row in type_rows],
        "topOwners": [{"owner": row["owner_email"], "count": row["file_count"]} for row in owner_rows],
        "storageByType": [{"type": t, "bytes": size_to_number(b)} for t, b in storage],
        "activityByMonth": [{"month": row["month"], "count": row["file_count"]} for row in month_rows],
    }

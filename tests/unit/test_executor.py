"""
Tests for IntentExecutor against a seeded mirror
"""

from __future__ import annotations

from collections import Counter

import pytest
from conftest import ACCOUNT, make_record, seed

from driveq.query.executor import (
    IntentExecutionError,
    IntentExecutor,
    clamp_limit,
    parse_date_bound,
    top_counts,
)
from driveq.query.intents import (
    CountIntent,
    FilterDateIntent,
    FilterOwnerIntent,
    FilterTypeIntent,
    SearchIntent,
    SortIntent,
    SummaryIntent,
)


@pytest.fixture
def executor(file_repo):
    seed(
        file_repo,
        [
            make_record(
                "report",
                name="Q1 Report.pdf",
                mime_type="application/pdf",
                size=300,
                modified_time="2024-03-31T18:00:00.000Z",
            ),
            make_record(
                "sheet",
                name="Budget.xlsx",
                mime_type="application/vnd.ms-excel",
                size=50,
                owner_email="bob@example.com",
                owner_name="Bob",
                modified_time="2024-02-10T09:00:00.000Z",
            ),
            make_record(
                "notes",
                name="report notes.txt",
                size=None,
                modified_time="2024-01-05T09:00:00.000Z",
            ),
            make_record("gone", name="old report", trashed=True),
        ],
    )
    return IntentExecutor(file_repo)


def ids(result):
    return [f["driveId"] for f in result.files]


class TestFileBranches:
    def test_search_matches_name_substring_newest_first(self, executor):
        result = executor.execute(SearchIntent("report"), ACCOUNT)

        assert ids(result) == ["report", "notes"]
        assert result.total is None and result.stats is None

    def test_search_never_returns_other_accounts(self, executor, file_repo):
        seed(file_repo, [make_record("theirs", name="report")], account="bob@example.com")

        assert "theirs" not in ids(executor.execute(SearchIntent("report"), ACCOUNT))

    def test_date_only_upper_bound_includes_whole_day(self, executor):
        result = executor.execute(FilterDateIntent("2024-02-01", "2024-03-31"), ACCOUNT)

        assert ids(result) == ["report", "sheet"]

    def test_open_ended_date_range(self, executor):
        result = executor.execute(FilterDateIntent(from_date="2024-02-01"), ACCOUNT)

        assert ids(result) == ["report", "sheet"]

    def test_unparseable_date_bound_is_ignored(self, executor):
        result = executor.execute(FilterDateIntent("last tuesday", None), ACCOUNT)

        assert len(result.files) == 3

    def test_filter_type_partial_match(self, executor):
        assert ids(executor.execute(FilterTypeIntent("pdf"), ACCOUNT)) == ["report"]

    def test_filter_owner_by_name(self, executor):
        assert ids(executor.execute(FilterOwnerIntent("bob"), ACCOUNT)) == ["sheet"]

    def test_sort_by_size_desc_with_limit(self, executor):
        result = executor.execute(SortIntent(sort_by="size", order="desc", limit=2), ACCOUNT)

        assert ids(result) == ["report", "sheet"]

    def test_sort_by_size_ascending_puts_unsized_files_last(self, executor):
        result = executor.execute(SortIntent(sort_by="size", order="asc", limit=2), ACCOUNT)

        assert ids(result) == ["sheet", "report"]

    def test_sort_by_size_descending_puts_unsized_files_last(self, executor):
        result = executor.execute(SortIntent(sort_by="size", order="desc", limit=3), ACCOUNT)

        assert ids(result) == ["report", "sheet", "notes"]

    def test_sort_by_name_ascending_ignores_case(self, executor):
        result = executor.execute(SortIntent(sort_by="name", order="asc"), ACCOUNT)

        assert ids(result) == ["sheet", "report", "notes"]

    def test_sort_by_unknown_field_uses_modified_time(self, executor):
        result = executor.execute(SortIntent(sort_by="owner"), ACCOUNT)

        assert ids(result) == ["report", "sheet", "notes"]

    def test_projection_has_api_fields(self, executor):
        file = executor.execute(SearchIntent("budget"), ACCOUNT).files[0]

        assert file["name"] == "Budget.xlsx"
        assert file["ownerEmail"] == "bob@example.com"
        assert file["size"] == 50


class TestAggregateBranches:
    def test_count_without_filter(self, executor):
        result = executor.execute(CountIntent(), ACCOUNT)

        assert result.total == 3
        assert result.files == []

    def test_count_with_filter(self, executor):
        assert executor.execute(CountIntent("report"), ACCOUNT).total == 2

    def test_summary(self, executor):
        result = executor.execute(SummaryIntent(), ACCOUNT)

        assert result.total == 3
        stats = result.stats
        assert stats["topTypes"][0] == {"type": "application/pdf", "count": 1}
        assert stats["topOwners"] == [
            {"owner": ACCOUNT, "count": 2},
            {"owner": "bob@example.com", "count": 1},
        ]
        assert stats["uniqueOwners"] == 2
        assert stats["dateDistribution"] == [
            {"month": "2024-01", "count": 1},
            {"month": "2024-02", "count": 1},
            {"month": "2024-03", "count": 1},
        ]

    def test_summary_of_empty_account(self, file_repo):
        result = IntentExecutor(file_repo).execute(SummaryIntent(), ACCOUNT)

        assert result.total == 0
        assert result.stats["topTypes"] == []
        assert result.stats["uniqueOwners"] == 0

    def test_unknown_intent_raises(self, executor):
        with pytest.raises(IntentExecutionError):
            executor.execute(object(), ACCOUNT)


class TestHelpers:
    def test_parse_date_bound(self):
        assert parse_date_bound("2024-03-31") == "2024-03-31T00:00:00.000Z"
        assert parse_date_bound("2024-03-31", end_of_day=True) == "2024-03-31T23:59:59.999Z"
        assert parse_date_bound("2024-03-31T10:00:00+02:00") == "2024-03-31T08:00:00.000Z"
        assert parse_date_bound("nonsense") is None
        assert parse_date_bound(None) is None

    @pytest.mark.parametrize("limit,expected", [(None, 10), (0, 10), (5, 5), (50, 20), (-3, 1)])
    def test_clamp_limit(self, limit, expected):
        assert clamp_limit(limit) == expected

    def test_top_counts_breaks_ties_by_key(self):
        counts = Counter({"b": 2, "a": 2, "c": 5, "d": 1})

        assert top_counts(counts, "type", 3) == [
            {"type": "c", "count": 5},
            {"type": "a", "count": 2},
            {"type": "b", "count": 2},
        ]

"""Structured query intents.

The classifier model returns loosely shaped JSON; normalize_intent() is the
only way an Intent gets built, and anything it cannot validate becomes
SummaryIntent(). Intents are immutable once built.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Union


class IntentType(str, Enum):
    SEARCH = "search"
    FILTER_DATE = "filter_date"
    FILTER_TYPE = "filter_type"
    FILTER_OWNER = "filter_owner"
    SORT = "sort"
    COUNT = "count"
    SUMMARY = "summary"


@dataclass(frozen=True)
class SearchIntent:
    type: ClassVar[IntentType] = IntentType.SEARCH
    query: str


@dataclass(frozen=True)
class FilterDateIntent:
    type: ClassVar[IntentType] = IntentType.FILTER_DATE
    from_date: str | None = None
    to_date: str | None = None


@dataclass(frozen=True)
class FilterTypeIntent:
    type: ClassVar[IntentType] = IntentType.FILTER_TYPE
    mime_type: str


@dataclass(frozen=True)
class FilterOwnerIntent:
    type: ClassVar[IntentType] = IntentType.FILTER_OWNER
    owner: str


@dataclass(frozen=True)
class SortIntent:
    type: ClassVar[IntentType] = IntentType.SORT
    sort_by: str = "modifiedTime"
    order: str = "desc"
    limit: int | None = None


@dataclass(frozen=True)
class CountIntent:
    type: ClassVar[IntentType] = IntentType.COUNT
    filter: str | None = None


@dataclass(frozen=True)
class SummaryIntent:
    type: ClassVar[IntentType] = IntentType.SUMMARY


Intent = Union[
    SearchIntent,
    FilterDateIntent,
    FilterTypeIntent,
    FilterOwnerIntent,
    SortIntent,
    CountIntent,
    SummaryIntent,
]

_VALID_TYPES = {t.value for t in IntentType}
_TYPE_KEYS = ("type", "intent", "action")


def _text(params: dict[str, Any], *keys: str) -> str | None:
    """First non-blank string among keys."""
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _split_type(raw: dict[str, Any]) -> tuple[str | None, dict[str, Any]]:
    """Find the intent type and its parameters in either accepted shape."""
    for key in _TYPE_KEYS:
        value = raw.get(key)
        if isinstance(value, str):
            params = {k: v for k, v in raw.items() if k not in _TYPE_KEYS}
            nested = params.get("params") or params.get("parameters")
            if isinstance(nested, dict):
                params = {**params, **nested}
            return value.strip().lower(), params

    # {"sort": {"sortBy": "size", ...}}
    if len(raw) == 1:
        (key, value), = raw.items()
        if key in _VALID_TYPES:
            return key, value if isinstance(value, dict) else {}

    return None, {}


def normalize_intent(raw: Any) -> Intent:
    """Validate model output into an Intent; invalid shapes become SummaryIntent()."""
    if not isinstance(raw, dict):
        return SummaryIntent()

    intent_type, params = _split_type(raw)
    if intent_type not in _VALID_TYPES:
        return SummaryIntent()

    if intent_type == IntentType.SEARCH:
        query = _text(params, "query")
        return SearchIntent(query=query) if query else SummaryIntent()

    if intent_type == IntentType.FILTER_DATE:
        return FilterDateIntent(from_date=_text(params, "from"), to_date=_text(params, "to"))

    if intent_type == IntentType.FILTER_TYPE:
        mime_type = _text(params, "mimeType", "mime_type")
        return FilterTypeIntent(mime_type=mime_type) if mime_type else SummaryIntent()

    if intent_type == IntentType.FILTER_OWNER:
        owner = _text(params, "owner")
        return FilterOwnerIntent(owner=owner) if owner else SummaryIntent()

    if intent_type == IntentType.SORT:
        order = (_text(params, "order") or "desc").lower()
        return SortIntent(
            sort_by=_text(params, "sortBy", "sort_by") or "modifiedTime",
            order="asc" if order == "asc" else "desc",
            limit=_int(params.get("limit")),
        )

    if intent_type == IntentType.COUNT:
        return CountIntent(filter=_text(params, "filter"))

    return SummaryIntent()

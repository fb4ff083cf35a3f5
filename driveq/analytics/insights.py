"""Model-written insights over the analytics aggregate, cached by fingerprint.

The fingerprint only looks at file count, total size, owner count and the
latest activity month. Two aggregates that agree on those are treated as the
same, so an edit that changes none of them (a rename, a type change that
keeps the size) can be served a stale cached answer until the TTL runs out.
That is accepted to keep the cache key cheap; hashing the full aggregate
would remove it.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ValidationError

from driveq.config import (
    INSIGHT_MAX_CHARS,
    INSIGHTS_MAX_COUNT,
    INSIGHTS_MAX_TOKENS,
    INSIGHTS_TEMPERATURE,
)
from driveq.llm.client import LLMResponseError, call_llm, parse_json_response
from driveq.llm.prompts import PromptLoader, get_prompt_loader
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter, log_event
from driveq.storage.cache import FingerprintCache

logger = get_logger(__name__)


class InsightsPayload(BaseModel):
    insights: list[Any] = []


def analytics_fingerprint(identity: str, analytics: dict[str, Any]) -> str:
    activity = analytics.get("activityByMonth") or []
    last_month = activity[-1]["month"] if activity else "none"
    return (
        f"{identity}:{analytics.get('totalFiles', 0)}:{analytics.get('totalSize', 0)}:"
        f"{analytics.get('uniqueOwners', 0)}:{last_month}"
    )


def clean_insights(items: list[Any]) -> list[str]:
    cleaned = []
    for item in items:
        if not isinstance(item, str):
            continue
        text = item.strip()
        if 0 < len(text) <= INSIGHT_MAX_CHARS:
            cleaned.append(text)
    return cleaned[:INSIGHTS_MAX_COUNT]


class InsightsGenerator:
    def __init__(
        self,
        cache: FingerprintCache[list[str]],
        llm: Callable[..., str] = call_llm,
        prompts: PromptLoader | None = None,
    ):
        self.cache = cache
        self._llm = llm
        self._prompts = prompts or get_prompt_loader()

    def generate(self, account_id: str, analytics: dict[str, Any]) -> list[str]:
        """
        Cached insights for this aggregate, calling the model on a miss

        Raises:
            LLMResponseError: Model output was not {"insights": [...]} with usable strings
            LLMError: Any model transport failure
        """
        key = analytics_fingerprint(account_id, analytics)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        response_text = self._llm(
            self._prompts.render("insights_user", analytics=json.dumps(analytics, indent=2)),
            system_instruction=self._prompts.render("insights"),
            temperature=INSIGHTS_TEMPERATURE,
            max_output_tokens=INSIGHTS_MAX_TOKENS,
            json_mode=True,
            counter_prefix="insights",
        )

        try:
            payload = InsightsPayload.model_validate(parse_json_response(response_text))
        except (ValueError, ValidationError) as e:
            logger.warning("Failed to parse insights response: %s", type(e).__name__)
            counter("insights.parse_error")
            raise LLMResponseError("Model returned malformed insights") from e

        insights = clean_insights(payload.insights)
        if not insights:
            counter("insights.empty")
            raise LLMResponseError("Model returned no usable insights")

        self.cache.put(key, insights)
        log_event("insights.generated", account_id=account_id, count=len(insights))
        return insights

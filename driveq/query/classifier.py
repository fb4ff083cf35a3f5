"""Free-text question -> structured Intent via one JSON-mode Gemini call."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime

from driveq.config import CLASSIFIER_TEMPERATURE
from driveq.llm.client import call_llm, parse_json_response
from driveq.llm.prompts import PromptLoader, get_prompt_loader
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter, log_event
from driveq.query.intents import Intent, SummaryIntent, normalize_intent

logger = get_logger(__name__)


class IntentClassifier:
    """
    Classification is lossy by design: any response that does not parse into
    a known intent shape becomes SummaryIntent(). Only transport failures
    (LLMError and subclasses) reach the caller.
    """

    def __init__(
        self,
        llm: Callable[..., str] = call_llm,
        prompts: PromptLoader | None = None,
        today: Callable[[], date] = lambda: datetime.now(UTC).date(),
    ):
        self._llm = llm
        self._prompts = prompts or get_prompt_loader()
        self._today = today

    def classify(self, question: str) -> Intent:
        system_instruction = self._prompts.render(
            "intent_classifier", today=self._today().isoformat()
        )
        response_text = self._llm(
            question,
            system_instruction=system_instruction,
            temperature=CLASSIFIER_TEMPERATURE,
            json_mode=True,
            counter_prefix="classifier",
        )

        try:
            raw = parse_json_response(response_text)
        except ValueError:
            logger.warning("Classifier returned non-JSON output, falling back to summary")
            counter("query.classifier.parse_error")
            return SummaryIntent()

        intent = normalize_intent(raw)
        if isinstance(intent, SummaryIntent) and not _asked_for_summary(raw):
            counter("query.classifier.fallback")
            logger.warning("Unrecognized intent shape, falling back to summary: %s", raw)

        log_event("query.classified", intent=intent.type.value)
        return intent


def _asked_for_summary(raw: object) -> bool:
    return isinstance(raw, dict) and (raw.get("type") == "summary" or "summary" in raw)

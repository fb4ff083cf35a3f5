"""Natural-language answer for a question and its QueryResult."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from driveq.config import ANSWER_MAX_TOKENS, ANSWER_TEMPERATURE
from driveq.llm.client import call_llm
from driveq.llm.prompts import PromptLoader, get_prompt_loader
from driveq.observability.telemetry import counter
from driveq.query.executor import QueryResult

FALLBACK_ANSWER = "I couldn't generate an answer."


def strip_links(file: dict[str, Any]) -> dict[str, Any]:
    """Drop every link/URL-bearing field; answers must never echo them."""
    return {k: v for k, v in file.items() if "link" not in k.lower() and "url" not in k.lower()}


class AnswerGenerator:
    def __init__(self, llm: Callable[..., str] = call_llm, prompts: PromptLoader | None = None):
        self._llm = llm
        self._prompts = prompts or get_prompt_loader()

    def generate(self, question: str, result: QueryResult, intent: str = "") -> str:
        payload = result.to_dict()
        payload["files"] = [strip_links(f) for f in result.files]

        prompt = self._prompts.render(
            "answer_user",
            question=question,
            intent=intent or "unknown",
            data=json.dumps(payload, default=str),
        )
        answer = self._llm(
            prompt,
            system_instruction=self._prompts.render("answer"),
            temperature=ANSWER_TEMPERATURE,
            max_output_tokens=ANSWER_MAX_TOKENS,
            counter_prefix="answer",
        ).strip()

        if not answer:
            counter("query.answer.empty")
            return FALLBACK_ANSWER
        return answer

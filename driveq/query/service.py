"""classify -> execute -> answer for one question."""

from __future__ import annotations

from typing import Any

from driveq.observability.telemetry import log_event, time_block
from driveq.query.answer import AnswerGenerator
from driveq.query.classifier import IntentClassifier
from driveq.query.executor import IntentExecutor


class QueryService:
    def __init__(
        self,
        classifier: IntentClassifier,
        executor: IntentExecutor,
        answer_generator: AnswerGenerator,
    ):
        self.classifier = classifier
        self.executor = executor
        self.answer_generator = answer_generator

    def ask(self, account_id: str, question: str) -> dict[str, Any]:
        """
        Raises:
            LLMError (and subclasses): classification or answer call failed
        """
        with time_block("query.total"):
            intent = self.classifier.classify(question)
            result = self.executor.execute(intent, account_id)
            answer = self.answer_generator.generate(question, result, intent=intent.type.value)

        log_event("query.answered", account_id=account_id, intent=intent.type.value)
        return {
            "question": question,
            "answer": answer,
            "intent": intent.type.value,
            **result.to_dict(),
        }

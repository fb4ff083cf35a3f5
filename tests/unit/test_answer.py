"""
Tests for AnswerGenerator and the QueryService pipeline
"""

from __future__ import annotations

import pytest
from conftest import ACCOUNT, ScriptedLLM, make_record, seed

from driveq.llm.client import LLMError
from driveq.query.answer import FALLBACK_ANSWER, AnswerGenerator, strip_links
from driveq.query.classifier import IntentClassifier
from driveq.query.executor import IntentExecutor, QueryResult
from driveq.query.service import QueryService

FILE = {
    "driveId": "a",
    "name": "a.pdf",
    "webViewLink": "https://drive.google.com/file/d/a/view",
    "thumbnailUrl": "https://example.com/thumb.png",
}


class TestStripLinks:
    def test_drops_link_and_url_fields(self):
        assert strip_links(FILE) == {"driveId": "a", "name": "a.pdf"}


class TestAnswerGenerator:
    def test_prompt_never_contains_links(self):
        llm = ScriptedLLM("You have one PDF.")

        answer = AnswerGenerator(llm=llm).generate("what pdfs?", QueryResult(files=[FILE]), "search")

        assert answer == "You have one PDF."
        prompt = llm.calls[0]["prompt"]
        assert "a.pdf" in prompt
        assert "drive.google.com" not in prompt
        assert "thumb.png" not in prompt
        assert "what pdfs?" in prompt

    def test_total_and_stats_reach_the_prompt(self):
        llm = ScriptedLLM("You have 7 files.")

        AnswerGenerator(llm=llm).generate("how many?", QueryResult(files=[], total=7), "count")

        assert '"total": 7' in llm.calls[0]["prompt"]

    def test_uses_answer_temperature(self):
        llm = ScriptedLLM("ok")

        AnswerGenerator(llm=llm).generate("q", QueryResult(files=[]))

        assert llm.calls[0]["temperature"] == 0.3
        assert llm.calls[0]["max_output_tokens"] == 300

    @pytest.mark.parametrize("text", ["", "   \n"])
    def test_empty_answer_uses_fallback(self, text):
        answer = AnswerGenerator(llm=ScriptedLLM(text)).generate("q", QueryResult(files=[]))

        assert answer == FALLBACK_ANSWER

    def test_llm_errors_propagate(self):
        with pytest.raises(LLMError):
            AnswerGenerator(llm=ScriptedLLM(LLMError("down"))).generate("q", QueryResult(files=[]))


class TestQueryService:
    def test_ask_runs_classify_execute_answer(self, file_repo):
        seed(file_repo, [make_record("a", name="budget.xlsx"), make_record("b", name="notes")])
        classifier_llm = ScriptedLLM('{"type": "search", "query": "budget"}')
        answer_llm = ScriptedLLM("Found your budget.")
        service = QueryService(
            IntentClassifier(llm=classifier_llm),
            IntentExecutor(file_repo),
            AnswerGenerator(llm=answer_llm),
        )

        response = service.ask(ACCOUNT, "where is my budget")

        assert response["question"] == "where is my budget"
        assert response["answer"] == "Found your budget."
        assert response["intent"] == "search"
        assert [f["driveId"] for f in response["files"]] == ["a"]
        assert "total" not in response
        assert "Query type: search" in answer_llm.calls[0]["prompt"]

    def test_count_response_carries_total(self, file_repo):
        seed(file_repo, [make_record("a"), make_record("b")])
        service = QueryService(
            IntentClassifier(llm=ScriptedLLM('{"type": "count"}')),
            IntentExecutor(file_repo),
            AnswerGenerator(llm=ScriptedLLM("Two files.")),
        )

        response = service.ask(ACCOUNT, "how many files")

        assert response["total"] == 2
        assert response["files"] == []

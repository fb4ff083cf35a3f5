"""
Tests for call_llm error mapping and retry, with the Gemini model mocked
"""

from __future__ import annotations

from unittest.mock import MagicMock, PropertyMock, patch

import pytest
from google.api_core.exceptions import (
    DeadlineExceeded,
    InvalidArgument,
    PermissionDenied,
    ResourceExhausted,
    ServiceUnavailable,
)

from driveq.config import LLM_MAX_RETRIES, LLM_TIMEOUT_SECONDS
from driveq.llm.client import (
    LLMAuthError,
    LLMConfigurationError,
    LLMError,
    LLMRateLimitError,
    TransientLLMError,
    call_llm,
    parse_json_response,
)
from driveq.llm.gemini import (
    GeminiInitializationError,
    clear_model_cache,
    get_gemini_model,
    is_llm_configured,
)


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(call_llm.retry, "sleep", lambda seconds: None)


@pytest.fixture
def model():
    mock_model = MagicMock()
    mock_model.generate_content.return_value = MagicMock(text="hello")
    with (
        patch("driveq.llm.client.get_gemini_model_with_options", return_value=mock_model) as factory,
        patch("driveq.llm.client.get_backend", return_value="vertexai"),
    ):
        mock_model.factory = factory
        yield mock_model


class TestCallLLM:
    def test_returns_response_text(self, model):
        assert call_llm("prompt", system_instruction="be brief") == "hello"
        model.factory.assert_called_once_with(system_instruction="be brief")

    def test_json_mode_sets_response_mime_type(self, model):
        call_llm("prompt", json_mode=True, temperature=0.0, max_output_tokens=50)

        config = model.generate_content.call_args.kwargs["generation_config"]
        assert config == {
            "temperature": 0.0,
            "max_output_tokens": 50,
            "response_mime_type": "application/json",
        }
        assert "request_options" not in model.generate_content.call_args.kwargs

    def test_genai_backend_gets_request_timeout(self, model):
        with patch("driveq.llm.client.get_backend", return_value="genai"):
            call_llm("prompt")

        assert model.generate_content.call_args.kwargs["request_options"] == {
            "timeout": LLM_TIMEOUT_SECONDS
        }

    def test_blocked_response_is_empty_text(self, model):
        response = MagicMock()
        type(response).text = PropertyMock(side_effect=ValueError("blocked"))
        model.generate_content.return_value = response

        assert call_llm("prompt") == ""

    def test_unconfigured_backend(self):
        with patch(
            "driveq.llm.client.get_gemini_model_with_options",
            side_effect=GeminiInitializationError("no backend"),
        ):
            with pytest.raises(LLMConfigurationError):
                call_llm("prompt")


class TestErrorMapping:
    def test_rate_limit_is_not_retried(self, model):
        model.generate_content.side_effect = ResourceExhausted("quota")

        with pytest.raises(LLMRateLimitError):
            call_llm("prompt")
        assert model.generate_content.call_count == 1

    def test_permission_denied_is_auth_error(self, model):
        model.generate_content.side_effect = PermissionDenied("nope")

        with pytest.raises(LLMAuthError):
            call_llm("prompt")
        assert model.generate_content.call_count == 1

    def test_other_api_errors_are_generic(self, model):
        model.generate_content.side_effect = InvalidArgument("bad")

        with pytest.raises(LLMError) as exc_info:
            call_llm("prompt")
        assert type(exc_info.value) is LLMError

    def test_transient_errors_retried_then_raised(self, model):
        model.generate_content.side_effect = ServiceUnavailable("down")

        with pytest.raises(TransientLLMError):
            call_llm("prompt")
        assert model.generate_content.call_count == LLM_MAX_RETRIES

    def test_transient_error_then_success(self, model):
        model.generate_content.side_effect = [DeadlineExceeded("slow"), MagicMock(text="ok")]

        assert call_llm("prompt") == "ok"
        assert model.generate_content.call_count == 2


class TestParseJsonResponse:
    def test_plain_json(self):
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}

    def test_invalid_json_raises_value_error(self):
        with pytest.raises(ValueError):
            parse_json_response("nope")


class TestConfigured:
    def test_api_key_counts_as_configured(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        monkeypatch.setattr("driveq.llm.gemini.GOOGLE_CLOUD_PROJECT", None)
        monkeypatch.setenv("GOOGLE_API_KEY", "key")

        assert is_llm_configured()

    def test_nothing_set(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.setattr("driveq.llm.gemini.GOOGLE_CLOUD_PROJECT", None)

        assert not is_llm_configured()

    def test_model_init_without_backend_raises(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.setattr("driveq.llm.gemini.GOOGLE_CLOUD_PROJECT", None)
        clear_model_cache()

        try:
            with pytest.raises(GeminiInitializationError):
                get_gemini_model()
        finally:
            clear_model_cache()

"""Single entry point for Gemini calls, with retry and error mapping.

Transient failures (deadline, 503, 500) are retried with exponential
backoff. Rate limiting and auth failures are not retried: they are mapped
to their own exception types so the API can answer 429 / 503 directly.
"""

from __future__ import annotations

import json
import re
from typing import Any

from google.api_core.exceptions import (
    DeadlineExceeded,
    GoogleAPIError,
    InternalServerError,
    PermissionDenied,
    ResourceExhausted,
    ServiceUnavailable,
    Unauthenticated,
)
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from driveq.config import LLM_MAX_RETRIES, LLM_TIMEOUT_SECONDS
from driveq.infrastructure.settings import GEMINI_MAX_TOKENS
from driveq.llm.gemini import GeminiInitializationError, get_backend, get_gemini_model_with_options
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter

logger = get_logger(__name__)


class LLMError(Exception):
    """The model call failed downstream."""


class LLMConfigurationError(LLMError):
    """No model backend is configured."""


class LLMRateLimitError(LLMError):
    """The provider rejected the call with a rate-limit / quota error."""


class LLMAuthError(LLMError):
    """The provider rejected our credentials."""


class LLMResponseError(LLMError):
    """The model answered, but not with the shape we asked for."""


class TransientLLMError(LLMError):
    """Deadline, unavailable or internal error; worth retrying."""


@retry(
    stop=stop_after_attempt(LLM_MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TransientLLMError),
    reraise=True,
)
def call_llm(
    prompt: str,
    *,
    system_instruction: str | None = None,
    temperature: float = 0.0,
    max_output_tokens: int = GEMINI_MAX_TOKENS,
    json_mode: bool = False,
    counter_prefix: str = "llm",
) -> str:
    """Call Gemini and return the response text ("" when nothing was generated).

    Raises:
        LLMConfigurationError: No backend configured (not retried)
        LLMRateLimitError: Provider quota / 429 (not retried)
        LLMAuthError: Provider rejected credentials (not retried)
        TransientLLMError: Still failing after LLM_MAX_RETRIES attempts
        LLMError: Any other provider error
    """
    try:
        model = get_gemini_model_with_options(system_instruction=system_instruction)
    except GeminiInitializationError as e:
        raise LLMConfigurationError(str(e)) from e

    generation_config = {
        "temperature": temperature,
        "max_output_tokens": max_output_tokens,
    }
    if json_mode:
        generation_config["response_mime_type"] = "application/json"

    kwargs = {"generation_config": generation_config}
    if get_backend() == "genai":
        kwargs["request_options"] = {"timeout": LLM_TIMEOUT_SECONDS}

    counter(f"{counter_prefix}.call")
    try:
        response = model.generate_content(prompt, **kwargs)
    except DeadlineExceeded as e:
        counter(f"{counter_prefix}.timeout")
        logger.warning("LLM call timed out after %ds, will retry", LLM_TIMEOUT_SECONDS)
        raise TransientLLMError("LLM call timed out") from e
    except (ServiceUnavailable, InternalServerError) as e:
        counter(f"{counter_prefix}.service_unavailable")
        logger.warning("LLM service unavailable, will retry: %s", e)
        raise TransientLLMError("LLM service unavailable") from e
    except ResourceExhausted as e:
        counter(f"{counter_prefix}.rate_limited")
        logger.warning("LLM rate limited (429): %s", e)
        raise LLMRateLimitError("LLM rate limited") from e
    except (PermissionDenied, Unauthenticated) as e:
        counter(f"{counter_prefix}.auth_error")
        logger.error("LLM rejected credentials: %s", e)
        raise LLMAuthError("LLM authentication failed") from e
    except GoogleAPIError as e:
        logger.error("LLM call failed: %s", e)
        raise LLMError("LLM call failed") from e

    try:
        return response.text or ""
    except ValueError:
        # .text raises when the candidate was blocked or empty
        counter(f"{counter_prefix}.empty")
        return ""


def parse_json_response(response_text: str) -> Any:
    """Decode a JSON-mode response, tolerating a markdown code fence.

    Raises:
        ValueError: If the text is not JSON (json.JSONDecodeError is a ValueError)
    """
    json_text = response_text.strip()
    if json_text.startswith("```"):
        counter("llm.code_fence_fallback")
        json_text = re.sub(r"^```(?:json)?\n?", "", json_text)
        json_text = re.sub(r"\n?```$", "", json_text)
    return json.loads(json_text)

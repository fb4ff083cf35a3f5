"""
Gemini model manager - shared model instance for every LLM call site.

Supports two backends:
  1. Vertex AI SDK (production) - uses GOOGLE_CLOUD_PROJECT + service account
  2. google-generativeai (local dev) - uses GOOGLE_API_KEY
"""

from __future__ import annotations

import os
from functools import lru_cache

from driveq.infrastructure.settings import GEMINI_LOCATION, GEMINI_MODEL, GOOGLE_CLOUD_PROJECT
from driveq.observability.logging import get_logger

logger = get_logger(__name__)

# "vertexai" or "genai", set by get_gemini_model()
_backend: str | None = None


class GeminiInitializationError(RuntimeError):
    """Raised when Gemini model cannot be initialized."""


def is_llm_configured() -> bool:
    """True when either backend has what it needs (no API call is made)."""
    return bool(os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT or os.getenv("GOOGLE_API_KEY"))


def get_backend() -> str | None:
    return _backend


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Get or create the shared Gemini model (no system instruction).

    Uses Vertex AI when GOOGLE_CLOUD_PROJECT is set, otherwise
    google-generativeai with GOOGLE_API_KEY.

    Raises:
        GeminiInitializationError: If neither backend is configured or installed
    """
    global _backend
    # Read env fresh; settings may have been imported before load_dotenv()
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    location = os.getenv("GEMINI_LOCATION") or GEMINI_LOCATION
    api_key = os.getenv("GOOGLE_API_KEY")

    if project:
        try:
            import vertexai
            from vertexai.generative_models import GenerativeModel
        except ImportError:
            logger.info("Vertex AI SDK not installed, trying google-generativeai fallback")
        else:
            vertexai.init(project=project, location=location)
            model = GenerativeModel(GEMINI_MODEL)
            _backend = "vertexai"
            logger.info(
                "Initialized Gemini model (Vertex AI): project=%s, location=%s, model=%s",
                project,
                location,
                GEMINI_MODEL,
            )
            return model

    if not api_key:
        raise GeminiInitializationError("Neither GOOGLE_CLOUD_PROJECT nor GOOGLE_API_KEY is set")

    try:
        import google.generativeai as genai
    except ImportError as e:
        raise GeminiInitializationError(
            "GOOGLE_API_KEY is set but google-generativeai is not installed"
        ) from e

    genai.configure(api_key=api_key)
    model = genai.GenerativeModel(GEMINI_MODEL)
    _backend = "genai"
    logger.info("Initialized Gemini model (google-generativeai): model=%s", GEMINI_MODEL)
    return model


def get_gemini_model_with_options(system_instruction: str | None = None) -> object:
    """Gemini model with an optional system instruction.

    System instructions are per model instance, so a fresh model is built
    when one is given; otherwise the cached singleton is returned.
    """
    if system_instruction is None:
        return get_gemini_model()

    # Initializes the SDK and sets _backend
    get_gemini_model()

    if _backend == "vertexai":
        from vertexai.generative_models import GenerativeModel

        return GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)

    import google.generativeai as genai

    return genai.GenerativeModel(GEMINI_MODEL, system_instruction=system_instruction)


def clear_model_cache() -> None:
    """Forget the cached model (tests, reconfiguration)."""
    global _backend
    get_gemini_model.cache_clear()
    _backend = None

"""Natural-language query endpoint"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

from driveq.api.dependencies import Services, get_services
from driveq.api.errors import llm_http_exception, rate_limited
from driveq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from driveq.config import QUERY_MAX_QUESTION_CHARS
from driveq.llm.client import LLMError
from driveq.llm.gemini import is_llm_configured
from driveq.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/query", tags=["query"])


class QueryRequest(BaseModel):
    # Type and length are checked in the handler: 400, not 422
    question: Any = None


@router.post("")
async def ask_question(
    request: QueryRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """
    classify -> execute -> answer

    Returns {question, answer, intent, files, total?, stats?}.
    400 empty, non-string or overlong question, 503 model not configured, 429 rate limited,
    502 model failure.
    """
    if request.question is not None and not isinstance(request.question, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question must be a string")
    question = (request.question or "").strip()
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Question is required")
    if len(question) > QUERY_MAX_QUESTION_CHARS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Question must be at most {QUERY_MAX_QUESTION_CHARS} characters",
        )

    if not is_llm_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured",
        )

    if not services.query_limiter.allow(user.email):
        raise rate_limited(services.query_limiter.retry_after(user.email))

    try:
        return await run_in_threadpool(services.query_service.ask, user.email, question)
    except LLMError as e:
        raise llm_http_exception(e, context="Failed to answer question") from None

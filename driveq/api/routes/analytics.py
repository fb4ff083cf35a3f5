"""Drive analytics endpoints (deterministic aggregate + model-written insights)"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from starlette.concurrency import run_in_threadpool

from driveq.analytics.aggregator import compute_analytics
from driveq.api.dependencies import Services, get_services
from driveq.api.errors import llm_http_exception, rate_limited
from driveq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from driveq.llm.client import LLMError
from driveq.llm.gemini import is_llm_configured

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


@router.get("")
async def get_analytics(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await run_in_threadpool(compute_analytics, services.file_repository, user.email)


@router.get("/insights")
async def get_insights(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, list[str]]:
    """
    3-5 short insights about the caller's Drive.

    Rate limited separately (and more strictly) than /api/query. A cached
    answer for an unchanged aggregate still counts against the limit.
    """
    if not is_llm_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured",
        )

    if not services.insights_limiter.allow(user.email):
        raise rate_limited(services.insights_limiter.retry_after(user.email))

    analytics = await run_in_threadpool(compute_analytics, services.file_repository, user.email)
    try:
        insights = await run_in_threadpool(
            services.insights_generator.generate, user.email, analytics
        )
    except LLMError as e:
        raise llm_http_exception(e, context="Failed to generate insights") from None
    return {"insights": insights}

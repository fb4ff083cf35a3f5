"""Health check endpoints (liveness + database readiness)."""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from driveq.config import APP_VERSION
from driveq.infrastructure.database import get_pool_stats, validate_schema
from driveq.llm.gemini import is_llm_configured
from driveq.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """Service status plus whether Gemini and Google OAuth are configured (no API calls)."""
    services = getattr(request.app.state, "services", None)
    return {
        "status": "healthy",
        "service": "DriveQ API",
        "version": APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "llm": {"ready": is_llm_configured()},
        "oauth": {"ready": bool(services and services.oauth_service.is_configured())},
    }


@router.get("/health/db")
async def database_health() -> dict[str, Any]:
    try:
        await run_in_threadpool(validate_schema)
        pool = await run_in_threadpool(get_pool_stats)
    except (sqlite3.Error, ValueError, FileNotFoundError, RuntimeError) as e:
        logger.error("Database health check failed: %s", e)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database unavailable",
        ) from None
    return {"status": "healthy", "pool": pool}

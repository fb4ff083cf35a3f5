"""FastAPI server for DriveQ"""

from __future__ import annotations

import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from driveq.api.dependencies import Services, build_services
from driveq.api.routes.analytics import router as analytics_router
from driveq.api.routes.auth import router as auth_router
from driveq.api.routes.files import router as files_router
from driveq.api.routes.health import router as health_router
from driveq.api.routes.query import router as query_router
from driveq.api.routes.sync import router as sync_router
from driveq.config import APP_VERSION, CLIENT_ORIGIN, is_development
from driveq.infrastructure.database import init_database
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter, log_event

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


def _allowed_origins() -> list[str]:
    origins = [CLIENT_ORIGIN]
    if is_development():
        origins.extend(
            [
                "http://localhost:5173",
                "http://localhost:3000",
                "http://127.0.0.1:5173",
                "http://127.0.0.1:3000",
            ]
        )
    return sorted(set(origins))


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the API application

    Args:
        services: Pre-built service graph (tests); built at startup when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            logger.info("Initializing database schema...")
            init_database()
        except sqlite3.OperationalError as e:
            logger.critical("Database schema error: %s", e)
            raise RuntimeError(f"Database initialization failed: {e}") from e

        app.state.services = services or build_services()
        log_event("api.startup", service="driveq", version=APP_VERSION)
        yield
        log_event("api.shutdown", service="driveq")

    app = FastAPI(title="DriveQ API", version=APP_VERSION, lifespan=lifespan)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report which fields were invalid without echoing validation internals."""
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        counter("api.validation_errors")
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Invalid request format. Please check your request and try again.",
                "invalid_fields": [str(err["loc"][-1]) for err in exc.errors()],
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_allowed_origins(),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        expose_headers=["Retry-After"],
    )

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(sync_router)
    app.include_router(files_router)
    app.include_router(query_router)
    app.include_router(analytics_router)

    @app.get("/")
    def root() -> dict[str, Any]:
        return {
            "service": "DriveQ API",
            "version": APP_VERSION,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "auth": "/api/auth/google",
                "sync": "/api/sync",
                "files": "/api/files",
                "query": "/api/query",
                "analytics": "/api/analytics",
                "insights": "/api/analytics/insights",
            },
        }

    return app


app = create_app()


def main() -> None:
    import uvicorn

    from driveq.config import API_HOST, API_PORT

    uvicorn.run("driveq.api.app:app", host=API_HOST, port=API_PORT)

"""Process-scoped service graph, built once at startup and shared via app.state.

Rate limiters and the insights cache live here rather than in module
globals, so each app (and each test) gets its own isolated instances.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from driveq.analytics.insights import InsightsGenerator
from driveq.config import (
    INSIGHTS_CACHE_PRUNE_THRESHOLD,
    INSIGHTS_CACHE_TTL_SECONDS,
    INSIGHTS_RATE_LIMIT,
    QUERY_RATE_LIMIT,
    RATE_WINDOW_SECONDS,
)
from driveq.drive.oauth import DriveOAuthService
from driveq.infrastructure.rate_limiter import SlidingWindowRateLimiter
from driveq.query.answer import AnswerGenerator
from driveq.query.classifier import IntentClassifier
from driveq.query.executor import IntentExecutor
from driveq.query.service import QueryService
from driveq.storage.cache import FingerprintCache
from driveq.storage.credentials_repository import CredentialStore
from driveq.storage.file_repository import FileRepository
from driveq.sync.engine import SyncEngine


@dataclass
class Services:
    credential_store: CredentialStore
    file_repository: FileRepository
    oauth_service: DriveOAuthService
    sync_engine: SyncEngine
    query_service: QueryService
    insights_generator: InsightsGenerator
    query_limiter: SlidingWindowRateLimiter
    insights_limiter: SlidingWindowRateLimiter


def build_services() -> Services:
    """
    Wire the production service graph

    Raises:
        ValueError: If DRIVEQ_ENCRYPTION_KEY is missing or malformed
    """
    credential_store = CredentialStore()
    file_repository = FileRepository()
    oauth_service = DriveOAuthService(credential_store)

    return Services(
        credential_store=credential_store,
        file_repository=file_repository,
        oauth_service=oauth_service,
        sync_engine=SyncEngine(oauth_service, file_repository, credential_store),
        query_service=QueryService(
            IntentClassifier(), IntentExecutor(file_repository), AnswerGenerator()
        ),
        insights_generator=InsightsGenerator(
            FingerprintCache(
                "insights",
                ttl_seconds=INSIGHTS_CACHE_TTL_SECONDS,
                prune_threshold=INSIGHTS_CACHE_PRUNE_THRESHOLD,
            )
        ),
        query_limiter=SlidingWindowRateLimiter("query", QUERY_RATE_LIMIT, RATE_WINDOW_SECONDS),
        insights_limiter=SlidingWindowRateLimiter(
            "insights", INSIGHTS_RATE_LIMIT, RATE_WINDOW_SECONDS
        ),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services

"""Drive sync endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from driveq.api.dependencies import Services, get_services
from driveq.api.errors import drive_http_exception
from driveq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from driveq.drive.client import CredentialRefreshError, ProviderError
from driveq.observability.logging import get_logger
from driveq.storage.credentials_repository import (
    CredentialEncryptionError,
    CredentialNotFoundError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("")
async def trigger_sync(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """
    Run one full sync for the caller's Drive.

    Returns {synced, lastSyncedAt}. 401 when Drive is not connected or the
    token cannot be refreshed; 502 when Drive fails mid-sync (chunks already
    written are kept, so retrying is safe).
    """
    try:
        result = await run_in_threadpool(services.sync_engine.sync, user.email)
    except (
        CredentialNotFoundError,
        CredentialRefreshError,
        CredentialEncryptionError,
        ProviderError,
    ) as e:
        raise drive_http_exception(e, context="Drive sync failed") from None

    sync_status = await run_in_threadpool(services.file_repository.sync_status, user.email)
    return {"synced": result.synced, "lastSyncedAt": sync_status["last_synced_at"]}


@router.get("/status")
async def get_sync_status(
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    sync_status = await run_in_threadpool(services.file_repository.sync_status, user.email)
    return {
        "fileCount": sync_status["file_count"] or 0,
        "lastSyncedAt": sync_status["last_synced_at"],
    }

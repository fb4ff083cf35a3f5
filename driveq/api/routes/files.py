"""Mirrored file listing plus rename / trash actions that write through to Drive"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from driveq.api.dependencies import Services, get_services
from driveq.api.errors import drive_http_exception
from driveq.api.middleware.user_auth import AuthenticatedUser, get_current_user
from driveq.config import FILES_LIMIT_DEFAULT, FILES_LIMIT_MAX
from driveq.drive.client import CredentialRefreshError, ProviderError
from driveq.query.executor import parse_date_bound
from driveq.storage.credentials_repository import (
    CredentialEncryptionError,
    CredentialNotFoundError,
)
from driveq.storage.file_repository import FileFilter
from driveq.storage.models import project_file, project_file_detail
from driveq.utils.timestamps import normalize_timestamp

router = APIRouter(prefix="/api/files", tags=["files"])

LISTING_SORT_FIELDS = ("name", "mimeType", "ownerEmail", "modifiedTime")

_DRIVE_ERRORS = (
    CredentialNotFoundError,
    CredentialRefreshError,
    CredentialEncryptionError,
    ProviderError,
)


class RenameRequest(BaseModel):
    name: str | None = Field(None, max_length=1024)


@router.get("")
async def list_files(
    page: int = Query(1, ge=1),
    limit: int = Query(FILES_LIMIT_DEFAULT, ge=1, le=FILES_LIMIT_MAX),
    search: str | None = Query(None, max_length=200),
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    sort_by: str = Query("modifiedTime", alias="sortBy"),
    order: str = Query("desc"),
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Paginated listing of non-trashed files; unparseable dates are ignored."""
    file_filter = (
        FileFilter(user.email)
        .name_contains((search or "").strip())
        .modified_between(parse_date_bound(date_from), parse_date_bound(date_to, end_of_day=True))
    )
    rows = await run_in_threadpool(
        services.file_repository.find,
        file_filter,
        sort_by=sort_by if sort_by in LISTING_SORT_FIELDS else "modifiedTime",
        descending=order != "asc",
        limit=limit,
        offset=(page - 1) * limit,
    )
    total = await run_in_threadpool(services.file_repository.count, file_filter)
    return {"files": [project_file(r) for r in rows], "total": total, "page": page, "limit": limit}


@router.get("/{drive_id}")
async def get_file(
    drive_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    row = await run_in_threadpool(services.file_repository.get_by_drive_id, user.email, drive_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return project_file_detail(row)


def _rename_remote_then_local(services: Services, account_id: str, drive_id: str, name: str) -> None:
    session = services.oauth_service.open_session(account_id)
    try:
        modified_time = session.rename_file(drive_id, name)
    finally:
        services.oauth_service.persist_session_token(session)
    services.file_repository.rename(account_id, drive_id, name, normalize_timestamp(modified_time))


def _trash_remote_then_local(services: Services, account_id: str, drive_id: str) -> None:
    session = services.oauth_service.open_session(account_id)
    try:
        session.trash_file(drive_id)
    finally:
        services.oauth_service.persist_session_token(session)
    services.file_repository.mark_trashed(account_id, drive_id)


@router.put("/{drive_id}")
async def rename_file(
    drive_id: str,
    request: RenameRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Rename in Drive first, then locally; the local row is untouched if Drive refuses."""
    name = (request.name or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")

    repo = services.file_repository
    if await run_in_threadpool(repo.get_by_drive_id, user.email, drive_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    try:
        await run_in_threadpool(_rename_remote_then_local, services, user.email, drive_id, name)
    except _DRIVE_ERRORS as e:
        raise drive_http_exception(e, context="Failed to rename file") from None

    row = await run_in_threadpool(repo.get_by_drive_id, user.email, drive_id)
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return project_file(row)


@router.delete("/{drive_id}", status_code=status.HTTP_204_NO_CONTENT)
async def trash_file(
    drive_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Response:
    """Move to Drive trash, then mark trashed locally (rows are never deleted)."""
    repo = services.file_repository
    if await run_in_threadpool(repo.get_by_drive_id, user.email, drive_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    try:
        await run_in_threadpool(_trash_remote_then_local, services, user.email, drive_id)
    except _DRIVE_ERRORS as e:
        raise drive_http_exception(e, context="Failed to delete file") from None

    return Response(status_code=status.HTTP_204_NO_CONTENT)

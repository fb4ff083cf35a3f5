"""Domain exception -> HTTPException mapping shared by the routes."""

from __future__ import annotations

from fastapi import HTTPException, status

from driveq.drive.client import CredentialRefreshError, ProviderError
from driveq.llm.client import (
    LLMAuthError,
    LLMConfigurationError,
    LLMError,
    LLMRateLimitError,
)
from driveq.storage.credentials_repository import (
    CredentialEncryptionError,
    CredentialNotFoundError,
)
from driveq.observability.logging import get_logger
from driveq.utils.error_sanitizer import get_safe_error_detail

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = 60


def rate_limited(retry_after: int = RETRY_AFTER_SECONDS) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail="Too many requests. Please try again later.",
        headers={"Retry-After": str(retry_after)},
    )


def llm_http_exception(error: LLMError, context: str) -> HTTPException:
    """503 when unconfigured or rejected, 429 when rate limited, 502 otherwise."""
    if isinstance(error, (LLMConfigurationError, LLMAuthError)):
        logger.error("LLM unavailable: %s", type(error).__name__)
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="AI service is not configured",
        )
    if isinstance(error, LLMRateLimitError):
        return rate_limited()
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=get_safe_error_detail(error, status.HTTP_502_BAD_GATEWAY, context=context),
    )


def drive_http_exception(error: Exception, context: str) -> HTTPException:
    """401 when the Drive connection is missing or dead, 502 on provider failure."""
    if isinstance(error, (CredentialNotFoundError, CredentialRefreshError, CredentialEncryptionError)):
        logger.warning("Drive credential unusable: %s", type(error).__name__)
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Google Drive is not connected. Please reconnect your account.",
        )
    if isinstance(error, ProviderError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=get_safe_error_detail(error, status.HTTP_502_BAD_GATEWAY, context=context),
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=get_safe_error_detail(error, status.HTTP_500_INTERNAL_SERVER_ERROR, context=context),
    )

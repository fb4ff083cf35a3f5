"""Centralized configuration for the DriveQ backend.

Re-exports everything from driveq.infrastructure.settings, then adds typed
constants for the database, sync, query, rate limiting and LLM settings.
Environment overrides use safe defaults so the app starts without extra
configuration.
"""

from __future__ import annotations

import os

from driveq.infrastructure.settings import *  # noqa: F401, F403

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("DRIVEQ_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("DRIVEQ_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("DRIVEQ_DB_CONNECT_TIMEOUT", "30.0"))
DB_TEMP_CONN_MAX: int = int(os.getenv("DRIVEQ_DB_TEMP_CONN_MAX", "10"))
DB_RETRY_MAX: int = int(os.getenv("DRIVEQ_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("DRIVEQ_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("DRIVEQ_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("DRIVEQ_DB_RETRY_JITTER", "0.1"))

# --- Sync ---
SYNC_PAGE_SIZE: int = int(os.getenv("DRIVEQ_SYNC_PAGE_SIZE", "1000"))
SYNC_CHUNK_SIZE: int = int(os.getenv("DRIVEQ_SYNC_CHUNK_SIZE", "100"))
DRIVE_TIMEOUT_SECONDS: int = int(os.getenv("DRIVEQ_DRIVE_TIMEOUT", "60"))
TOKEN_EXPIRY_BUFFER_SECONDS: int = 300
DEFAULT_TOKEN_LIFETIME_SECONDS: int = 3600

# --- Query ---
QUERY_RESULT_LIMIT: int = 20
QUERY_MAX_QUESTION_CHARS: int = 1000
SORT_DEFAULT_LIMIT: int = 10
SUMMARY_TOP_N: int = 5
ANALYTICS_TOP_N: int = 6

# --- Files API ---
FILES_LIMIT_DEFAULT: int = 25
FILES_LIMIT_MAX: int = 100

# --- Rate Limiting (per user, sliding window) ---
QUERY_RATE_LIMIT: int = int(os.getenv("DRIVEQ_QUERY_RATE_LIMIT", "10"))
INSIGHTS_RATE_LIMIT: int = int(os.getenv("DRIVEQ_INSIGHTS_RATE_LIMIT", "5"))
RATE_WINDOW_SECONDS: float = float(os.getenv("DRIVEQ_RATE_WINDOW_SECONDS", "60"))
RATE_LIMIT_MAX_IDENTITIES: int = 10000

# --- Insights cache ---
INSIGHTS_CACHE_TTL_SECONDS: float = float(os.getenv("DRIVEQ_INSIGHTS_CACHE_TTL", "300"))
INSIGHTS_CACHE_PRUNE_THRESHOLD: int = 50
INSIGHT_MAX_CHARS: int = 200
INSIGHTS_MAX_COUNT: int = 5

# --- LLM ---
LLM_TIMEOUT_SECONDS: int = int(os.getenv("DRIVEQ_LLM_TIMEOUT", "30"))
LLM_MAX_RETRIES: int = int(os.getenv("DRIVEQ_LLM_MAX_RETRIES", "3"))
CLASSIFIER_TEMPERATURE: float = 0.0
ANSWER_TEMPERATURE: float = 0.3
ANSWER_MAX_TOKENS: int = 300
INSIGHTS_TEMPERATURE: float = 0.3
INSIGHTS_MAX_TOKENS: int = 600

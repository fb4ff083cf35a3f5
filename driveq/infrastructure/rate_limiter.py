"""
Per-identity sliding-window rate limiter.

Each identity keeps the timestamps of its admitted calls. A call is admitted
when fewer than `limit` of them fall inside the trailing window, and its own
timestamp is then recorded. Rejected calls are not recorded, so a client that
keeps retrying is admitted again as soon as its oldest call ages out.

Buckets live in a TTLCache whose TTL is twice the window, so an identity that
has been idle for that long is evicted along with timestamps that no longer
count. At most `max_identities` buckets are tracked.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from cachetools import TTLCache

from driveq.config import RATE_LIMIT_MAX_IDENTITIES
from driveq.observability.logging import get_logger
from driveq.observability.telemetry import counter

logger = get_logger(__name__)


class SlidingWindowRateLimiter:
    def __init__(
        self,
        name: str,
        limit: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        max_identities: int = RATE_LIMIT_MAX_IDENTITIES,
    ) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        # A bucket is rewritten on every call, so a TTL of two windows outlives
        # every timestamp it still holds
        self._attempts: TTLCache[str, list[float]] = TTLCache(
            maxsize=max_identities, ttl=window_seconds * 2, timer=clock
        )
        self._lock = threading.Lock()

    def allow(self, identity: str) -> bool:
        """
        Admission decision for one call

        Side Effects:
            - Drops timestamps that left the window, records `now` when admitted
            - Increments ratelimit.{name}.allowed / .rejected
        """
        with self._lock:
            now = self._clock()
            recent = [t for t in self._attempts.get(identity, []) if now - t < self.window_seconds]
            allowed = len(recent) < self.limit
            if allowed:
                recent.append(now)
            self._attempts[identity] = recent

        if allowed:
            counter(f"ratelimit.{self.name}.allowed")
        else:
            counter(f"ratelimit.{self.name}.rejected")
            logger.warning("Rate limit exceeded: limiter=%s identity=%s", self.name, identity)
        return allowed

    def retry_after(self, identity: str) -> int:
        """Whole seconds until the oldest recorded call leaves the window."""
        with self._lock:
            attempts = self._attempts.get(identity)
            if not attempts:
                return 0
            remaining = self.window_seconds - (self._clock() - attempts[0])
        return max(1, int(remaining + 0.999))

    def reset(self) -> None:
        with self._lock:
            self._attempts.clear()

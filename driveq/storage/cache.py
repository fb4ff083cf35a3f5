"""
Fingerprint-keyed TTL cache for derived results.

Holds model-generated insights keyed by a cheap fingerprint of the analytics
aggregate. Expiry is checked lazily on read; expired entries stay in the map
until a write pushes the size past the prune threshold, at which point every
expired entry is swept. No background thread.

One instance is created at app startup and shared through app.state.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from driveq.config import INSIGHTS_CACHE_PRUNE_THRESHOLD, INSIGHTS_CACHE_TTL_SECONDS
from driveq.observability.telemetry import counter, log_event

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value and the clock reading when it was stored."""

    value: T
    created_at: float


class FingerprintCache(Generic[T]):
    def __init__(
        self,
        name: str,
        ttl_seconds: float = INSIGHTS_CACHE_TTL_SECONDS,
        prune_threshold: int = INSIGHTS_CACHE_PRUNE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.prune_threshold = prune_threshold
        self._clock = clock
        self._store: dict[str, CacheEntry[T]] = {}
        self._lock = threading.Lock()

    def _is_expired(self, entry: CacheEntry[T], now: float) -> bool:
        return now - entry.created_at >= self.ttl_seconds

    def get(self, key: str) -> T | None:
        """Return the cached value, or None if absent or past its TTL."""
        with self._lock:
            entry = self._store.get(key)
            if entry is not None and not self._is_expired(entry, self._clock()):
                counter(f"cache.{self.name}.hit")
                return entry.value

        if entry is None:
            counter(f"cache.{self.name}.miss")
        else:
            counter(f"cache.{self.name}.expired")
        return None

    def put(self, key: str, value: T) -> None:
        """
        Store value, then prune expired entries if the map outgrew the threshold

        Side Effects:
            - Writes to _store (in-memory)
            - Increments cache.{name}.write, logs cache.pruned when entries are swept
        """
        with self._lock:
            now = self._clock()
            self._store[key] = CacheEntry(value=value, created_at=now)
            pruned = 0
            if len(self._store) > self.prune_threshold:
                expired = [k for k, e in self._store.items() if self._is_expired(e, now)]
                for k in expired:
                    del self._store[k]
                pruned = len(expired)

        counter(f"cache.{self.name}.write")
        if pruned:
            log_event("cache.pruned", cache=self.name, count=pruned)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

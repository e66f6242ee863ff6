"""Simple in-memory rate limiting utilities."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional

from app.core.exceptions import RateLimitExceededError

# Keys carry caller-supplied emails, so stale buckets are purged once the map grows past this.
PURGE_THRESHOLD = 10_000


@dataclass
class _Bucket:
    timestamps: Deque[float] = field(default_factory=deque)
    window_seconds: int = 0


class InMemoryRateLimiter:
    """Sliding-window rate limiter suitable for single-node deployments."""

    def __init__(self, purge_threshold: int = PURGE_THRESHOLD) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}
        self._purge_threshold = purge_threshold

    def __len__(self) -> int:
        return len(self._buckets)

    @staticmethod
    def _prune(bucket: _Bucket, now: float) -> None:
        cutoff = now - bucket.window_seconds
        while bucket.timestamps and bucket.timestamps[0] < cutoff:
            bucket.timestamps.popleft()

    def _purge_locked(self, now: float) -> int:
        stale = []
        for key, bucket in self._buckets.items():
            self._prune(bucket, now)
            if not bucket.timestamps:
                stale.append(key)
        for key in stale:
            del self._buckets[key]
        return len(stale)

    def purge(self, now: Optional[float] = None) -> int:
        """Drop buckets with no attempts left in their window; returns how many."""
        now = time.time() if now is None else now
        with self._lock:
            return self._purge_locked(now)

    def allow(self, key: str, limit: int, window_seconds: int, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is not None:
                bucket.window_seconds = window_seconds
                self._prune(bucket, now)
                if not bucket.timestamps:
                    del self._buckets[key]
                    bucket = None
            if bucket is not None and len(bucket.timestamps) >= limit:
                return False

            if bucket is None:
                if len(self._buckets) >= self._purge_threshold:
                    self._purge_locked(now)
                bucket = self._buckets[key] = _Bucket(window_seconds=window_seconds)
            bucket.timestamps.append(now)
            return True

    def enforce(self, scope: str, subject: str, per_minute: int, per_hour: int) -> None:
        """
        Count one attempt against minute and hour windows.

        Raises:
            RateLimitExceededError: Either window is exhausted
        """
        if not self.allow(f"{scope}:min:{subject}", per_minute, 60):
            raise RateLimitExceededError(f"Too many {scope} attempts. Please wait a minute.")
        if not self.allow(f"{scope}:hour:{subject}", per_hour, 3600):
            raise RateLimitExceededError(f"Too many {scope} attempts. Please try again later.")

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


rate_limiter = InMemoryRateLimiter()

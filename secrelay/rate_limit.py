"""Token-bucket rate limiting for pipeline triggers.

A ``TokenBucket`` holds up to ``burst`` tokens and regains one every
``interval`` seconds.  ``RateLimiter`` keeps one bucket per key; the chat
bot uses a single process-wide key, the web middleware keys by client IP.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

GLOBAL_KEY = "global"


class TokenBucket:
    """Thread-safe token bucket. Starts full."""

    def __init__(
        self,
        interval: float = 1.0,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        if burst < 1:
            raise ValueError(f"burst must be >= 1, got {burst}")
        self.interval = interval
        self.burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed / self.interval)
        self._updated = now

    def allow(self) -> bool:
        """Consume one token if available."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False

    def retry_after(self) -> float:
        """Seconds until the next token becomes available (0 if one is ready)."""
        with self._lock:
            self._refill(self._clock())
            if self._tokens >= 1.0:
                return 0.0
            return (1.0 - self._tokens) * self.interval

    @property
    def is_full(self) -> bool:
        with self._lock:
            self._refill(self._clock())
            return self._tokens >= self.burst


class RateLimiter:
    """Keyed collection of token buckets with periodic pruning of idle keys."""

    def __init__(
        self,
        interval: float = 1.0,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float = 60.0,
    ) -> None:
        self.interval = interval
        self.burst = burst
        self._clock = clock
        self._buckets: dict[str, TokenBucket] = {}
        self._lock = threading.Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def _get_locked(self, key: str) -> TokenBucket:
        self._maybe_cleanup()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = TokenBucket(self.interval, self.burst, clock=self._clock)
            self._buckets[key] = bucket
        return bucket

    # The bucket is consulted under the limiter lock, so cleanup can never
    # replace a bucket between lookup and token consumption.
    def allow(self, key: str = GLOBAL_KEY) -> bool:
        with self._lock:
            return self._get_locked(key).allow()

    def retry_after(self, key: str = GLOBAL_KEY) -> float:
        with self._lock:
            return self._get_locked(key).retry_after()

    def _maybe_cleanup(self) -> None:
        """Drop buckets that have refilled completely; they behave like new ones."""
        now = self._clock()
        if now - self._last_cleanup < self._cleanup_interval:
            return
        self._last_cleanup = now
        idle = [k for k, b in self._buckets.items() if b.is_full]
        for k in idle:
            del self._buckets[k]

    @property
    def buckets(self) -> dict[str, TokenBucket]:
        """Expose buckets for testing/introspection."""
        return self._buckets

"""Expiring record of article ids that have already been dispatched.

Every operation runs under a single lock.  ``was_sent`` deletes expired
entries as a side effect, so even reads take the lock exclusively.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

logger = logging.getLogger("secrelay.cache")

DEFAULT_RETENTION_SECONDS = 24 * 3600.0


class SentArticleCache:
    """Maps article id -> time it was marked as sent.

    Parameters
    ----------
    retention_seconds:
        How long a mark stays valid.  An entry is expired once
        ``now - marked_at > retention_seconds``.
    clock:
        Zero-argument callable returning the current time in seconds.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retention_seconds <= 0:
            raise ValueError(f"retention_seconds must be positive, got {retention_seconds}")
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._marked: dict[str, float] = {}
        self._lock = threading.Lock()

    def _expired(self, marked_at: float, now: float) -> bool:
        return now - marked_at > self.retention_seconds

    def _check_locked(self, article_id: str, now: float) -> bool:
        marked_at = self._marked.get(article_id)
        if marked_at is None:
            return False
        if self._expired(marked_at, now):
            del self._marked[article_id]
            return False
        return True

    def was_sent(self, article_id: str) -> bool:
        """Return True if *article_id* has an unexpired mark, evicting it if expired."""
        with self._lock:
            return self._check_locked(article_id, self._clock())

    def mark_sent(self, article_id: str) -> None:
        """Insert or refresh the mark for *article_id*."""
        with self._lock:
            self._marked[article_id] = self._clock()

    def claim(self, article_id: str) -> bool:
        """Mark *article_id* as sent if it is not already.

        Returns True when this call performed the mark, i.e. the id was new.
        Check and mark happen under one lock acquisition, so of two racing
        callers exactly one gets True.
        """
        with self._lock:
            now = self._clock()
            if self._check_locked(article_id, now):
                return False
            self._marked[article_id] = now
            return True

    def sweep(self, now: float | None = None) -> int:
        """Delete every expired entry. Returns the number removed."""
        with self._lock:
            if now is None:
                now = self._clock()
            expired = [aid for aid, marked_at in self._marked.items() if self._expired(marked_at, now)]
            for aid in expired:
                del self._marked[aid]
        if expired:
            logger.debug(f"Swept {len(expired)} expired article ids")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._marked)

    def __contains__(self, article_id: object) -> bool:
        if not isinstance(article_id, str):
            return False
        return self.was_sent(article_id)

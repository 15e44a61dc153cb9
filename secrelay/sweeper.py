"""Background thread that evicts expired ids from the dedup cache."""

from __future__ import annotations

import logging
import threading

from secrelay.cache import SentArticleCache

logger = logging.getLogger("secrelay.sweeper")


class CacheSweeper:
    def __init__(self, cache: SentArticleCache, interval_seconds: float = 3600.0):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> int:
        removed = self.cache.sweep()
        logger.info(f"Cleaned up {removed} expired articles ({len(self.cache)} remain)")
        return removed

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception:
                logger.exception("Cache sweep failed")

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="cache-sweeper", daemon=True)
        self._thread.start()
        logger.info(f"Cache sweeper started (every {self.interval_seconds:.0f}s)")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

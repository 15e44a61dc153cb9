"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from secrelay.cache import SentArticleCache
from secrelay.config import Settings
from secrelay.integrations.rss import FeedEntry
from secrelay.pipeline import ArticlePipeline

HOUR = 3600.0


class FakeClock:
    """Manually advanced clock for cache and limiter tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings(tmp_path):
    """Settings with test values - no real token, no static dir."""
    return Settings(
        feed_url="https://example.com/rss",
        telegram_bot_token="",
        delivery_delay_ms=0,
        static_dir=tmp_path / "no-static",
    )


@pytest.fixture
def make_entry():
    """Factory for FeedEntry objects."""

    def _make(n: int, description: str = "", published: datetime | None = None) -> FeedEntry:
        return FeedEntry(
            guid=f"https://habr.com/ru/articles/{n}/",
            title=f"Article {n}",
            link=f"https://habr.com/ru/articles/{n}/?utm_campaign={n}",
            description=description or f"<p>Summary of article {n}</p>",
            published=published,
        )

    return _make


@pytest.fixture
def make_pipeline(clock):
    """Build a pipeline over a fixed list of entries with a fake-clock cache."""

    def _make(entries, cache: SentArticleCache | None = None, **kwargs) -> ArticlePipeline:
        if cache is None:
            cache = SentArticleCache(retention_seconds=24 * HOUR, clock=clock)
        return ArticlePipeline(
            feed_url="https://example.com/rss",
            cache=cache,
            fetcher=lambda url, timeout: list(entries),
            **kwargs,
        )

    return _make


@pytest.fixture
def published_at():
    return datetime(2025, 3, 1, 12, 30, tzinfo=timezone.utc)

"""Fetch → dedup → normalize → cap, plus paced delivery of the result."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from secrelay.cache import SentArticleCache
from secrelay.integrations.rss import FeedEntry, fetch_feed
from secrelay.models import Article
from secrelay.summary import normalize_summary

if TYPE_CHECKING:
    from secrelay.config import Settings

logger = logging.getLogger("secrelay.pipeline")

DEFAULT_MAX_RESULTS = 10

Fetcher = Callable[..., list[FeedEntry]]


@dataclass
class DeliveryReport:
    sent: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sent + self.failed


class ArticlePipeline:
    """Produces articles that no trigger has received within the retention window.

    The cache is shared by every caller; network I/O happens before any
    cache access, and each entry is claimed with a single atomic call.
    """

    def __init__(
        self,
        feed_url: str,
        cache: SentArticleCache,
        fetcher: Fetcher = fetch_feed,
        fetch_timeout: float = 30.0,
        max_results: int = DEFAULT_MAX_RESULTS,
    ):
        self.feed_url = feed_url
        self.cache = cache
        self.fetcher = fetcher
        self.fetch_timeout = fetch_timeout
        self.max_results = max_results

    def fetch_new_articles(self, max_results: int | None = None) -> list[Article]:
        """Run one cycle. Raises ``FeedFetchError`` if the feed is unavailable.

        An empty list means there is nothing new.
        """
        limit = self.max_results if max_results is None else max_results
        entries = self.fetcher(self.feed_url, timeout=self.fetch_timeout)
        fetched_at = datetime.now(timezone.utc)

        articles: list[Article] = []
        skipped = 0
        for entry in entries:
            if len(articles) >= limit:
                break
            if not self.cache.claim(entry.guid):
                skipped += 1
                continue
            articles.append(_build_article(entry, fetched_at))

        logger.info(f"Pipeline cycle: {len(articles)} new, {skipped} already sent, {len(entries)} in feed")
        return articles


def _build_article(entry: FeedEntry, fetched_at: datetime) -> Article:
    return Article(
        id=entry.guid,
        title=entry.title,
        link=entry.link,
        summary=normalize_summary(entry.description),
        published_at=entry.published or fetched_at,
    )


def deliver_articles(
    articles: Iterable[Article],
    send: Callable[[Article], object],
    delay_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> DeliveryReport:
    """Send each article, continuing past individual failures.

    Failed items are not retried and stay marked as sent. A pause of
    *delay_seconds* follows every successful send.
    """
    report = DeliveryReport()
    for article in articles:
        try:
            send(article)
        except Exception as e:
            report.failed += 1
            report.errors.append(f"{article.id}: {e}")
            logger.warning(f"Failed to deliver article '{article.title}': {e}")
            continue
        report.sent += 1
        if delay_seconds > 0:
            sleep(delay_seconds)
    if report.failed:
        logger.info(f"Delivered {report.sent}/{report.total} articles ({report.failed} failed)")
    return report


def create_pipeline(settings: Settings, cache: SentArticleCache | None = None) -> ArticlePipeline:
    """Wire a pipeline from settings, creating a fresh cache if none is given."""
    if cache is None:
        cache = SentArticleCache(retention_seconds=settings.cache_retention_seconds)
    return ArticlePipeline(
        feed_url=settings.feed_url,
        cache=cache,
        fetch_timeout=settings.fetch_timeout_seconds,
        max_results=settings.max_articles,
    )

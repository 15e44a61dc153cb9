"""RSS feed reader for the infosec article source."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from datetime import datetime, timezone

import feedparser
import requests

logger = logging.getLogger("secrelay.rss")

USER_AGENT = "secrelay/0.1 (+https://habr.com/ru/rss/)"
CHUNK_SIZE = 1024


class FeedFetchError(Exception):
    """Raised when the feed cannot be downloaded or parsed."""


@dataclass
class FeedEntry:
    guid: str
    title: str
    link: str
    description: str
    published: datetime | None = None


def _parse_published(entry) -> datetime | None:
    """feedparser exposes dates as UTC ``time.struct_time``."""
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    try:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return None


def parse_feed(content: bytes | str) -> list[FeedEntry]:
    """Parse a syndication document into entries, in document order.

    Entries with neither a guid nor a link are dropped: they cannot be
    deduplicated.
    """
    feed = feedparser.parse(content)
    if feed.get("bozo") and not feed.entries:
        raise FeedFetchError(f"Unparseable feed: {feed.get('bozo_exception')}")

    entries = []
    for entry in feed.entries:
        link = (entry.get("link") or "").strip()
        guid = (entry.get("id") or "").strip() or link
        if not guid:
            continue
        entries.append(
            FeedEntry(
                guid=guid,
                title=(entry.get("title") or "").strip(),
                link=link,
                description=entry.get("summary") or entry.get("description") or "",
                published=_parse_published(entry),
            )
        )
    return entries


def _download(url: str, timeout: float, deadline: float, session: requests.Session | None) -> bytes:
    http = session or requests
    resp = http.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT}, stream=True)
    try:
        resp.raise_for_status()
        chunks = []
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise FeedFetchError(f"Timed out reading {url} after {timeout}s")
            chunks.append(chunk)
        return b"".join(chunks)
    finally:
        resp.close()


def fetch_feed(url: str, timeout: float = 30.0, session: requests.Session | None = None) -> list[FeedEntry]:
    """Download and parse *url*. Raises ``FeedFetchError`` on any failure.

    *timeout* bounds the whole download, not just each socket read: a server
    that trickles bytes is cut off once the deadline passes.  The transfer
    runs on a daemon thread so the caller gets control back on time even
    while a read is still blocked.
    """
    deadline = time.monotonic() + timeout
    future: Future[bytes] = Future()

    def worker() -> None:
        try:
            future.set_result(_download(url, timeout, deadline, session))
        except Exception as e:
            future.set_exception(e)

    threading.Thread(target=worker, name="feed-fetch", daemon=True).start()
    try:
        content = future.result(timeout=max(0.0, deadline - time.monotonic()))
    except FuturesTimeoutError:
        raise FeedFetchError(f"Timed out fetching {url} after {timeout}s") from None
    except requests.RequestException as e:
        raise FeedFetchError(f"Failed to fetch {url}: {e}") from e

    entries = parse_feed(content)
    logger.info(f"Fetched {len(entries)} entries from {url}")
    return entries

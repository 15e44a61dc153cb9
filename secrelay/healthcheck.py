"""Health checks for external dependencies."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from secrelay.config import Settings
from secrelay.integrations.rss import FeedFetchError, fetch_feed
from secrelay.integrations.telegram import TelegramClient, TelegramError

logger = logging.getLogger("secrelay.healthcheck")


@dataclass
class HealthResult:
    name: str
    ok: bool
    message: str


def check_config(settings: Settings) -> HealthResult:
    """Validate all configuration values."""
    errors = settings.validate()
    if errors:
        return HealthResult("config", False, "; ".join(errors))
    return HealthResult("config", True, "All config values valid")


def check_feed(settings: Settings) -> HealthResult:
    """Verify the feed can be downloaded and parsed."""
    try:
        entries = fetch_feed(settings.feed_url, timeout=settings.fetch_timeout_seconds)
    except FeedFetchError as e:
        return HealthResult("feed", False, str(e))
    if not entries:
        return HealthResult("feed", False, f"Feed at {settings.feed_url} has no entries")
    return HealthResult("feed", True, f"{len(entries)} entries at {settings.feed_url}")


def check_telegram(settings: Settings) -> HealthResult:
    """Verify the bot token is accepted."""
    if not settings.has_telegram():
        return HealthResult("telegram", True, "Not configured (web-only mode)")
    try:
        me = TelegramClient(settings.telegram_bot_token, timeout=10).get_me()
        return HealthResult("telegram", True, f"Authorized as @{me.get('username', '?')}")
    except TelegramError as e:
        return HealthResult("telegram", False, f"Auth failed: {e}")


def run_all_checks(settings: Settings) -> list[HealthResult]:
    """Run all health checks and return results."""
    return [
        check_config(settings),
        check_feed(settings),
        check_telegram(settings),
    ]

"""Configuration loaded from environment variables / .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

HABR_INFOSEC_FEED_URL = "https://habr.com/ru/rss/hub/infosecurity/all/?fl=ru"

# Token used by local/dev setups to force web-only mode.
PLACEHOLDER_TELEGRAM_TOKEN = "dummy_token_for_testing"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # Feed
    feed_url: str = HABR_INFOSEC_FEED_URL
    fetch_timeout_seconds: float = 30.0
    max_articles: int = 10

    # Telegram
    telegram_bot_token: str = ""
    telegram_poll_timeout: int = 60
    telegram_workers: int = 8

    # Dedup cache
    cache_retention_hours: float = 24.0
    cache_sweep_interval_minutes: float = 60.0

    # Trigger rate limiting (chat commands)
    rate_limit_interval_seconds: float = 1.0
    rate_limit_burst: int = 1
    rate_limit_per_chat: bool = False

    # Pause between consecutive articles sent to one chat
    delivery_delay_ms: int = 500

    # Web API
    web_host: str = "0.0.0.0"
    web_port: int = 8080
    static_dir: Path = Path("docs")
    api_rate_limit_enabled: bool = True
    api_rate_limit_per_minute: int = 60

    # Logging
    log_level: str = "INFO"

    @property
    def cache_retention_seconds(self) -> float:
        return self.cache_retention_hours * 3600

    @property
    def cache_sweep_interval_seconds(self) -> float:
        return self.cache_sweep_interval_minutes * 60

    @property
    def delivery_delay_seconds(self) -> float:
        return self.delivery_delay_ms / 1000

    def has_telegram(self) -> bool:
        return bool(self.telegram_bot_token) and self.telegram_bot_token != PLACEHOLDER_TELEGRAM_TOKEN

    def validate(self, require_telegram: bool = False) -> list[str]:
        """Validate configuration. Returns list of error strings (empty = valid)."""
        errors = []

        if not self.feed_url.startswith(("http://", "https://")):
            errors.append(f"FEED_URL must be an http(s) URL, got {self.feed_url!r}")

        if require_telegram and not self.has_telegram():
            errors.append("TELEGRAM_BOT_TOKEN is not set")

        if self.fetch_timeout_seconds <= 0:
            errors.append(f"FETCH_TIMEOUT_SECONDS must be > 0, got {self.fetch_timeout_seconds}")

        if self.max_articles < 1:
            errors.append(f"MAX_ARTICLES must be >= 1, got {self.max_articles}")

        if self.cache_retention_hours <= 0:
            errors.append(f"CACHE_RETENTION_HOURS must be > 0, got {self.cache_retention_hours}")

        if self.cache_sweep_interval_minutes <= 0:
            errors.append(f"CACHE_SWEEP_INTERVAL_MINUTES must be > 0, got {self.cache_sweep_interval_minutes}")

        if self.rate_limit_interval_seconds <= 0:
            errors.append(f"RATE_LIMIT_INTERVAL_SECONDS must be > 0, got {self.rate_limit_interval_seconds}")

        if self.rate_limit_burst < 1:
            errors.append(f"RATE_LIMIT_BURST must be >= 1, got {self.rate_limit_burst}")

        if self.delivery_delay_ms < 0:
            errors.append(f"DELIVERY_DELAY_MS must be >= 0, got {self.delivery_delay_ms}")

        if self.telegram_workers < 1:
            errors.append(f"TELEGRAM_WORKERS must be >= 1, got {self.telegram_workers}")

        if self.api_rate_limit_per_minute < 1:
            errors.append(f"API_RATE_LIMIT_PER_MINUTE must be >= 1, got {self.api_rate_limit_per_minute}")

        return errors


def load_settings() -> Settings:
    load_dotenv()

    return Settings(
        feed_url=os.environ.get("FEED_URL", HABR_INFOSEC_FEED_URL),
        fetch_timeout_seconds=float(os.environ.get("FETCH_TIMEOUT_SECONDS", "30")),
        max_articles=int(os.environ.get("MAX_ARTICLES", "10")),
        telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
        telegram_poll_timeout=int(os.environ.get("TELEGRAM_POLL_TIMEOUT", "60")),
        telegram_workers=int(os.environ.get("TELEGRAM_WORKERS", "8")),
        cache_retention_hours=float(os.environ.get("CACHE_RETENTION_HOURS", "24")),
        cache_sweep_interval_minutes=float(os.environ.get("CACHE_SWEEP_INTERVAL_MINUTES", "60")),
        rate_limit_interval_seconds=float(os.environ.get("RATE_LIMIT_INTERVAL_SECONDS", "1")),
        rate_limit_burst=int(os.environ.get("RATE_LIMIT_BURST", "1")),
        rate_limit_per_chat=_env_bool("RATE_LIMIT_PER_CHAT", "false"),
        delivery_delay_ms=int(os.environ.get("DELIVERY_DELAY_MS", "500")),
        web_host=os.environ.get("WEB_HOST", "0.0.0.0"),
        web_port=int(os.environ.get("PORT") or os.environ.get("WEB_PORT", "8080")),
        static_dir=Path(os.environ.get("STATIC_DIR", "docs")),
        api_rate_limit_enabled=_env_bool("API_RATE_LIMIT_ENABLED", "true"),
        api_rate_limit_per_minute=int(os.environ.get("API_RATE_LIMIT_PER_MINUTE", "60")),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )

"""Telegram Bot API client and the command-driven article bot."""

from __future__ import annotations

import html
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any

import requests

from secrelay.integrations.rss import FeedFetchError
from secrelay.models import Article
from secrelay.pipeline import ArticlePipeline, DeliveryReport, deliver_articles
from secrelay.rate_limit import GLOBAL_KEY, RateLimiter

logger = logging.getLogger("secrelay.telegram")

API_BASE = "https://api.telegram.org"

WELCOME_TEXT = (
    "Привет! Я бот, который предоставляет RSS-ленту статей с Хабра по теме информационной безопасности.\n\n"
    "Доступные команды:\n"
    "/infosec или /security - получить последние статьи по информационной безопасности"
)
HELP_TEXT = (
    "Доступные команды:\n"
    "/infosec или /security - получить последние статьи по информационной безопасности\n"
    "/help - показать это сообщение\n"
    "/start - начать работу с ботом"
)
LOADING_TEXT = "Получаю последние статьи по информационной безопасности с Хабра..."
FETCH_ERROR_TEXT = "Ошибка при получении статей. Пожалуйста, попробуйте позже."
NO_ARTICLES_TEXT = "На данный момент нет новых статей по информационной безопасности."
READ_MORE_TEXT = "Читать на Хабре"

FEED_COMMANDS = ("/infosec", "/security")


class TelegramError(Exception):
    """Raised when a Bot API call fails at the HTTP level or returns ok=false."""


def format_article_message(article: Article) -> str:
    """Render an article as a Telegram HTML message."""
    return (
        f"📚 <b>{html.escape(article.title)}</b>\n\n"
        f"{html.escape(article.summary)}\n\n"
        f'🔗 <a href="{html.escape(article.link, quote=True)}">{READ_MORE_TEXT}</a>'
    )


class TelegramClient:
    def __init__(self, token: str, timeout: float = 30.0, session: requests.Session | None = None):
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, method: str, http_timeout: float | None = None, **params: Any) -> Any:
        url = f"{API_BASE}/bot{self.token}/{method}"
        try:
            resp = self.session.post(url, json=params, timeout=http_timeout or self.timeout)
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise TelegramError(f"{method} failed: {e}") from e
        if not data.get("ok"):
            raise TelegramError(f"{method} failed: {data.get('description', 'unknown error')}")
        return data.get("result")

    def get_me(self) -> dict:
        return self._call("getMe")

    def get_updates(self, offset: int | None = None, timeout: int = 60) -> list[dict]:
        params: dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            params["offset"] = offset
        # Long poll: the HTTP timeout must outlast the server-side wait.
        return self._call("getUpdates", http_timeout=timeout + 10, **params) or []

    def send_message(self, chat_id: int, text: str, parse_mode: str | None = None) -> int:
        """Send a message. Returns the new message id."""
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode:
            params["parse_mode"] = parse_mode
        result = self._call("sendMessage", **params)
        return int(result["message_id"])

    def delete_message(self, chat_id: int, message_id: int) -> None:
        self._call("deleteMessage", chat_id=chat_id, message_id=message_id)


class TelegramBot:
    """Answers chat commands by running pipeline cycles.

    Every inbound message is handled on a worker thread, so a slow fetch or
    paced delivery in one chat does not hold up the others.
    """

    def __init__(
        self,
        client: TelegramClient,
        pipeline: ArticlePipeline,
        limiter: RateLimiter,
        delivery_delay: float = 0.5,
        poll_timeout: int = 60,
        max_workers: int = 8,
        per_chat_limit: bool = False,
    ):
        self.client = client
        self.pipeline = pipeline
        self.limiter = limiter
        self.delivery_delay = delivery_delay
        self.poll_timeout = poll_timeout
        self.max_workers = max_workers
        self.per_chat_limit = per_chat_limit
        self._offset: int | None = None
        self._stop = threading.Event()
        self._executor: ThreadPoolExecutor | None = None

    # --- Command handling ---

    def handle_message(self, chat_id: int, text: str) -> None:
        key = str(chat_id) if self.per_chat_limit else GLOBAL_KEY
        if not self.limiter.allow(key):
            logger.debug(f"Rate limited message from chat {chat_id}")
            return

        command = (text or "").strip()
        if command == "/help":
            self._send_text(chat_id, HELP_TEXT)
        elif command in FEED_COMMANDS:
            self.send_feed(chat_id)
        else:
            self._send_text(chat_id, WELCOME_TEXT)

    def _send_text(self, chat_id: int, text: str) -> None:
        try:
            self.client.send_message(chat_id, text)
        except TelegramError as e:
            logger.warning(f"Error sending message to chat {chat_id}: {e}")

    def _delete_quietly(self, chat_id: int, message_id: int | None) -> None:
        if message_id is None:
            return
        try:
            self.client.delete_message(chat_id, message_id)
        except TelegramError as e:
            logger.warning(f"Error deleting loading message in chat {chat_id}: {e}")

    def send_feed(self, chat_id: int) -> DeliveryReport | None:
        """Run one pipeline cycle and deliver the result to *chat_id*.

        Returns the delivery report, or None if nothing was delivered.
        """
        loading_id: int | None
        try:
            loading_id = self.client.send_message(chat_id, LOADING_TEXT)
        except TelegramError as e:
            logger.warning(f"Error sending loading message to chat {chat_id}: {e}")
            loading_id = None

        try:
            articles = self.pipeline.fetch_new_articles()
        except FeedFetchError as e:
            logger.error(f"Error getting feed for chat {chat_id}: {e}")
            self._send_text(chat_id, FETCH_ERROR_TEXT)
            self._delete_quietly(chat_id, loading_id)
            return None

        self._delete_quietly(chat_id, loading_id)

        if not articles:
            self._send_text(chat_id, NO_ARTICLES_TEXT)
            return None

        return deliver_articles(
            articles,
            lambda article: self.client.send_message(chat_id, format_article_message(article), parse_mode="HTML"),
            delay_seconds=self.delivery_delay,
        )

    # --- Polling loop ---

    def _handle_safely(self, chat_id: int, text: str) -> None:
        try:
            self.handle_message(chat_id, text)
        except Exception:
            logger.exception(f"Unhandled error processing message from chat {chat_id}")

    def poll_once(self) -> int:
        """Fetch one batch of updates and dispatch them. Returns the number dispatched."""
        updates = self.client.get_updates(offset=self._offset, timeout=self.poll_timeout)
        dispatched = 0
        for update in updates:
            self._offset = update["update_id"] + 1
            message = update.get("message")
            if not message or "chat" not in message:
                continue
            chat_id = message["chat"]["id"]
            text = message.get("text", "")
            if self._executor is not None:
                self._executor.submit(self._handle_safely, chat_id, text)
            else:
                self._handle_safely(chat_id, text)
            dispatched += 1
        return dispatched

    def run(self) -> None:
        """Poll until ``stop()`` is called."""
        me = self.client.get_me()
        logger.info(f"Authorized on account {me.get('username', '?')}")
        self._stop.clear()
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="tg-handler")
        try:
            while not self._stop.is_set():
                try:
                    self.poll_once()
                except TelegramError as e:
                    logger.warning(f"Polling failed, retrying in 5s: {e}")
                    self._stop.wait(5)
        finally:
            self._executor.shutdown(wait=True)
            self._executor = None

    def run_until_failure(self) -> None:
        """Thread target for ``run()`` that logs a fatal Bot API error instead of raising.

        A rejected token makes ``getMe`` fail before polling starts; the rest
        of the process keeps serving the web API.
        """
        try:
            self.run()
        except TelegramError as e:
            logger.error(f"Telegram bot stopped, continuing without it: {e}")

    def stop(self) -> None:
        self._stop.set()

"""secrelay - relays Habr infosec articles to Telegram chats and a JSON API."""

__version__ = "0.1.0"

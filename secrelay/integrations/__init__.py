"""External services: the RSS source and the Telegram Bot API."""

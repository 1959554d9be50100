"""Telegram Bot API client, update polling and the bot's command handlers."""

from .client import TelegramClient
from .parsing import parse_incoming_update
from .types import TelegramCallbackQuery, TelegramIncomingMessage

__all__ = [
    "TelegramCallbackQuery",
    "TelegramClient",
    "TelegramIncomingMessage",
    "parse_incoming_update",
]

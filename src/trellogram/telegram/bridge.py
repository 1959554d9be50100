from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..auth import AuthStore
from ..chat_config import ChatConfigStore, StatsStore
from ..credentials import CredentialResolver
from ..logging import get_logger
from .client import BotClient
from .sessions import SessionStore
from .supervisor import ConnectionSupervisor

logger = get_logger(__name__)

MARKDOWN = "Markdown"


@dataclass(slots=True)
class TelegramBridgeConfig:
    """Everything a handler needs, created once at start-up."""

    bot: BotClient
    bot_username: str
    auth: AuthStore
    credentials: CredentialResolver
    chat_config: ChatConfigStore
    stats: StatsStore
    sessions: SessionStore
    supervisor: ConnectionSupervisor | None = None
    default_board_id: str | None = None


async def send_plain(
    cfg: TelegramBridgeConfig,
    chat_id: int | str,
    text: str,
    *,
    reply_markup: dict[str, Any] | None = None,
) -> dict | None:
    return await cfg.bot.send_message(chat_id, text, reply_markup=reply_markup)


async def send_markdown(
    cfg: TelegramBridgeConfig,
    chat_id: int | str,
    text: str,
    *,
    reply_markup: dict[str, Any] | None = None,
    disable_web_page_preview: bool | None = None,
) -> dict | None:
    return await cfg.bot.send_message(
        chat_id,
        text,
        parse_mode=MARKDOWN,
        reply_markup=reply_markup,
        disable_web_page_preview=disable_web_page_preview,
    )


async def edit_markdown(
    cfg: TelegramBridgeConfig,
    chat_id: int | str,
    message_id: int,
    text: str,
    *,
    disable_web_page_preview: bool | None = None,
) -> dict | None:
    return await cfg.bot.edit_message_text(
        chat_id,
        message_id,
        text,
        parse_mode=MARKDOWN,
        disable_web_page_preview=disable_web_page_preview,
    )

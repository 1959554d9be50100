from __future__ import annotations

from ...logging import get_logger
from .. import render
from ..bridge import TelegramBridgeConfig, send_markdown, send_plain
from ..types import TelegramIncomingMessage
from .access import require_admin

logger = get_logger(__name__)

RECENT_ACTIVITY_SHOWN = 5


async def handle_stats(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    stats = await cfg.stats.global_stats()
    recent = await cfg.stats.recent_activity(RECENT_ACTIVITY_SHOWN)
    await send_markdown(cfg, msg.chat_id, render.global_stats(stats, recent))


async def handle_settings(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    await send_markdown(cfg, msg.chat_id, "*Bot Settings:*\n\nSettings management coming soon!")


async def handle_clear_board(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    await cfg.chat_config.clear(msg.chat_id)
    logger.info("chat_config.cleared", chat_id=msg.chat_id, user_id=msg.sender_id)
    await send_plain(cfg, msg.chat_id, "✅ Board configuration cleared.")


async def handle_network(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    if cfg.supervisor is None:
        await send_plain(cfg, msg.chat_id, "Connection monitoring is not running.")
        return
    await send_markdown(cfg, msg.chat_id, render.network_status(cfg.supervisor.status()))


async def handle_reconnect(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if not await require_admin(cfg, msg):
        return
    if cfg.supervisor is None:
        await send_plain(cfg, msg.chat_id, "Connection monitoring is not running.")
        return
    logger.info("supervisor.reset.requested", user_id=msg.sender_id)
    await send_plain(cfg, msg.chat_id, "🔄 Resetting connection...")
    status = await cfg.supervisor.reset()
    await send_markdown(cfg, msg.chat_id, render.network_status(status))

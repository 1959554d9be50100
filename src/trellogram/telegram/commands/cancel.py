from __future__ import annotations

from ...ids import session_key
from ...logging import get_logger
from ..bridge import TelegramBridgeConfig, send_plain
from ..types import TelegramIncomingMessage

logger = get_logger(__name__)


async def handle_cancel(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    key = session_key(chat_id=msg.chat_id, sender_id=msg.sender_id, is_group=msg.is_group)
    if not cfg.sessions.delete(key):
        await send_plain(cfg, msg.chat_id, "Nothing to cancel.")
        return
    logger.info("sessions.cancelled", key=key, user_id=msg.sender_id)
    await send_plain(cfg, msg.chat_id, "❌ Operation cancelled.")

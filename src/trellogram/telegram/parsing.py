from __future__ import annotations

from typing import Any

import msgspec

from ..logging import get_logger
from .api_models import CallbackQuery, Message, Update, User
from .types import TelegramCallbackQuery, TelegramIncomingMessage, TelegramIncomingUpdate

logger = get_logger(__name__)


def display_name(user: User | None) -> str:
    if user is None:
        return "User"
    return user.first_name or user.username or "User"


def parse_incoming_update(
    update: Update | dict[str, Any],
) -> TelegramIncomingUpdate | None:
    if isinstance(update, dict):
        try:
            update = msgspec.convert(update, type=Update)
        except msgspec.ValidationError as exc:
            logger.info("telegram.update.invalid", error=str(exc))
            return None
    if update.message is not None:
        return _parse_incoming_message(update.message)
    if update.callback_query is not None:
        return _parse_callback_query(update.callback_query)
    return None


def _parse_incoming_message(msg: Message) -> TelegramIncomingMessage | None:
    # service messages, stickers and bots are ignored
    if msg.text is None or msg.from_ is None or msg.from_.is_bot:
        return None
    entities = tuple(entity.type for entity in msg.entities or ())
    return TelegramIncomingMessage(
        chat_id=msg.chat.id,
        message_id=msg.message_id,
        text=msg.text,
        sender_id=msg.from_.id,
        sender_name=display_name(msg.from_),
        chat_type=msg.chat.type,
        chat_title=msg.chat.title,
        entities=entities,
    )


def _parse_callback_query(query: CallbackQuery) -> TelegramCallbackQuery | None:
    msg = query.message
    if msg is None or query.data is None:
        return None
    return TelegramCallbackQuery(
        callback_query_id=query.id,
        chat_id=msg.chat.id,
        message_id=msg.message_id,
        data=query.data,
        sender_id=query.from_.id,
        sender_name=display_name(query.from_),
        chat_type=msg.chat.type,
        chat_title=msg.chat.title,
    )

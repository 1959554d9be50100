from __future__ import annotations

from dataclasses import dataclass, field

from ..ids import is_group_chat_type


@dataclass(frozen=True, slots=True)
class TelegramIncomingMessage:
    chat_id: int
    message_id: int
    text: str
    sender_id: int
    sender_name: str
    chat_type: str
    chat_title: str | None = None
    entities: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_group(self) -> bool:
        return is_group_chat_type(self.chat_type)


@dataclass(frozen=True, slots=True)
class TelegramCallbackQuery:
    callback_query_id: str
    chat_id: int
    message_id: int
    data: str
    sender_id: int
    sender_name: str
    chat_type: str
    chat_title: str | None = None

    @property
    def is_group(self) -> bool:
        return is_group_chat_type(self.chat_type)


TelegramIncomingUpdate = TelegramIncomingMessage | TelegramCallbackQuery

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import msgspec

from .ids import identity
from .logging import get_logger
from .state_store import JsonStateStore

logger = get_logger(__name__)

CONFIG_FILENAME = "config.json"
STATS_FILENAME = "stats.json"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ChatConfig(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    board_id: str | None = None
    default_list_id: str | None = None
    updated_at: str | None = None


class _ConfigState(msgspec.Struct, forbid_unknown_fields=False):
    chats: dict[str, ChatConfig] = msgspec.field(default_factory=dict)


class _UserStats(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    cards_created: int = 0
    first_use: str | None = None
    last_use: str | None = None


class _ChatStats(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    total_cards: int = 0
    users: dict[str, _UserStats] = msgspec.field(default_factory=dict)
    created_at: str | None = None


class _StatsState(msgspec.Struct, forbid_unknown_fields=False):
    chats: dict[str, _ChatStats] = msgspec.field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UserCount:
    user_id: str
    cards_created: int


@dataclass(frozen=True, slots=True)
class ChatStats:
    total_cards: int
    active_users: int
    top_users: tuple[UserCount, ...]


@dataclass(frozen=True, slots=True)
class GlobalStats:
    total_cards: int
    total_users: int
    active_chats: int


@dataclass(frozen=True, slots=True)
class Activity:
    chat_id: str
    user_id: str
    last_use: str
    cards_created: int


class ChatConfigStore(JsonStateStore[_ConfigState]):
    def __init__(self, path: Path) -> None:
        super().__init__(
            path,
            state_type=_ConfigState,
            state_factory=_ConfigState,
            log_prefix="chat_config",
            logger=logger,
        )

    async def get(self, chat_id: int | str) -> ChatConfig:
        async with self._lock:
            self._reload_locked_if_needed()
            config = self._state.chats.get(identity(chat_id))
            return msgspec.structs.replace(config) if config else ChatConfig()

    async def set_board(self, chat_id: int | str, board_id: str) -> ChatConfig:
        # a new board invalidates the default list, which belongs to the old one
        return await self._update(chat_id, board_id=board_id, default_list_id=None)

    async def set_default_list(self, chat_id: int | str, list_id: str) -> ChatConfig:
        return await self._update(chat_id, board_id=None, default_list_id=list_id)

    async def _update(
        self,
        chat_id: int | str,
        *,
        board_id: str | None,
        default_list_id: str | None,
    ) -> ChatConfig:
        key = identity(chat_id)
        async with self._lock:
            self._reload_locked_if_needed()
            current = self._state.chats.get(key) or ChatConfig()
            config = ChatConfig(
                board_id=board_id if board_id is not None else current.board_id,
                default_list_id=default_list_id,
                updated_at=_now(),
            )
            self._state.chats[key] = config
            self._save_locked()
        logger.info(
            "chat_config.updated",
            chat_id=key,
            board_id=config.board_id,
            default_list_id=config.default_list_id,
        )
        return msgspec.structs.replace(config)

    async def clear(self, chat_id: int | str) -> bool:
        key = identity(chat_id)
        async with self._lock:
            self._reload_locked_if_needed()
            if self._state.chats.pop(key, None) is None:
                return False
            self._save_locked()
        logger.info("chat_config.cleared", chat_id=key)
        return True


class StatsStore(JsonStateStore[_StatsState]):
    def __init__(self, path: Path) -> None:
        super().__init__(
            path,
            state_type=_StatsState,
            state_factory=_StatsState,
            log_prefix="stats",
            logger=logger,
        )

    async def increment(self, chat_id: int | str, user_id: int | str) -> int:
        """Count one created card; returns the chat's new total."""
        chat_key = identity(chat_id)
        user_key = identity(user_id)
        now = _now()
        async with self._lock:
            self._reload_locked_if_needed()
            chat = self._state.chats.get(chat_key)
            if chat is None:
                chat = _ChatStats(created_at=now)
                self._state.chats[chat_key] = chat
            chat.total_cards += 1
            user = chat.users.get(user_key)
            if user is None:
                user = _UserStats(first_use=now)
                chat.users[user_key] = user
            user.cards_created += 1
            user.last_use = now
            self._save_locked()
            return chat.total_cards

    async def chat_stats(self, chat_id: int | str) -> ChatStats:
        async with self._lock:
            self._reload_locked_if_needed()
            chat = self._state.chats.get(identity(chat_id)) or _ChatStats()
            ranked = sorted(
                chat.users.items(),
                key=lambda item: item[1].cards_created,
                reverse=True,
            )
            return ChatStats(
                total_cards=chat.total_cards,
                active_users=len(chat.users),
                top_users=tuple(
                    UserCount(user_id=user_id, cards_created=data.cards_created)
                    for user_id, data in ranked[:5]
                ),
            )

    async def global_stats(self) -> GlobalStats:
        async with self._lock:
            self._reload_locked_if_needed()
            users: set[str] = set()
            total = 0
            for chat in self._state.chats.values():
                total += chat.total_cards
                users.update(chat.users)
            return GlobalStats(
                total_cards=total,
                total_users=len(users),
                active_chats=len(self._state.chats),
            )

    async def recent_activity(self, limit: int = 10) -> list[Activity]:
        async with self._lock:
            self._reload_locked_if_needed()
            activities = [
                Activity(
                    chat_id=chat_id,
                    user_id=user_id,
                    last_use=data.last_use,
                    cards_created=data.cards_created,
                )
                for chat_id, chat in self._state.chats.items()
                for user_id, data in chat.users.items()
                if data.last_use
            ]
        # ISO-8601 UTC timestamps sort lexicographically
        activities.sort(key=lambda item: item.last_use, reverse=True)
        return activities[:limit]

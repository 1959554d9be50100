from __future__ import annotations

GROUP_CHAT_TYPES = frozenset({"group", "supergroup"})


def identity(value: int | str) -> str:
    """Normalize a Telegram user or chat id to its string form."""
    text = str(value).strip()
    if not text:
        raise ValueError("empty identity")
    return text


def is_group_chat_type(chat_type: str | None) -> bool:
    return chat_type in GROUP_CHAT_TYPES


def session_key(*, chat_id: int | str, sender_id: int | str, is_group: bool) -> str:
    # groups share one dialog per chat, private chats are keyed by the user
    if is_group:
        return f"group_{identity(chat_id)}"
    return identity(sender_id)

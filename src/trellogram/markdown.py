from __future__ import annotations

import re

# characters that break Telegram's legacy Markdown parse mode
_LEGACY_SPECIAL_RE = re.compile(r"([*_`\[])")
_CARD_PREFIX_RE = re.compile(r"^\s*(?:💡|📝)\s*")

IDEA_PREFIX = "💡"
TASK_PREFIX = "📝"


def safe_markdown(text: str | None) -> str:
    if not text:
        return ""
    return _LEGACY_SPECIAL_RE.sub(r"\\\1", text)


def escape_url(url: str) -> str:
    return url.replace("_", "\\_")


def strip_card_emoji(name: str) -> str:
    return _CARD_PREFIX_RE.sub("", name)


def truncate(text: str, limit: int, *, suffix: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + suffix

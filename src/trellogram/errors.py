from __future__ import annotations

from .telegram.client import (
    TelegramApiError,
    TelegramNetworkError,
    TelegramRetryAfter,
)
from .trello import TrelloAuthError, TrelloError, TrelloNotFoundError

FAILURE_MARK = "❌"

GENERIC_ERROR = "An error occurred. Please try again."

_TELEGRAM_STATUS_TEXT = {
    400: "Invalid request. Please check your input.",
    401: "Authentication failed. Please check credentials.",
    403: "Access forbidden. Bot may be blocked or removed from chat.",
    429: "Too many requests. Please wait a moment.",
}


def describe_error(exc: BaseException) -> str:
    """Short user-facing text for an exception raised while handling an update."""
    if isinstance(exc, TelegramRetryAfter):
        return _TELEGRAM_STATUS_TEXT[429]
    if isinstance(exc, TelegramApiError):
        description = (exc.description or "").lower()
        if "can't parse entities" in description:
            return "Message formatting error. Please try again."
        text = _TELEGRAM_STATUS_TEXT.get(exc.status or 0)
        if text is not None:
            return text
    if isinstance(exc, (TelegramNetworkError, ConnectionRefusedError)):
        return "Connection failed. Please check internet connection."
    if isinstance(exc, TrelloAuthError):
        message = str(exc).lower()
        if "invalid key" in message:
            return "Invalid Trello API key. Please check configuration."
        return "Trello authorization failed. Please check token."
    if isinstance(exc, TrelloNotFoundError):
        return "The Trello item no longer exists or you do not have access to it."
    if isinstance(exc, TrelloError) and exc.status is None:
        return "Could not reach Trello. Please try again later."
    return GENERIC_ERROR


def failure_text(exc: BaseException) -> str:
    return f"{FAILURE_MARK} {describe_error(exc)}"

import pytest

from trellogram.errors import GENERIC_ERROR, describe_error, failure_text
from trellogram.telegram.client import (
    TelegramApiError,
    TelegramNetworkError,
    TelegramRetryAfter,
)
from trellogram.trello import TrelloAuthError, TrelloError, TrelloNotFoundError


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (TelegramRetryAfter(3), "Too many requests. Please wait a moment."),
        (
            TelegramApiError("bad", status=400, description="Bad Request: can't parse entities"),
            "Message formatting error. Please try again.",
        ),
        (
            TelegramApiError("forbidden", status=403),
            "Access forbidden. Bot may be blocked or removed from chat.",
        ),
        (TelegramNetworkError("down"), "Connection failed. Please check internet connection."),
        (ConnectionRefusedError(), "Connection failed. Please check internet connection."),
        (
            TrelloAuthError("Trello rejected the credentials: invalid key", status=401),
            "Invalid Trello API key. Please check configuration.",
        ),
        (
            TrelloAuthError("Trello rejected the credentials: unauthorized", status=401),
            "Trello authorization failed. Please check token.",
        ),
        (
            TrelloNotFoundError("gone", status=404),
            "The Trello item no longer exists or you do not have access to it.",
        ),
        (TrelloError("offline"), "Could not reach Trello. Please try again later."),
        (TrelloError("server", status=500), GENERIC_ERROR),
        (RuntimeError("boom"), GENERIC_ERROR),
    ],
)
def test_describe_error(exc: BaseException, expected: str) -> None:
    assert describe_error(exc) == expected


def test_failure_text_is_marked() -> None:
    assert failure_text(RuntimeError("x")) == f"❌ {GENERIC_ERROR}"

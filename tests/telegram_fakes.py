from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from trellogram.auth import AuthStore
from trellogram.chat_config import ChatConfigStore, StatsStore
from trellogram.credentials import CredentialResolver, CredentialStore
from trellogram.telegram.bridge import TelegramBridgeConfig
from trellogram.telegram.sessions import SessionStore
from trellogram.telegram.types import TelegramCallbackQuery, TelegramIncomingMessage
from trellogram.trello import (
    Board,
    Card,
    CardList,
    CredentialCheck,
    Member,
    TrelloNotFoundError,
)

BOT_USERNAME = "trello_helper_bot"
ADMIN_ID = 1
USER_ID = 42
GROUP_ID = -100500


@dataclass
class SentMessage:
    chat_id: int | str
    text: str
    parse_mode: str | None = None
    reply_markup: dict[str, Any] | None = None
    disable_web_page_preview: bool | None = None


@dataclass
class EditedMessage:
    chat_id: int | str
    message_id: int
    text: str
    parse_mode: str | None = None


@dataclass
class AnsweredQuery:
    callback_query_id: str
    text: str | None
    show_alert: bool


class FakeBot:
    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self.edits: list[EditedMessage] = []
        self.answers: list[AnsweredQuery] = []
        self.unreachable: set[int | str] = set()
        self.members: dict[tuple[str, str], str] = {}
        self._next_id = 100

    @property
    def texts(self) -> list[str]:
        return [item.text for item in self.sent]

    def texts_for(self, chat_id: int | str) -> list[str]:
        return [item.text for item in self.sent if str(item.chat_id) == str(chat_id)]

    async def close(self) -> None:
        return None

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict]:
        return []

    async def get_me(self) -> dict:
        return {"id": 999, "is_bot": True, "username": BOT_USERNAME}

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None:
        self.sent.append(
            SentMessage(chat_id, text, parse_mode, reply_markup, disable_web_page_preview)
        )
        if chat_id in self.unreachable:
            return None
        self._next_id += 1
        return {"message_id": self._next_id}

    async def edit_message_text(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None:
        self.edits.append(EditedMessage(chat_id, message_id, text, parse_mode))
        return {"message_id": message_id}

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        *,
        show_alert: bool = False,
    ) -> bool:
        self.answers.append(AnsweredQuery(callback_query_id, text, show_alert))
        return True

    async def get_chat_member(self, chat_id: int | str, user_id: int | str) -> dict | None:
        status = self.members.get((str(chat_id), str(user_id)))
        if status is None:
            return None
        return {"status": status, "user": {"id": int(user_id)}}


@dataclass
class FakeTrello:
    """In-memory stand-in for one Trello account."""

    boards: list[Board] = field(
        default_factory=lambda: [Board(id="b1", name="Product"), Board(id="b2", name="Home")]
    )
    lists: dict[str, list[CardList]] = field(
        default_factory=lambda: {
            "b1": [
                CardList(id="l1", name="Inbox", idBoard="b1"),
                CardList(id="l2", name="Backlog", idBoard="b1"),
            ],
            "b2": [CardList(id="l3", name="Chores", idBoard="b2")],
        }
    )
    cards: dict[str, list[Card]] = field(default_factory=dict)
    member: Member = field(
        default_factory=lambda: Member(id="m1", username="ada", fullName="Ada Lovelace")
    )
    created: list[tuple[str, str, str]] = field(default_factory=list)
    archived: list[str] = field(default_factory=list)
    searches: list[tuple[str, str]] = field(default_factory=list)

    async def me(self) -> Member:
        return self.member

    async def list_boards(self) -> list[Board]:
        return list(self.boards)

    async def list_lists(self, board_id: str) -> list[CardList]:
        return list(self.lists.get(board_id, []))

    async def list_cards(self, list_id: str, *, include_completed: bool = False) -> list[Card]:
        return [
            card
            for card in self.cards.get(list_id, [])
            if not card.closed and (include_completed or not card.dueComplete)
        ]

    async def get_card(self, card_id: str) -> Card:
        for cards in self.cards.values():
            for card in cards:
                if card.id == card_id:
                    return card
        raise TrelloNotFoundError(f"Trello resource not found: /cards/{card_id}", status=404)

    async def create_card(self, list_id: str, name: str, desc: str = "") -> Card:
        self.created.append((list_id, name, desc))
        card = Card(
            id=f"c{len(self.created)}",
            name=name,
            desc=desc,
            url=f"https://trello.com/c/c{len(self.created)}",
            idList=list_id,
        )
        self.cards.setdefault(list_id, []).append(card)
        return card

    async def archive_card(self, card_id: str) -> Card:
        card = await self.get_card(card_id)
        card.closed = True
        self.archived.append(card_id)
        return card

    async def search_cards(self, board_id: str, query: str) -> list[Card]:
        self.searches.append((board_id, query))
        return [
            card
            for cards in self.cards.values()
            for card in cards
            if query.lower() in card.name.lower()
        ]


class FakeValidator:
    """Accepts exactly the pairs it was given."""

    def __init__(self, valid: dict[tuple[str, str], CredentialCheck] | None = None) -> None:
        self.valid = dict(valid or {})
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, api_key: str, token: str) -> CredentialCheck:
        self.calls.append((api_key, token))
        check = self.valid.get((api_key, token))
        if check is None:
            return CredentialCheck(valid=False, error="invalid key")
        return check


class TrelloFactory:
    """Hands out one FakeTrello per credential pair."""

    def __init__(self, default: FakeTrello | None = None) -> None:
        self.default = default or FakeTrello()
        self.accounts: dict[tuple[str, str], FakeTrello] = {}
        self.made: list[tuple[str, str]] = []

    def __call__(self, api_key: str, token: str) -> FakeTrello:
        self.made.append((api_key, token))
        return self.accounts.get((api_key, token), self.default)


def make_cfg(
    tmp_path: Path,
    *,
    bot: FakeBot | None = None,
    trello: FakeTrello | None = None,
    validator: FakeValidator | None = None,
    supervisor: Any = None,
    default_board_id: str | None = None,
) -> TelegramBridgeConfig:
    chat_config = ChatConfigStore(tmp_path / "config.json")
    factory = TrelloFactory(trello)
    credentials = CredentialResolver(
        CredentialStore(tmp_path / "credentials.json"),
        default_api_key="default-key",
        default_token="default-token",
        chat_config=chat_config,
        validator=validator or FakeValidator(),
        client_factory=factory,
    )
    return TelegramBridgeConfig(
        bot=bot or FakeBot(),
        bot_username=BOT_USERNAME,
        auth=AuthStore(tmp_path / "authorized.json", [ADMIN_ID]),
        credentials=credentials,
        chat_config=chat_config,
        stats=StatsStore(tmp_path / "stats.json"),
        sessions=SessionStore(),
        supervisor=supervisor,
        default_board_id=default_board_id,
    )


def private_message(
    text: str,
    *,
    sender_id: int = USER_ID,
    sender_name: str = "Sam",
    message_id: int = 1,
) -> TelegramIncomingMessage:
    return TelegramIncomingMessage(
        chat_id=sender_id,
        message_id=message_id,
        text=text,
        sender_id=sender_id,
        sender_name=sender_name,
        chat_type="private",
    )


def group_message(
    text: str,
    *,
    sender_id: int = USER_ID,
    sender_name: str = "Sam",
    chat_id: int = GROUP_ID,
) -> TelegramIncomingMessage:
    return TelegramIncomingMessage(
        chat_id=chat_id,
        message_id=1,
        text=text,
        sender_id=sender_id,
        sender_name=sender_name,
        chat_type="supergroup",
        chat_title="Team",
    )


def callback(
    data: str,
    *,
    chat_id: int = USER_ID,
    sender_id: int = USER_ID,
    chat_type: str = "private",
    message_id: int = 55,
) -> TelegramCallbackQuery:
    return TelegramCallbackQuery(
        callback_query_id="cb-1",
        chat_id=chat_id,
        message_id=message_id,
        data=data,
        sender_id=sender_id,
        sender_name="Sam",
        chat_type=chat_type,
        chat_title="Team" if chat_type != "private" else None,
    )

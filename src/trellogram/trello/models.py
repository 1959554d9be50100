from __future__ import annotations

import msgspec

__all__ = [
    "Board",
    "Card",
    "CardList",
    "Member",
]


class Board(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    name: str
    closed: bool = False
    url: str | None = None


class CardList(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    name: str
    closed: bool = False
    idBoard: str | None = None


class Card(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    name: str
    desc: str = ""
    url: str | None = None
    closed: bool = False
    dueComplete: bool = False
    idList: str | None = None
    dateLastActivity: str | None = None


class Member(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    username: str | None = None
    fullName: str | None = None
    email: str | None = None

    @property
    def label(self) -> str:
        return self.fullName or self.username or "Custom Workspace"

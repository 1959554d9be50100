from __future__ import annotations

from .client import (
    CredentialCheck,
    TrelloAuthError,
    TrelloClient,
    TrelloError,
    TrelloNotFoundError,
    validate_credential,
)
from .models import Board, Card, CardList, Member

__all__ = [
    "Board",
    "Card",
    "CardList",
    "CredentialCheck",
    "Member",
    "TrelloAuthError",
    "TrelloClient",
    "TrelloError",
    "TrelloNotFoundError",
    "validate_credential",
]

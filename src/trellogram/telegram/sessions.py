from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Literal

from ..logging import get_logger

logger = get_logger(__name__)

SessionStep = Literal["waiting_for_idea", "waiting_for_list", "waiting_for_credentials"]


class SessionKind(enum.Enum):
    IDEA_CAPTURE = "idea_capture"
    WORKSPACE_SETUP = "workspace_setup"


@dataclass(slots=True)
class ConversationSession:
    key: str
    kind: SessionKind
    step: SessionStep
    owner_chat_id: int
    payload: dict[str, Any] = field(default_factory=dict)


class SessionStore:
    """In-memory, single-slot dialog state per session key."""

    def __init__(self) -> None:
        self._sessions: dict[str, ConversationSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def start(
        self,
        key: str,
        kind: SessionKind,
        *,
        step: SessionStep,
        owner_chat_id: int,
        payload: dict[str, Any] | None = None,
    ) -> ConversationSession:
        previous = self._sessions.get(key)
        if previous is not None:
            logger.info(
                "sessions.replaced",
                key=key,
                previous_kind=previous.kind.value,
                previous_step=previous.step,
                kind=kind.value,
            )
        session = ConversationSession(
            key=key,
            kind=kind,
            step=step,
            owner_chat_id=owner_chat_id,
            payload=dict(payload or {}),
        )
        self._sessions[key] = session
        return session

    def get(self, key: str) -> ConversationSession | None:
        return self._sessions.get(key)

    def delete(self, key: str) -> bool:
        return self._sessions.pop(key, None) is not None

    def clear(self) -> None:
        self._sessions.clear()

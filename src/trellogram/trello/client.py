from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx
import msgspec

from ..logging import get_logger
from .models import Board, Card, CardList, Member

logger = get_logger(__name__)

TRELLO_API_BASE = "https://api.trello.com/1"
BOARD_CACHE_TTL_S = 5 * 60
SEARCH_LIMIT = 10


class TrelloError(Exception):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class TrelloAuthError(TrelloError):
    pass


class TrelloNotFoundError(TrelloError):
    pass


@dataclass(frozen=True, slots=True)
class CredentialCheck:
    valid: bool
    username: str | None = None
    full_name: str | None = None
    email: str | None = None
    error: str | None = None

    @property
    def account_label(self) -> str | None:
        return self.full_name or self.username


class TrelloClient:
    """Thin async wrapper over the Trello REST API for one credential pair."""

    def __init__(
        self,
        api_key: str,
        token: str,
        *,
        timeout_s: float = 30,
        client: httpx.AsyncClient | None = None,
        base_url: str = TRELLO_API_BASE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not api_key or not token:
            raise ValueError("Trello api key and token are required")
        self._auth = {"key": api_key, "token": token}
        self._base = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None
        self._clock = clock
        self._boards: list[Board] | None = None
        self._boards_at: float | None = None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        query = {**(params or {}), **self._auth}
        logger.debug("trello.request", method=method, path=path)
        try:
            resp = await self._client.request(method, f"{self._base}{path}", params=query)
        except httpx.HTTPError as exc:
            logger.error(
                "trello.network_error",
                method=method,
                path=path,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            raise TrelloError(f"Trello request failed: {exc}") from exc

        if resp.status_code == 401:
            raise TrelloAuthError(
                f"Trello rejected the credentials: {resp.text.strip() or 'unauthorized'}",
                status=401,
            )
        if resp.status_code == 404:
            raise TrelloNotFoundError(
                f"Trello resource not found: {path}", status=404
            )
        if resp.is_error:
            logger.error(
                "trello.http_error",
                method=method,
                path=path,
                status=resp.status_code,
                body=resp.text,
            )
            raise TrelloError(
                f"Trello request failed with status {resp.status_code}",
                status=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            logger.error(
                "trello.bad_response",
                method=method,
                path=path,
                status=resp.status_code,
                body=resp.text,
            )
            raise TrelloError("Trello returned an invalid response") from exc

    async def _get(self, path: str, type_: Any, **params: Any) -> Any:
        payload = await self._request("GET", path, params)
        try:
            return msgspec.convert(payload, type=type_)
        except msgspec.ValidationError as exc:
            raise TrelloError(f"Unexpected Trello payload for {path}: {exc}") from exc

    async def me(self) -> Member:
        return await self._get("/members/me", Member)

    async def list_boards(self) -> list[Board]:
        now = self._clock()
        if (
            self._boards is not None
            and self._boards_at is not None
            and now - self._boards_at < BOARD_CACHE_TTL_S
        ):
            return list(self._boards)
        boards = await self._get("/members/me/boards", list[Board], filter="open")
        self._boards = [board for board in boards if not board.closed]
        self._boards_at = now
        return list(self._boards)

    async def list_lists(self, board_id: str) -> list[CardList]:
        lists = await self._get(f"/boards/{board_id}/lists", list[CardList], filter="open")
        return [item for item in lists if not item.closed]

    async def list_cards(
        self, list_id: str, *, include_completed: bool = False
    ) -> list[Card]:
        cards = await self._get(f"/lists/{list_id}/cards", list[Card])
        return [
            card
            for card in cards
            if not card.closed and (include_completed or not card.dueComplete)
        ]

    async def get_card(self, card_id: str) -> Card:
        return await self._get(f"/cards/{card_id}", Card)

    async def create_card(self, list_id: str, name: str, desc: str = "") -> Card:
        payload = await self._request(
            "POST",
            "/cards",
            {"idList": list_id, "name": name, "desc": desc, "pos": "top"},
        )
        card = msgspec.convert(payload, type=Card)
        logger.info("trello.card.created", card_id=card.id, list_id=list_id)
        return card

    async def archive_card(self, card_id: str) -> Card:
        payload = await self._request("PUT", f"/cards/{card_id}", {"closed": "true"})
        logger.info("trello.card.archived", card_id=card_id)
        return msgspec.convert(payload, type=Card)

    async def search_cards(self, board_id: str, query: str) -> list[Card]:
        payload = await self._request(
            "GET",
            "/search",
            {
                "query": query,
                "idBoards": board_id,
                "modelTypes": "cards",
                "card_fields": "name,desc,url,dateLastActivity",
                "cards_limit": SEARCH_LIMIT,
            },
        )
        cards = payload.get("cards", []) if isinstance(payload, dict) else []
        return msgspec.convert(cards, type=list[Card])

    async def validate_credential(self, api_key: str, token: str) -> CredentialCheck:
        return await validate_credential(
            api_key, token, client=self._client, base_url=self._base
        )


async def validate_credential(
    api_key: str,
    token: str,
    *,
    client: httpx.AsyncClient | None = None,
    base_url: str = TRELLO_API_BASE,
) -> CredentialCheck:
    """Check a key/token pair with a live ``members/me`` round trip."""
    if not api_key or not token:
        return CredentialCheck(valid=False, error="API key and token are required")
    trello = TrelloClient(api_key, token, client=client, base_url=base_url)
    try:
        member = await trello.me()
    except TrelloError as exc:
        logger.info("trello.credential.invalid", error=str(exc), status=exc.status)
        return CredentialCheck(valid=False, error=str(exc))
    finally:
        await trello.close()
    return CredentialCheck(
        valid=True,
        username=member.username,
        full_name=member.fullName,
        email=member.email,
    )

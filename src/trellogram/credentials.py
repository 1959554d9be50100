from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import httpx
import msgspec

from .chat_config import ChatConfigStore
from .ids import identity
from .logging import get_logger
from .state_store import JsonStateStore
from .trello import CredentialCheck, TrelloClient, validate_credential

logger = get_logger(__name__)

CREDENTIALS_FILENAME = "credentials.json"
DEFAULT_WORKSPACE = "Default Workspace"
CUSTOM_WORKSPACE = "Custom Workspace"

Validator = Callable[[str, str], Awaitable[CredentialCheck]]
ClientFactory = Callable[[str, str], TrelloClient]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class CredentialRecord(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    api_key: str
    token: str
    workspace: str = CUSTOM_WORKSPACE
    created_at: str | None = None
    last_used_at: str | None = None


class _CredentialState(msgspec.Struct, forbid_unknown_fields=False):
    chats: dict[str, CredentialRecord] = msgspec.field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResolvedCredential:
    api_key: str
    token: str
    workspace: str
    is_custom: bool = False

    @property
    def pair(self) -> tuple[str, str]:
        return (self.api_key, self.token)


@dataclass(frozen=True, slots=True)
class SetCredentialResult:
    ok: bool
    check: CredentialCheck
    workspace: str | None = None

    @property
    def error(self) -> str | None:
        return None if self.ok else (self.check.error or "invalid credentials")


@dataclass(frozen=True, slots=True)
class CredentialSummary:
    chat_id: str
    workspace: str
    created_at: str | None
    last_used_at: str | None


class CredentialStore(JsonStateStore[_CredentialState]):
    def __init__(self, path: Path) -> None:
        super().__init__(
            path,
            state_type=_CredentialState,
            state_factory=_CredentialState,
            log_prefix="credentials",
            logger=logger,
        )

    async def get(self, chat_id: str, *, touch: bool = False) -> CredentialRecord | None:
        async with self._lock:
            self._reload_locked_if_needed()
            record = self._state.chats.get(chat_id)
            if record is None:
                return None
            if touch:
                record.last_used_at = _now()
                self._save_locked()
            return msgspec.structs.replace(record)

    async def put(self, chat_id: str, record: CredentialRecord) -> None:
        async with self._lock:
            self._reload_locked_if_needed()
            self._state.chats[chat_id] = record
            self._save_locked()

    async def delete(self, chat_id: str) -> bool:
        async with self._lock:
            self._reload_locked_if_needed()
            if self._state.chats.pop(chat_id, None) is None:
                return False
            self._save_locked()
            return True

    async def summaries(self) -> list[CredentialSummary]:
        async with self._lock:
            self._reload_locked_if_needed()
            return [
                CredentialSummary(
                    chat_id=chat_id,
                    workspace=record.workspace,
                    created_at=record.created_at,
                    last_used_at=record.last_used_at,
                )
                for chat_id, record in self._state.chats.items()
            ]


def _normalize_pair(api_key: str, token: str) -> tuple[str, str]:
    return (api_key.strip(), token.strip())


class CredentialResolver:
    """Maps a chat to the Trello credential pair it should use.

    Chats without a stored record use the process-wide default pair. Trello
    clients are cached per normalized ``(api_key, token)`` pair and share one
    HTTP connection pool; the cache is dropped whenever any record changes.
    """

    def __init__(
        self,
        store: CredentialStore,
        *,
        default_api_key: str,
        default_token: str,
        chat_config: ChatConfigStore,
        http_client: httpx.AsyncClient | None = None,
        validator: Validator | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._store = store
        self._default = ResolvedCredential(
            api_key=default_api_key,
            token=default_token,
            workspace=DEFAULT_WORKSPACE,
        )
        self._chat_config = chat_config
        self._http = http_client or httpx.AsyncClient(timeout=30)
        self._owns_http = http_client is None
        self._validator = validator or self._validate
        self._client_factory = client_factory or self._make_client
        self._clients: dict[tuple[str, str], TrelloClient] = {}

    @property
    def default(self) -> ResolvedCredential:
        return self._default

    @property
    def cached_pairs(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._clients)

    async def _validate(self, api_key: str, token: str) -> CredentialCheck:
        return await validate_credential(api_key, token, client=self._http)

    def _make_client(self, api_key: str, token: str) -> TrelloClient:
        return TrelloClient(api_key, token, client=self._http)

    async def resolve(self, chat_id: int | str) -> ResolvedCredential:
        record = await self._store.get(identity(chat_id), touch=True)
        if record is None:
            return self._default
        return ResolvedCredential(
            api_key=record.api_key,
            token=record.token,
            workspace=record.workspace,
            is_custom=True,
        )

    async def client_for(self, chat_id: int | str) -> TrelloClient:
        resolved = await self.resolve(chat_id)
        key = _normalize_pair(resolved.api_key, resolved.token)
        client = self._clients.get(key)
        if client is None:
            client = self._client_factory(*key)
            self._clients[key] = client
        return client

    async def has_custom(self, chat_id: int | str) -> bool:
        return await self._store.get(identity(chat_id)) is not None

    async def set_credential(
        self,
        chat_id: int | str,
        api_key: str,
        token: str,
        workspace: str | None = None,
    ) -> SetCredentialResult:
        """Validate and store a chat's credential pair.

        Nothing is written when validation fails, so a previous record for the
        chat stays in place.
        """
        key = identity(chat_id)
        api_key, token = _normalize_pair(api_key, token)
        check = await self._validator(api_key, token)
        if not check.valid:
            logger.info("credentials.rejected", chat_id=key, error=check.error)
            return SetCredentialResult(ok=False, check=check)

        label = workspace or check.account_label or CUSTOM_WORKSPACE
        now = _now()
        await self._store.put(
            key,
            CredentialRecord(
                api_key=api_key,
                token=token,
                workspace=label,
                created_at=now,
                last_used_at=now,
            ),
        )
        self.invalidate()
        # board and list ids belong to the previous account
        await self._chat_config.clear(key)
        logger.info("credentials.set", chat_id=key, workspace=label)
        return SetCredentialResult(ok=True, check=check, workspace=label)

    async def remove_credential(self, chat_id: int | str) -> bool:
        key = identity(chat_id)
        if not await self._store.delete(key):
            return False
        self.invalidate()
        await self._chat_config.clear(key)
        logger.info("credentials.removed", chat_id=key)
        return True

    def invalidate(self) -> None:
        self._clients.clear()

    async def close(self) -> None:
        self._clients.clear()
        if self._owns_http:
            await self._http.aclose()

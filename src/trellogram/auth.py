from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

import msgspec

from .ids import identity
from .logging import get_logger
from .state_store import JsonStateStore

logger = get_logger(__name__)

AUTH_FILENAME = "authorized.json"

RequestKind = Literal["user", "group"]
RequestStatus = Literal["pending", "approved", "rejected"]


class AccessRequest(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    user_id: str
    user_name: str
    chat_id: str
    chat_title: str
    kind: RequestKind = msgspec.field(name="type")
    timestamp: str = ""
    status: RequestStatus = "pending"


class _AuthState(msgspec.Struct, rename="camel", forbid_unknown_fields=False):
    users: list[str] = msgspec.field(default_factory=list)
    groups: list[str] = msgspec.field(default_factory=list)
    pending_requests: list[AccessRequest] = msgspec.field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AuthorizedList:
    admins: tuple[str, ...]
    users: tuple[str, ...]
    groups: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AuthStats:
    total_users: int
    total_groups: int
    pending_requests: int
    total_requests: int


def resolve_auth_path(data_dir: Path) -> Path:
    return data_dir / AUTH_FILENAME


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class AuthStore(JsonStateStore[_AuthState]):
    """Authorization gate backed by ``authorized.json``.

    Admin ids come from configuration and are always authorized; they are
    re-added to the user list on every load and can never be unauthorized.
    """

    def __init__(self, path: Path, admin_ids: Iterable[int | str] = ()) -> None:
        super().__init__(
            path,
            state_type=_AuthState,
            state_factory=_AuthState,
            log_prefix="auth",
            logger=logger,
        )
        self._admins: tuple[str, ...] = tuple(identity(item) for item in admin_ids)
        self._state.users = list(self._admins)

    @property
    def admins(self) -> tuple[str, ...]:
        return self._admins

    def is_admin(self, user_id: int | str) -> bool:
        return identity(user_id) in self._admins

    def _reload_locked(self) -> None:
        self._reload_locked_if_needed()
        for admin_id in self._admins:
            if admin_id not in self._state.users:
                self._state.users.append(admin_id)

    async def is_authorized(
        self,
        user_id: int | str,
        chat_id: int | str,
        *,
        is_group: bool,
    ) -> bool:
        if self.is_admin(user_id):
            return True
        if is_group:
            return await self.is_authorized_group(chat_id)
        return await self.is_authorized_user(user_id)

    async def is_authorized_user(self, user_id: int | str) -> bool:
        async with self._lock:
            self._reload_locked()
            return identity(user_id) in self._state.users

    async def is_authorized_group(self, group_id: int | str) -> bool:
        async with self._lock:
            self._reload_locked()
            return identity(group_id) in self._state.groups

    async def authorize_user(self, user_id: int | str) -> bool:
        return await self._add("users", identity(user_id), kind="user")

    async def authorize_group(self, group_id: int | str) -> bool:
        return await self._add("groups", identity(group_id), kind="group")

    async def unauthorize_user(self, user_id: int | str) -> bool:
        target = identity(user_id)
        if self.is_admin(target):
            logger.info("auth.unauthorize.admin_refused", user_id=target)
            return False
        return await self._remove("users", target, kind="user")

    async def unauthorize_group(self, group_id: int | str) -> bool:
        return await self._remove("groups", identity(group_id), kind="group")

    async def _add(self, field: str, target: str, *, kind: RequestKind) -> bool:
        async with self._lock:
            self._reload_locked()
            entries: list[str] = getattr(self._state, field)
            if target in entries:
                return False
            entries.append(target)
            self._save_locked()
        logger.info("auth.authorized", kind=kind, target=target)
        return True

    async def _remove(self, field: str, target: str, *, kind: RequestKind) -> bool:
        async with self._lock:
            self._reload_locked()
            entries: list[str] = getattr(self._state, field)
            if target not in entries:
                return False
            entries.remove(target)
            self._save_locked()
        logger.info("auth.unauthorized", kind=kind, target=target)
        return True

    async def request_access(
        self,
        *,
        user_id: int | str,
        user_name: str,
        chat_id: int | str,
        chat_title: str,
        kind: RequestKind,
    ) -> AccessRequest | None:
        request = AccessRequest(
            user_id=identity(user_id),
            user_name=user_name,
            chat_id=identity(chat_id),
            chat_title=chat_title,
            kind=kind,
            timestamp=_now(),
        )
        async with self._lock:
            self._reload_locked()
            for existing in self._state.pending_requests:
                if (
                    existing.status == "pending"
                    and existing.user_id == request.user_id
                    and existing.chat_id == request.chat_id
                ):
                    return None
            self._state.pending_requests.append(request)
            self._save_locked()
        logger.info(
            "auth.request.created",
            user_id=request.user_id,
            chat_id=request.chat_id,
            kind=kind,
        )
        return msgspec.structs.replace(request)

    async def pending_requests(self) -> list[AccessRequest]:
        async with self._lock:
            self._reload_locked()
            return [
                msgspec.structs.replace(req)
                for req in self._state.pending_requests
                if req.status == "pending"
            ]

    async def approve_request(self, index: int) -> AccessRequest | None:
        """Approve the ``index``-th pending request (0-based, in listing order)."""
        return await self._resolve_request(index, "approved")

    async def reject_request(self, index: int) -> AccessRequest | None:
        return await self._resolve_request(index, "rejected")

    async def _resolve_request(
        self, index: int, status: RequestStatus
    ) -> AccessRequest | None:
        async with self._lock:
            self._reload_locked()
            pending = [
                req for req in self._state.pending_requests if req.status == "pending"
            ]
            if index < 0 or index >= len(pending):
                return None
            request = pending[index]
            if status == "approved":
                if request.kind == "group":
                    if request.chat_id not in self._state.groups:
                        self._state.groups.append(request.chat_id)
                elif request.user_id not in self._state.users:
                    self._state.users.append(request.user_id)
            request.status = status
            self._save_locked()
        logger.info(
            "auth.request.resolved",
            status=status,
            user_id=request.user_id,
            chat_id=request.chat_id,
        )
        return msgspec.structs.replace(request)

    async def authorized_list(self) -> AuthorizedList:
        async with self._lock:
            self._reload_locked()
            return AuthorizedList(
                admins=self._admins,
                users=tuple(self._state.users),
                groups=tuple(self._state.groups),
            )

    async def stats(self) -> AuthStats:
        async with self._lock:
            self._reload_locked()
            requests = self._state.pending_requests
            return AuthStats(
                total_users=len(self._state.users),
                total_groups=len(self._state.groups),
                pending_requests=sum(1 for r in requests if r.status == "pending"),
                total_requests=len(requests),
            )

    async def clear_resolved_requests(self) -> int:
        async with self._lock:
            self._reload_locked()
            before = len(self._state.pending_requests)
            self._state.pending_requests = [
                req for req in self._state.pending_requests if req.status == "pending"
            ]
            removed = before - len(self._state.pending_requests)
            if removed:
                self._save_locked()
            return removed

    async def import_authorized(
        self,
        users: Iterable[int | str] = (),
        groups: Iterable[int | str] = (),
    ) -> int:
        """Add users and groups in bulk; returns how many were new."""
        added = 0
        async with self._lock:
            self._reload_locked()
            for target, ids in ((self._state.users, users), (self._state.groups, groups)):
                for value in ids:
                    if identity(value) not in target:
                        target.append(identity(value))
                        added += 1
            if added:
                self._save_locked()
        logger.info("auth.imported", added=added)
        return added

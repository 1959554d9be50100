from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

import anyio
import msgspec

from .logging import get_logger

T = TypeVar("T")

_encoder = msgspec.json.Encoder()


class JsonStateStore(Generic[T]):
    """A single JSON document on disk, decoded into a msgspec type.

    The document is re-read whenever the file changed since the last load, so
    edits made by hand (or by another handler) are picked up before every
    operation. Writes replace the file atomically.
    """

    def __init__(
        self,
        path: Path,
        *,
        state_type: type[T],
        state_factory: Callable[[], T],
        log_prefix: str,
        logger: Any | None = None,
    ) -> None:
        self._path = path
        self._state_type = state_type
        self._state_factory = state_factory
        self._log_prefix = log_prefix
        self._logger = logger or get_logger(__name__)
        self._lock = anyio.Lock()
        self._state: T = state_factory()
        self._loaded_stamp: tuple[int, int] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def _stat_stamp(self) -> tuple[int, int] | None:
        try:
            stat = self._path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size)

    def _reload_locked_if_needed(self) -> None:
        stamp = self._stat_stamp()
        if stamp is None:
            if self._loaded_stamp is not None:
                self._state = self._state_factory()
                self._loaded_stamp = None
            return
        if stamp == self._loaded_stamp:
            return
        self._load_locked()
        self._loaded_stamp = stamp

    def _load_locked(self) -> None:
        try:
            raw = self._path.read_bytes()
        except OSError as exc:
            self._logger.warning(
                f"{self._log_prefix}.load_failed",
                path=str(self._path),
                error=str(exc),
            )
            self._state = self._state_factory()
            return
        try:
            self._state = msgspec.json.decode(raw, type=self._state_type)
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            self._logger.warning(
                f"{self._log_prefix}.invalid",
                path=str(self._path),
                error=str(exc),
            )
            self._state = self._state_factory()

    def _save_locked(self) -> None:
        payload = msgspec.json.format(_encoder.encode(self._state), indent=2)
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(tmp_path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.write(b"\n")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            self._logger.error(
                f"{self._log_prefix}.save_failed",
                path=str(self._path),
                error=str(exc),
            )
            return
        self._loaded_stamp = self._stat_stamp()

    async def export(self) -> Any:
        async with self._lock:
            self._reload_locked_if_needed()
            return msgspec.to_builtins(self._state)

    async def replace(self, data: Any) -> None:
        state = msgspec.convert(data, type=self._state_type)
        async with self._lock:
            self._state = state
            self._save_locked()

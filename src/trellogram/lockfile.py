from __future__ import annotations

import hashlib
import json
import os
import socket
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .logging import get_logger

logger = get_logger(__name__)

LOCK_FILENAME = "trellogram.lock"


@dataclass(frozen=True, slots=True)
class LockInfo:
    instance_id: str | None
    pid: int | None
    started_at: str | None
    hostname: str | None
    token_fingerprint: str | None


class LockError(RuntimeError):
    def __init__(self, *, path: Path, existing: LockInfo | None, state: str) -> None:
        self.path = path
        self.existing = existing
        self.state = state
        super().__init__(_format_lock_message(path, existing, state))


@dataclass(slots=True)
class LockHandle:
    path: Path
    instance_id: str

    def release(self) -> None:
        try:
            existing = read_lock_info(self.path)
            if existing is None or existing.instance_id == self.instance_id:
                self.path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("lock.release_failed", path=str(self.path), error=str(exc))

    def __enter__(self) -> LockHandle:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


def token_fingerprint(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:10]


def lock_path_for(data_dir: Path) -> Path:
    return data_dir / LOCK_FILENAME


def acquire_lock(*, data_dir: Path, token_fingerprint: str | None = None) -> LockHandle:
    """Create the single-instance lock in the data directory.

    Two processes polling the same bot token would keep stealing updates from
    each other, so a second local instance fails here instead.
    """
    lock_path = lock_path_for(data_dir.expanduser().resolve())
    instance_id = uuid.uuid4().hex
    info = LockInfo(
        instance_id=instance_id,
        pid=os.getpid(),
        started_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        hostname=socket.gethostname(),
        token_fingerprint=token_fingerprint,
    )
    try:
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        fd = _create_exclusive(lock_path)
    except OSError as exc:
        raise LockError(path=lock_path, existing=None, state=str(exc)) from exc
    if fd is None:
        existing = read_lock_info(lock_path)
        state = _lock_state(existing)
        if state != "stale":
            raise LockError(path=lock_path, existing=existing, state=state)
        logger.warning(
            "lock.stale_replaced",
            path=str(lock_path),
            pid=existing.pid if existing is not None else None,
        )
        lock_path.unlink(missing_ok=True)
        fd = _create_exclusive(lock_path)
        if fd is None:
            raise LockError(path=lock_path, existing=read_lock_info(lock_path), state="unknown")

    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        json.dump(asdict(info), handle, indent=2, sort_keys=True)
        handle.write("\n")
    logger.debug("lock.acquired", path=str(lock_path), pid=info.pid)
    return LockHandle(path=lock_path, instance_id=instance_id)


def _create_exclusive(path: Path) -> int | None:
    try:
        return os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
    except FileExistsError:
        return None


def _str_or_none(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) and value.strip() else None


def read_lock_info(path: Path) -> LockInfo | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    pid = data.get("pid")
    if isinstance(pid, bool) or not isinstance(pid, int):
        pid = None
    return LockInfo(
        instance_id=_str_or_none(data, "instance_id"),
        pid=pid,
        started_at=_str_or_none(data, "started_at"),
        hostname=_str_or_none(data, "hostname"),
        token_fingerprint=_str_or_none(data, "token_fingerprint"),
    )


def _pid_state(pid: int | None) -> str:
    if pid is None or pid <= 0:
        return "unknown"
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return "not_running"
    except PermissionError:
        return "running"
    except OSError:
        return "unknown"
    return "running"


def _lock_state(existing: LockInfo | None) -> str:
    if existing is None:
        return "unknown"
    # a pid from another host says nothing about this one
    if existing.hostname and existing.hostname != socket.gethostname():
        return "unknown"
    state = _pid_state(existing.pid)
    if state == "not_running":
        return "stale"
    return state


def _format_lock_message(path: Path, existing: LockInfo | None, state: str) -> str:
    if state not in {"stale", "running", "unknown"}:
        return f"failed to create lock: {state}"
    pid = existing.pid if existing is not None else None
    if state == "running":
        header = f"another trellogram instance (pid {pid}) is already running for this data directory."
    elif state == "stale":
        header = f"a previous trellogram instance (pid {pid}) did not clean up its lock."
    else:
        header = "another trellogram instance may already be running for this data directory."
    return f"{header}\nif you are sure that's not the case, delete {path}"

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import msgspec

from .chat_config import CONFIG_FILENAME, STATS_FILENAME, ChatConfigStore, StatsStore
from .logging import get_logger

logger = get_logger(__name__)

BACKUP_VERSION = "1.0.0"
BACKUP_DIRNAME = "backups"


class BackupError(RuntimeError):
    pass


class Backup(msgspec.Struct, forbid_unknown_fields=False):
    timestamp: str
    version: str = BACKUP_VERSION
    config: dict[str, Any] | None = None
    stats: dict[str, Any] | None = None


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")


async def create_backup(data_dir: Path, dest_dir: Path | None = None) -> Path:
    """Write chat configuration and statistics to a timestamped JSON file."""
    config = await ChatConfigStore(data_dir / CONFIG_FILENAME).export()
    stats = await StatsStore(data_dir / STATS_FILENAME).export()
    timestamp = _timestamp()
    backup = Backup(timestamp=timestamp, config=config, stats=stats)
    target_dir = dest_dir or data_dir / BACKUP_DIRNAME
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"backup-{timestamp}.json"
    path.write_bytes(msgspec.json.format(msgspec.json.encode(backup), indent=2))
    logger.info("backup.created", path=str(path))
    return path


async def restore_backup(data_dir: Path, backup_file: Path) -> Backup:
    """Replace configuration and statistics with the contents of a backup.

    Sections missing from the backup are left as they are.
    """
    try:
        backup = msgspec.json.decode(backup_file.read_bytes(), type=Backup)
    except OSError as exc:
        raise BackupError(f"failed to read {backup_file}: {exc}") from exc
    except msgspec.DecodeError as exc:
        raise BackupError(f"invalid backup file {backup_file}: {exc}") from exc
    try:
        if backup.config is not None:
            await ChatConfigStore(data_dir / CONFIG_FILENAME).replace(backup.config)
        if backup.stats is not None:
            await StatsStore(data_dir / STATS_FILENAME).replace(backup.stats)
    except msgspec.ValidationError as exc:
        raise BackupError(f"invalid backup file {backup_file}: {exc}") from exc
    logger.info(
        "backup.restored",
        path=str(backup_file),
        config=backup.config is not None,
        stats=backup.stats is not None,
    )
    return backup

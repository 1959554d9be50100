from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

ENV_BOT_TOKEN = "TELEGRAM_BOT_TOKEN"
ENV_TRELLO_API_KEY = "TRELLO_API_KEY"
ENV_TRELLO_TOKEN = "TRELLO_TOKEN"
ENV_BOT_USERNAME = "BOT_USERNAME"
ENV_ADMIN_USER_IDS = "ADMIN_USER_IDS"
ENV_DEFAULT_BOARD_ID = "DEFAULT_BOARD_ID"
ENV_DATA_DIR = "TRELLOGRAM_DATA_DIR"

LOCAL_CONFIG_NAME = Path("trellogram.toml")
HOME_CONFIG_PATH = Path.home() / ".trellogram" / "trellogram.toml"

REQUIRED_KEYS = ("telegram_token", "trello_api_key", "trello_token", "bot_username")

_ENV_KEYS = {
    ENV_BOT_TOKEN: "telegram_token",
    ENV_TRELLO_API_KEY: "trello_api_key",
    ENV_TRELLO_TOKEN: "trello_token",
    ENV_BOT_USERNAME: "bot_username",
    ENV_DEFAULT_BOARD_ID: "default_board_id",
    ENV_DATA_DIR: "data_dir",
}


class ConfigError(RuntimeError):
    pass


class ConnectionSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    liveness_interval_s: float = Field(default=60.0, gt=0)
    reconnect_delay_s: float = Field(default=5.0, ge=0)
    reconnect_delay_max_s: float = Field(default=60.0, ge=0)
    reconnect_growth: float = Field(default=1.5, ge=1.0)
    max_reconnect_attempts: int = Field(default=10, ge=1)
    polling_retry_delay_s: float = Field(default=5.0, ge=0)
    polling_retry_delay_max_s: float = Field(default=30.0, ge=0)
    max_polling_retries: int = Field(default=5, ge=1)
    final_recovery_delay_s: float = Field(default=60.0, ge=0)
    receiving_check_interval_s: float = Field(default=30.0, gt=0)


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    telegram_token: SecretStr
    trello_api_key: SecretStr
    trello_token: SecretStr
    bot_username: str
    admin_user_ids: list[str] = Field(default_factory=list)
    default_board_id: str | None = None
    data_dir: Path = Path("data")
    poll_timeout_s: int = Field(default=50, ge=0)
    connection: ConnectionSettings = Field(default_factory=ConnectionSettings)

    @field_validator("bot_username")
    @classmethod
    def _strip_at(cls, value: str) -> str:
        value = value.strip().lstrip("@")
        if not value:
            raise ValueError("bot_username must not be empty")
        return value

    @field_validator("admin_user_ids", mode="before")
    @classmethod
    def _normalize_admins(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [str(item).strip() for item in value if str(item).strip()]
        return value


def _config_candidates() -> list[Path]:
    candidates = [Path.cwd() / LOCAL_CONFIG_NAME, HOME_CONFIG_PATH]
    if candidates[0] == candidates[1]:
        return [candidates[0]]
    return candidates


def read_config(cfg_path: Path) -> dict[str, Any]:
    try:
        raw = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigError(f"Missing config file {cfg_path}.") from None
    except OSError as e:
        raise ConfigError(f"Failed to read config file {cfg_path}: {e}") from e
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed TOML in {cfg_path}: {e}") from None


def find_config_path(path: str | Path | None = None) -> Path | None:
    if path:
        return Path(path).expanduser()
    for candidate in _config_candidates():
        if candidate.is_file():
            return candidate
    return None


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_name, key in _ENV_KEYS.items():
        value = environ.get(env_name)
        if value and value.strip():
            overrides[key] = value.strip()
    admins = environ.get(ENV_ADMIN_USER_IDS)
    if admins and admins.strip():
        overrides["admin_user_ids"] = admins
    return overrides


def load_settings(
    path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> tuple[Settings, Path | None]:
    """Load settings from an optional TOML file, then apply environment overrides.

    Environment variables take precedence over the config file, so a deployment
    can keep secrets out of the TOML entirely.
    """
    cfg_path = find_config_path(path)
    data: dict[str, Any] = read_config(cfg_path) if cfg_path is not None else {}
    data.update(_env_overrides(os.environ if environ is None else environ))

    missing = [key for key in REQUIRED_KEYS if not data.get(key)]
    if missing:
        source = str(cfg_path) if cfg_path is not None else "the environment"
        raise ConfigError(
            f"Missing required configuration in {source}: {', '.join(missing)}."
        )
    try:
        settings = Settings.model_validate(data)
    except ValidationError as exc:
        source = str(cfg_path) if cfg_path is not None else "environment"
        raise ConfigError(f"Invalid configuration ({source}): {exc}") from exc
    return settings, cfg_path

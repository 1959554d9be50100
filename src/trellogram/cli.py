from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from pathlib import Path

import anyio
import typer
from rich import box
from rich.console import Console
from rich.table import Table

from . import __version__
from .auth import AuthStore, resolve_auth_path
from .backup import BackupError, create_backup, restore_backup
from .config import ConfigError, Settings, load_settings
from .credentials import CREDENTIALS_FILENAME, CredentialStore
from .lockfile import LockError, LockHandle, acquire_lock, token_fingerprint
from .logging import get_logger, setup_logging
from .telegram.client import TelegramClient, TelegramError
from .telegram.loop import run_bot
from .trello import validate_credential

logger = get_logger(__name__)

_CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to trellogram.toml (defaults to ./trellogram.toml, then ~/.trellogram/).",
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


def _load_settings_or_exit(config: Path | None) -> tuple[Settings, Path | None]:
    try:
        return load_settings(config)
    except ConfigError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _acquire_lock_or_exit(settings: Settings) -> LockHandle:
    fingerprint = token_fingerprint(settings.telegram_token.get_secret_value())
    try:
        return acquire_lock(data_dir=settings.data_dir, token_fingerprint=fingerprint)
    except LockError as exc:
        for line in str(exc).splitlines():
            typer.echo(line, err=True)
        raise typer.Exit(code=1) from exc


def run(
    config: Path | None = _CONFIG_OPTION,
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Human-readable debug logs instead of JSON.",
    ),
) -> None:
    """Start the bot and poll Telegram until interrupted."""
    setup_logging(debug=debug)
    settings, cfg_path = _load_settings_or_exit(config)
    logger.info(
        "trellogram.starting",
        version=__version__,
        config_path=str(cfg_path) if cfg_path else None,
        data_dir=str(settings.data_dir),
    )
    with _acquire_lock_or_exit(settings):
        try:
            anyio.run(run_bot, settings)
        except KeyboardInterrupt:
            logger.info("trellogram.interrupted")
            raise typer.Exit(code=130) from None


@dataclass(frozen=True, slots=True)
class CheckResult:
    name: str
    ok: bool
    detail: str


async def _run_checks(settings: Settings) -> list[CheckResult]:
    results: list[CheckResult] = []
    bot = TelegramClient(settings.telegram_token.get_secret_value(), timeout_s=15)
    try:
        me = await bot.get_me()
    except TelegramError as exc:
        results.append(CheckResult("telegram getMe", False, str(exc)))
    else:
        username = str(me.get("username") or "")
        detail = f"@{username}"
        ok = username.lower() == settings.bot_username.lower()
        if not ok:
            detail += f" (configured as @{settings.bot_username})"
        results.append(CheckResult("telegram getMe", ok, detail))
    finally:
        await bot.close()

    check = await validate_credential(
        settings.trello_api_key.get_secret_value(),
        settings.trello_token.get_secret_value(),
    )
    if check.valid:
        detail = check.account_label or ""
    else:
        detail = check.error or "invalid credentials"
    results.append(CheckResult("trello members/me", check.valid, detail))
    admins = ", ".join(settings.admin_user_ids) or "none configured"
    results.append(CheckResult("admins", bool(settings.admin_user_ids), admins))
    return results


def check(config: Path | None = _CONFIG_OPTION) -> None:
    """Validate configuration and both API credentials."""
    setup_logging(debug=False)
    settings, cfg_path = _load_settings_or_exit(config)
    results = anyio.run(_run_checks, settings)

    console = Console()
    table = Table(show_header=True, header_style="bold", box=box.SIMPLE)
    table.add_column("check")
    table.add_column("status")
    table.add_column("detail")
    table.add_row("config", "[green]ok[/]", str(cfg_path) if cfg_path else "environment only")
    for result in results:
        status = "[green]ok[/]" if result.ok else "[red]fail[/]"
        table.add_row(result.name, status, result.detail)
    console.print(table)
    if not all(result.ok for result in results):
        raise typer.Exit(code=1)


def backup(
    config: Path | None = _CONFIG_OPTION,
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Directory for the backup file (defaults to <data_dir>/backups)."
    ),
) -> None:
    """Back up chat configuration and statistics."""
    setup_logging(debug=False)
    settings, _ = _load_settings_or_exit(config)
    path = anyio.run(create_backup, settings.data_dir, output)
    typer.echo(str(path))


def restore(
    backup_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Backup JSON file."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Restore chat configuration and statistics from a backup."""
    setup_logging(debug=False)
    settings, _ = _load_settings_or_exit(config)
    try:
        restored = anyio.run(restore_backup, settings.data_dir, backup_file)
    except BackupError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"restored backup from {restored.timestamp}")


def import_auth(
    users: list[str] = typer.Option([], "--user", "-u", help="User id to authorize (repeatable)."),
    groups: list[str] = typer.Option([], "--group", "-g", help="Group id to authorize (repeatable)."),
    config: Path | None = _CONFIG_OPTION,
) -> None:
    """Authorize users and groups in bulk."""
    setup_logging(debug=False)
    settings, _ = _load_settings_or_exit(config)
    if not users and not groups:
        typer.echo("error: pass at least one --user or --group", err=True)
        raise typer.Exit(code=1)
    store = AuthStore(resolve_auth_path(settings.data_dir), settings.admin_user_ids)
    added = anyio.run(partial(store.import_authorized, users=users, groups=groups))
    typer.echo(f"authorized {added} new id(s)")


def prune_requests(config: Path | None = _CONFIG_OPTION) -> None:
    """Drop approved and rejected access requests."""
    setup_logging(debug=False)
    settings, _ = _load_settings_or_exit(config)
    store = AuthStore(resolve_auth_path(settings.data_dir), settings.admin_user_ids)
    removed = anyio.run(store.clear_resolved_requests)
    typer.echo(f"removed {removed} resolved request(s)")


def credentials(config: Path | None = _CONFIG_OPTION) -> None:
    """List chats that use their own Trello workspace."""
    setup_logging(debug=False)
    settings, _ = _load_settings_or_exit(config)
    store = CredentialStore(settings.data_dir / CREDENTIALS_FILENAME)
    summaries = anyio.run(store.summaries)
    if not summaries:
        typer.echo("no custom workspaces")
        return
    table = Table(show_header=True, header_style="bold", box=box.SIMPLE)
    for column in ("chat", "workspace", "created", "last used"):
        table.add_column(column)
    for item in summaries:
        table.add_row(item.chat_id, item.workspace, item.created_at or "-", item.last_used_at or "-")
    Console().print(table)


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Capture ideas and tasks from Telegram into Trello."""


def create_app() -> typer.Typer:
    app = typer.Typer(add_completion=False, no_args_is_help=True)
    app.callback()(app_main)
    app.command(name="run")(run)
    app.command(name="check")(check)
    app.command(name="backup")(backup)
    app.command(name="restore")(restore)
    app.command(name="import-auth")(import_auth)
    app.command(name="prune-requests")(prune_requests)
    app.command(name="credentials")(credentials)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()

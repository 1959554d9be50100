from __future__ import annotations

import re

from ...ids import session_key
from ...logging import get_logger
from .. import render
from ..bridge import TelegramBridgeConfig, send_markdown, send_plain
from ..sessions import ConversationSession, SessionKind
from ..types import TelegramIncomingMessage

logger = get_logger(__name__)

_API_KEY_RE = re.compile(r"^API[_\s-]?KEY\s*[:=]?\s*(.+)$", re.IGNORECASE)
_TOKEN_RE = re.compile(r"^TOKEN\s*[:=]?\s*(.+)$", re.IGNORECASE)


def parse_credentials(text: str) -> tuple[str, str] | None:
    """Read an API key and token from a labeled or a bare two-line message."""
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    api_key = token = None
    for line in lines:
        key_match = _API_KEY_RE.match(line)
        if key_match is not None:
            api_key = key_match.group(1).strip()
            continue
        token_match = _TOKEN_RE.match(line)
        if token_match is not None:
            token = token_match.group(1).strip()
    if api_key is None and token is None and len(lines) == 2:
        api_key, token = lines
    if not api_key or not token:
        return None
    return api_key, token


def _mask(value: str) -> str:
    if len(value) <= 10:
        return "*" * len(value)
    return f"{value[:5]}...{value[-5:]}"


async def handle_set_workspace(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    cfg.sessions.start(
        session_key(chat_id=msg.chat_id, sender_id=msg.sender_id, is_group=msg.is_group),
        SessionKind.WORKSPACE_SETUP,
        step="waiting_for_credentials",
        owner_chat_id=msg.chat_id,
        payload={"user_id": msg.sender_id},
    )
    await send_markdown(cfg, msg.chat_id, render.WORKSPACE_INSTRUCTIONS)


async def advance_workspace_setup(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    session: ConversationSession,
) -> None:
    parsed = parse_credentials(msg.text)
    if parsed is None:
        await send_markdown(cfg, msg.chat_id, render.INVALID_CREDENTIALS_FORMAT)
        return
    api_key, token = parsed
    logger.info(
        "workspace.validating",
        chat_id=msg.chat_id,
        api_key=_mask(api_key),
        token=_mask(token),
    )
    result = await cfg.credentials.set_credential(msg.chat_id, api_key, token)
    if not result.ok:
        # the session stays open so the user can paste the pair again
        await send_plain(
            cfg,
            msg.chat_id,
            render.invalid_credentials(
                result.error, api_key_len=len(api_key), token_len=len(token)
            ),
        )
        return
    cfg.sessions.delete(session.key)
    await send_markdown(
        cfg,
        msg.chat_id,
        render.workspace_configured(result.check.account_label, result.check.email),
    )


async def handle_remove_workspace(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage
) -> None:
    if not await cfg.credentials.has_custom(msg.chat_id):
        await send_plain(cfg, msg.chat_id, "ℹ️ This chat is using the default workspace.")
        return
    if not await cfg.credentials.remove_credential(msg.chat_id):
        await send_plain(cfg, msg.chat_id, "❌ Failed to remove custom workspace.")
        return
    await send_plain(
        cfg,
        msg.chat_id,
        "✅ Custom workspace removed. Now using default workspace.\n\n"
        "Use /boards to select a board from the default workspace.",
    )


async def handle_workspace(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    resolved = await cfg.credentials.resolve(msg.chat_id)
    trello = await cfg.credentials.client_for(msg.chat_id)
    member = await trello.me()
    boards = await trello.list_boards()
    await send_markdown(
        cfg,
        msg.chat_id,
        render.workspace_summary(
            is_custom=resolved.is_custom,
            account=member.label,
            workspace=resolved.workspace,
            boards=boards,
        ),
    )

from __future__ import annotations

import signal
from collections.abc import Iterator
from contextlib import contextmanager

import anyio

from ..auth import AuthStore, resolve_auth_path
from ..chat_config import CONFIG_FILENAME, STATS_FILENAME, ChatConfigStore, StatsStore
from ..config import Settings
from ..credentials import CREDENTIALS_FILENAME, CredentialResolver, CredentialStore
from ..errors import failure_text
from ..ids import session_key
from ..logging import get_logger
from . import commands, render
from .actions import (
    UNGATED_COMMANDS,
    Command,
    CommandKind,
    CompleteCard,
    IdeaList,
    SelectBoard,
    SelectList,
    UnknownAction,
    ViewListCards,
    parse_action,
    parse_command,
    parse_mention,
)
from .bridge import TelegramBridgeConfig, send_plain
from .client import TelegramClient
from .polling import UpdatePoller
from .sessions import ConversationSession, SessionKind, SessionStore
from .supervisor import ConnectionSupervisor
from .types import TelegramCallbackQuery, TelegramIncomingMessage, TelegramIncomingUpdate

logger = get_logger(__name__)


@contextmanager
def _ends_session_on_error(cfg: TelegramBridgeConfig, key: str) -> Iterator[None]:
    try:
        yield
    except Exception:
        if cfg.sessions.delete(key):
            logger.info("sessions.aborted", key=key)
        raise


async def _dispatch_command(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, command: Command
) -> None:
    args = command.args
    match command.kind:
        case CommandKind.START:
            await commands.handle_start(cfg, msg, args)
        case CommandKind.HELP:
            await commands.handle_help(cfg, msg)
        case CommandKind.REQUEST:
            await commands.handle_request(cfg, msg)
        case CommandKind.AUTHORIZE:
            await commands.handle_authorize(cfg, msg, args)
        case CommandKind.UNAUTHORIZE:
            await commands.handle_unauthorize(cfg, msg, args)
        case CommandKind.REQUESTS:
            await commands.handle_requests(cfg, msg)
        case CommandKind.APPROVE:
            await commands.handle_resolve_request(cfg, msg, args, approve=True)
        case CommandKind.REJECT:
            await commands.handle_resolve_request(cfg, msg, args, approve=False)
        case CommandKind.AUTHORIZED:
            await commands.handle_authorized(cfg, msg)
        case CommandKind.SET_WORKSPACE:
            await commands.handle_set_workspace(cfg, msg)
        case CommandKind.REMOVE_WORKSPACE:
            await commands.handle_remove_workspace(cfg, msg)
        case CommandKind.WORKSPACE:
            await commands.handle_workspace(cfg, msg)
        case CommandKind.IDEA:
            await commands.capture_card(cfg, msg, "idea", args)
        case CommandKind.TASK:
            await commands.capture_card(cfg, msg, "task", args)
        case CommandKind.ADD_IDEA:
            await commands.handle_add_idea(cfg, msg)
        case CommandKind.BOARDS:
            await commands.handle_boards(cfg, msg)
        case CommandKind.LISTS:
            await commands.handle_lists(cfg, msg)
        case CommandKind.VIEW:
            await commands.handle_view(cfg, msg)
        case CommandKind.SEARCH:
            await commands.handle_search(cfg, msg, args)
        case CommandKind.ASSIGN:
            await commands.handle_coming_soon(cfg, msg, "Assign")
        case CommandKind.LABEL:
            await commands.handle_coming_soon(cfg, msg, "Label")
        case CommandKind.STATUS:
            await commands.handle_status(cfg, msg)
        case CommandKind.STATS:
            await commands.handle_stats(cfg, msg)
        case CommandKind.SETTINGS:
            await commands.handle_settings(cfg, msg)
        case CommandKind.CLEAR_BOARD:
            await commands.handle_clear_board(cfg, msg)
        case CommandKind.NETWORK:
            await commands.handle_network(cfg, msg)
        case CommandKind.RECONNECT:
            await commands.handle_reconnect(cfg, msg)
        case CommandKind.CANCEL:
            await commands.handle_cancel(cfg, msg)


async def _advance_session(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    session: ConversationSession,
) -> None:
    with _ends_session_on_error(cfg, session.key):
        if session.kind is SessionKind.IDEA_CAPTURE:
            await commands.advance_idea_capture(cfg, msg, session)
        else:
            await commands.advance_workspace_setup(cfg, msg, session)


async def _reject_unauthorized(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    logger.info(
        "telegram.incoming.unauthorized",
        chat_id=msg.chat_id,
        sender_id=msg.sender_id,
    )
    await send_plain(cfg, msg.chat_id, render.unauthorized(is_group=msg.is_group, chat_id=msg.chat_id))


async def handle_message(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    """Route one text message: command, then an open dialog, then a mention."""
    command = parse_command(msg.text, cfg.bot_username)
    if command is not None:
        logger.debug(
            "telegram.command",
            command=command.kind.value,
            chat_id=msg.chat_id,
            sender_id=msg.sender_id,
        )
        if command.kind not in UNGATED_COMMANDS and not await commands.is_authorized(cfg, msg):
            await _reject_unauthorized(cfg, msg)
            return
        await _dispatch_command(cfg, msg, command)
        return
    if msg.text.lstrip().startswith("/"):
        # unknown commands and commands for other bots
        return

    key = session_key(chat_id=msg.chat_id, sender_id=msg.sender_id, is_group=msg.is_group)
    session = cfg.sessions.get(key)
    if session is not None and session.owner_chat_id == msg.chat_id:
        if not await commands.is_authorized(cfg, msg):
            cfg.sessions.delete(key)
            await _reject_unauthorized(cfg, msg)
            return
        await _advance_session(cfg, msg, session)
        return

    mention = parse_mention(msg.text, cfg.bot_username)
    if mention is None:
        return
    if not await commands.is_authorized(cfg, msg):
        await _reject_unauthorized(cfg, msg)
        return
    await commands.capture_card(cfg, msg, mention.kind, mention.text)


async def handle_callback(cfg: TelegramBridgeConfig, query: TelegramCallbackQuery) -> None:
    if not await cfg.auth.is_authorized(query.sender_id, query.chat_id, is_group=query.is_group):
        logger.info(
            "telegram.callback.unauthorized",
            chat_id=query.chat_id,
            sender_id=query.sender_id,
        )
        await cfg.bot.answer_callback_query(
            query.callback_query_id, "❌ You are not authorized to use this bot.", show_alert=True
        )
        return
    action = parse_action(query.data)
    match action:
        case SelectBoard():
            await commands.handle_select_board(cfg, query, action)
        case SelectList():
            await commands.handle_select_list(cfg, query, action)
        case IdeaList():
            key = session_key(
                chat_id=query.chat_id, sender_id=query.sender_id, is_group=query.is_group
            )
            with _ends_session_on_error(cfg, key):
                await commands.handle_idea_list(cfg, query, action)
        case ViewListCards():
            await commands.handle_view_list_cards(cfg, query, action)
        case CompleteCard():
            await commands.handle_complete_card(cfg, query, action)
        case UnknownAction(data):
            logger.info("telegram.callback.unknown", data=data, chat_id=query.chat_id)
            await cfg.bot.answer_callback_query(query.callback_query_id)


async def handle_update(cfg: TelegramBridgeConfig, update: TelegramIncomingUpdate) -> None:
    """Handle one update; failures are logged and reported to the chat."""
    try:
        if isinstance(update, TelegramCallbackQuery):
            await handle_callback(cfg, update)
        else:
            await handle_message(cfg, update)
    except Exception as exc:
        logger.exception(
            "telegram.handler.failed",
            chat_id=update.chat_id,
            sender_id=update.sender_id,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        await send_plain(cfg, update.chat_id, failure_text(exc))


async def _cancel_on_signal(scope: anyio.CancelScope) -> None:
    with anyio.open_signal_receiver(signal.SIGINT, signal.SIGTERM) as signals:
        async for signum in signals:
            logger.info("telegram.loop.signal", signal=signal.Signals(signum).name)
            scope.cancel()
            return


async def run_main_loop(
    cfg: TelegramBridgeConfig,
    poller: UpdatePoller,
    supervisor: ConnectionSupervisor,
    *,
    handle_signals: bool = True,
) -> None:
    logger.info("telegram.loop.starting", bot_username=cfg.bot_username)
    try:
        async with anyio.create_task_group() as tg:
            poller.attach(tg)
            poller.on_error = supervisor.handle_polling_error
            poller.on_success = supervisor.record_poll_success
            if handle_signals:
                tg.start_soon(_cancel_on_signal, tg.cancel_scope)
            await supervisor.start()
            tg.start_soon(supervisor.run)
            async for update in poller.updates():
                tg.start_soon(handle_update, cfg, update)
            tg.cancel_scope.cancel()
    finally:
        with anyio.CancelScope(shield=True):
            await poller.aclose()
        logger.info("telegram.loop.stopped")


async def run_bot(settings: Settings) -> None:
    """Build every store and client from settings and run until interrupted."""
    data_dir = settings.data_dir.expanduser()
    bot = TelegramClient(settings.telegram_token.get_secret_value())
    chat_config = ChatConfigStore(data_dir / CONFIG_FILENAME)
    credentials = CredentialResolver(
        CredentialStore(data_dir / CREDENTIALS_FILENAME),
        default_api_key=settings.trello_api_key.get_secret_value(),
        default_token=settings.trello_token.get_secret_value(),
        chat_config=chat_config,
    )
    poller = UpdatePoller(bot, timeout_s=settings.poll_timeout_s)
    supervisor = ConnectionSupervisor(poller, settings.connection)
    cfg = TelegramBridgeConfig(
        bot=bot,
        bot_username=settings.bot_username,
        auth=AuthStore(resolve_auth_path(data_dir), settings.admin_user_ids),
        credentials=credentials,
        chat_config=chat_config,
        stats=StatsStore(data_dir / STATS_FILENAME),
        sessions=SessionStore(),
        supervisor=supervisor,
        default_board_id=settings.default_board_id,
    )
    try:
        await run_main_loop(cfg, poller, supervisor)
    finally:
        with anyio.CancelScope(shield=True):
            await credentials.close()
            await bot.close()

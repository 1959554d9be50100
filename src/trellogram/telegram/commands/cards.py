from __future__ import annotations

from typing import Literal

from ...ids import session_key
from ...logging import get_logger
from ...markdown import IDEA_PREFIX, TASK_PREFIX, safe_markdown, strip_card_emoji, truncate
from ...structuring import structure_text
from ...trello import Card, CardList, TrelloClient, TrelloError, TrelloNotFoundError
from .. import render
from ..actions import CompleteCard, IdeaList, SelectBoard, SelectList, ViewListCards, encode_action
from ..bridge import TelegramBridgeConfig, edit_markdown, send_markdown, send_plain
from ..sessions import ConversationSession, SessionKind
from ..types import TelegramCallbackQuery, TelegramIncomingMessage

logger = get_logger(__name__)

CardKind = Literal["idea", "task"]

NO_BOARD = "❌ No board selected. Use /setboard to select a Trello board first."
NO_LISTS = "❌ No lists found in the selected board."

_PREFIXES = {"idea": IDEA_PREFIX, "task": TASK_PREFIX}


async def board_for(cfg: TelegramBridgeConfig, chat_id: int | str) -> str | None:
    config = await cfg.chat_config.get(chat_id)
    if config.board_id:
        return config.board_id
    # the configured default board belongs to the default account
    if cfg.default_board_id and not await cfg.credentials.has_custom(chat_id):
        return cfg.default_board_id
    return None


def _find_list(lists: list[CardList], list_id: str | None) -> CardList | None:
    return next((item for item in lists if item.id == list_id), None)


async def capture_card(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    kind: CardKind,
    text: str,
) -> None:
    if not text.strip():
        await send_plain(cfg, msg.chat_id, f"Usage: /{kind} [text]")
        return
    board_id = await board_for(cfg, msg.chat_id)
    if board_id is None:
        await send_plain(cfg, msg.chat_id, NO_BOARD)
        return
    trello = await cfg.credentials.client_for(msg.chat_id)
    config = await cfg.chat_config.get(msg.chat_id)
    list_id = config.default_list_id
    if not list_id:
        lists = await trello.list_lists(board_id)
        if not lists:
            await send_plain(cfg, msg.chat_id, NO_LISTS)
            return
        list_id = lists[0].id

    note = structure_text(text)
    name = f"{_PREFIXES[kind]} {note.title}"
    card = await trello.create_card(list_id, name, note.rendered_description)
    logger.info(
        "cards.captured",
        kind=kind,
        chat_id=msg.chat_id,
        user_id=msg.sender_id,
        card_id=card.id,
    )
    await send_markdown(
        cfg, msg.chat_id, render.card_created(kind=kind, card_name=name, url=card.url)
    )
    await cfg.stats.increment(msg.chat_id, msg.sender_id)


async def handle_add_idea(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    if await board_for(cfg, msg.chat_id) is None:
        await send_plain(cfg, msg.chat_id, NO_BOARD)
        return
    cfg.sessions.start(
        session_key(chat_id=msg.chat_id, sender_id=msg.sender_id, is_group=msg.is_group),
        SessionKind.IDEA_CAPTURE,
        step="waiting_for_idea",
        owner_chat_id=msg.chat_id,
        payload={"user_id": msg.sender_id, "user_name": msg.sender_name},
    )
    await send_markdown(cfg, msg.chat_id, "💡 *Interactive Idea Creation*\n\nWhat's your idea?")


async def advance_idea_capture(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
    session: ConversationSession,
) -> None:
    """Handle plain text for an idea-capture session.

    Only ``waiting_for_idea`` consumes text; once the list keyboard is shown
    the callback is the only way forward.
    """
    if session.step != "waiting_for_idea":
        logger.debug("sessions.text_ignored", key=session.key, step=session.step)
        return
    if not structure_text(msg.text).title:
        await send_plain(cfg, msg.chat_id, "Please send the idea as text, or /cancel.")
        return

    board_id = await board_for(cfg, msg.chat_id)
    if board_id is None:
        cfg.sessions.delete(session.key)
        await send_plain(cfg, msg.chat_id, NO_BOARD)
        return
    trello = await cfg.credentials.client_for(msg.chat_id)
    lists = await trello.list_lists(board_id)
    if not lists:
        cfg.sessions.delete(session.key)
        await send_plain(cfg, msg.chat_id, NO_LISTS)
        return

    session.payload["idea"] = msg.text
    # in groups whoever typed the idea gets the credit
    session.payload["user_id"] = msg.sender_id
    session.payload["user_name"] = msg.sender_name
    session.step = "waiting_for_list"
    keyboard = render.inline_keyboard(
        (item.name, encode_action(IdeaList(item.id))) for item in lists
    )
    await send_markdown(
        cfg, msg.chat_id, render.idea_prompt_for_list(msg.text), reply_markup=keyboard
    )


async def handle_idea_list(
    cfg: TelegramBridgeConfig, query: TelegramCallbackQuery, action: IdeaList
) -> None:
    key = session_key(chat_id=query.chat_id, sender_id=query.sender_id, is_group=query.is_group)
    session = cfg.sessions.get(key)
    if (
        session is None
        or session.kind is not SessionKind.IDEA_CAPTURE
        or session.step != "waiting_for_list"
        or "idea" not in session.payload
    ):
        await cfg.bot.answer_callback_query(
            query.callback_query_id, "Session expired. Please try again."
        )
        await cfg.bot.edit_message_text(
            query.chat_id,
            query.message_id,
            "Session expired. Please use /addidea to start again.",
        )
        return

    try:
        board_id = await board_for(cfg, query.chat_id)
        trello = await cfg.credentials.client_for(query.chat_id)
        lists = await trello.list_lists(board_id) if board_id else []
        selected = _find_list(lists, action.list_id)
        if selected is None:
            raise TrelloNotFoundError(f"list {action.list_id} is not on the current board")
        note = structure_text(session.payload["idea"])
        name = f"{IDEA_PREFIX} {note.title}"
        card = await trello.create_card(selected.id, name, note.rendered_description)
    except TrelloError as exc:
        cfg.sessions.delete(key)
        logger.warning("sessions.idea.failed", key=key, error=str(exc))
        await cfg.bot.answer_callback_query(query.callback_query_id, "Failed to create card")
        await cfg.bot.edit_message_text(
            query.chat_id,
            query.message_id,
            "❌ Failed to create card. Please try again with /addidea",
        )
        return

    cfg.sessions.delete(key)
    logger.info("sessions.idea.completed", key=key, card_id=card.id, list_id=selected.id)
    await edit_markdown(
        cfg,
        query.chat_id,
        query.message_id,
        render.card_created(kind="idea", card_name=name, url=card.url, list_name=selected.name),
    )
    await cfg.bot.answer_callback_query(query.callback_query_id, "✅ Idea captured!")
    await cfg.stats.increment(query.chat_id, session.payload.get("user_id", query.sender_id))


async def handle_boards(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    trello = await cfg.credentials.client_for(msg.chat_id)
    boards = await trello.list_boards()
    if not boards:
        await send_plain(cfg, msg.chat_id, "❌ No boards found in your Trello account.")
        return
    keyboard = render.inline_keyboard(
        (board.name, encode_action(SelectBoard(board.id))) for board in boards
    )
    await send_markdown(
        cfg,
        msg.chat_id,
        "📋 *Your Trello Boards:*\nSelect a board to use for this chat:",
        reply_markup=keyboard,
    )


async def _list_picker(
    cfg: TelegramBridgeConfig,
    msg: TelegramIncomingMessage,
) -> list[CardList] | None:
    board_id = await board_for(cfg, msg.chat_id)
    if board_id is None:
        await send_plain(cfg, msg.chat_id, "❌ No board selected. Use /boards to select a board first.")
        return None
    trello = await cfg.credentials.client_for(msg.chat_id)
    lists = await trello.list_lists(board_id)
    if not lists:
        await send_plain(cfg, msg.chat_id, NO_LISTS)
        return None
    return lists


async def handle_lists(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    lists = await _list_picker(cfg, msg)
    if lists is None:
        return
    keyboard = render.inline_keyboard(
        (item.name, encode_action(SelectList(item.id))) for item in lists
    )
    await send_markdown(
        cfg,
        msg.chat_id,
        "📝 *Lists in current board:*\nSelect a default list for quick capture:",
        reply_markup=keyboard,
    )


async def handle_view(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    lists = await _list_picker(cfg, msg)
    if lists is None:
        return
    keyboard = render.inline_keyboard(
        (item.name, encode_action(ViewListCards(item.id))) for item in lists
    )
    await send_markdown(
        cfg,
        msg.chat_id,
        "📋 *Select a list to view its cards:*\n\n_Completed cards will be hidden_",
        reply_markup=keyboard,
    )


async def handle_search(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, query: str
) -> None:
    if not query:
        await send_plain(cfg, msg.chat_id, "Usage: /search [query]")
        return
    board_id = await board_for(cfg, msg.chat_id)
    if board_id is None:
        await send_plain(cfg, msg.chat_id, NO_BOARD)
        return
    trello = await cfg.credentials.client_for(msg.chat_id)
    cards = await trello.search_cards(board_id, query)
    if not cards:
        await send_plain(cfg, msg.chat_id, "❌ No cards found matching your search.")
        return
    await send_markdown(
        cfg, msg.chat_id, render.search_results(query, cards), disable_web_page_preview=True
    )


async def handle_status(cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage) -> None:
    config = await cfg.chat_config.get(msg.chat_id)
    board_id = await board_for(cfg, msg.chat_id)
    board_name = list_name = None
    if board_id is not None:
        trello = await cfg.credentials.client_for(msg.chat_id)
        boards = await trello.list_boards()
        board = next((item for item in boards if item.id == board_id), None)
        board_name = board.name if board is not None else "Unknown"
        if config.default_list_id:
            found = _find_list(await trello.list_lists(board_id), config.default_list_id)
            list_name = found.name if found is not None else "Unknown"
    stats = await cfg.stats.chat_stats(msg.chat_id)
    await send_markdown(
        cfg,
        msg.chat_id,
        render.chat_status(board_name=board_name, list_name=list_name, stats=stats),
    )


async def handle_coming_soon(
    cfg: TelegramBridgeConfig, msg: TelegramIncomingMessage, feature: str
) -> None:
    await send_plain(cfg, msg.chat_id, f"{feature} feature coming soon!")


async def handle_select_board(
    cfg: TelegramBridgeConfig, query: TelegramCallbackQuery, action: SelectBoard
) -> None:
    await cfg.chat_config.set_board(query.chat_id, action.board_id)
    trello = await cfg.credentials.client_for(query.chat_id)
    boards = await trello.list_boards()
    board = next((item for item in boards if item.id == action.board_id), None)
    name = board.name if board is not None else action.board_id
    await edit_markdown(
        cfg,
        query.chat_id,
        query.message_id,
        f"✅ Board selected: *{safe_markdown(name)}*\n\nUse /lists to set a default list.",
    )
    await cfg.bot.answer_callback_query(query.callback_query_id, "Board selected!")


async def handle_select_list(
    cfg: TelegramBridgeConfig, query: TelegramCallbackQuery, action: SelectList
) -> None:
    board_id = await board_for(cfg, query.chat_id)
    if board_id is None:
        await cfg.bot.answer_callback_query(query.callback_query_id, "No board selected")
        return
    trello = await cfg.credentials.client_for(query.chat_id)
    selected = _find_list(await trello.list_lists(board_id), action.list_id)
    if selected is None:
        await cfg.bot.answer_callback_query(
            query.callback_query_id, "That list is no longer on the board", show_alert=True
        )
        return
    config = await cfg.chat_config.get(query.chat_id)
    if config.board_id != board_id:
        await cfg.chat_config.set_board(query.chat_id, board_id)
    await cfg.chat_config.set_default_list(query.chat_id, selected.id)
    await edit_markdown(
        cfg,
        query.chat_id,
        query.message_id,
        f"✅ Default list set: *{safe_markdown(selected.name)}*\n\n"
        "You can now use /idea or /task for quick capture!",
    )
    await cfg.bot.answer_callback_query(query.callback_query_id, "Default list set!")


async def _load_list_cards(trello: TrelloClient, list_id: str) -> tuple[list[Card], int]:
    cards = await trello.list_cards(list_id)
    everything = await trello.list_cards(list_id, include_completed=True)
    completed = sum(1 for card in everything if card.dueComplete)
    return cards, completed


async def handle_view_list_cards(
    cfg: TelegramBridgeConfig,
    query: TelegramCallbackQuery,
    action: ViewListCards,
    *,
    answer: bool = True,
) -> None:
    try:
        trello = await cfg.credentials.client_for(query.chat_id)
        cards, completed = await _load_list_cards(trello, action.list_id)
    except TrelloError as exc:
        logger.warning("cards.view.failed", list_id=action.list_id, error=str(exc))
        if answer:
            await cfg.bot.answer_callback_query(query.callback_query_id, "Failed to load cards")
        await cfg.bot.edit_message_text(
            query.chat_id, query.message_id, "❌ Failed to load cards from this list."
        )
        return
    text = render.card_list(
        cards,
        header="📋 *Cards in selected list:*",
        list_id=action.list_id,
        chat_id=query.chat_id,
        bot_username=cfg.bot_username,
        completed_count=completed,
    )
    await edit_markdown(
        cfg, query.chat_id, query.message_id, text, disable_web_page_preview=True
    )
    if answer:
        await cfg.bot.answer_callback_query(
            query.callback_query_id, "Cards loaded!" if cards else "No active cards"
        )


async def handle_complete_card(
    cfg: TelegramBridgeConfig, query: TelegramCallbackQuery, action: CompleteCard
) -> None:
    try:
        trello = await cfg.credentials.client_for(query.chat_id)
        card = await trello.get_card(action.card_id)
        await trello.archive_card(action.card_id)
    except TrelloError as exc:
        logger.warning("cards.complete.failed", card_id=action.card_id, error=str(exc))
        await cfg.bot.answer_callback_query(
            query.callback_query_id, "❌ Failed to complete card", show_alert=True
        )
        return
    name = strip_card_emoji(card.name).strip()
    await cfg.bot.answer_callback_query(
        query.callback_query_id, f"✅ Completed: {truncate(name, 30)}"
    )
    await handle_view_list_cards(cfg, query, ViewListCards(action.list_id), answer=False)


async def send_updated_card_list(
    cfg: TelegramBridgeConfig, chat_id: int | str, list_id: str
) -> None:
    try:
        trello = await cfg.credentials.client_for(chat_id)
        cards, completed = await _load_list_cards(trello, list_id)
    except TrelloError as exc:
        logger.warning("cards.refresh.failed", chat_id=chat_id, list_id=list_id, error=str(exc))
        await send_plain(cfg, chat_id, "❌ Failed to load updated card list.")
        return
    text = render.card_list(
        cards,
        header="📋 *Updated card list:*",
        list_id=list_id,
        chat_id=chat_id,
        bot_username=cfg.bot_username,
        completed_count=completed,
    )
    await send_markdown(cfg, chat_id, text, disable_web_page_preview=True)

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any

from ..auth import AccessRequest, AuthorizedList, AuthStats
from ..chat_config import Activity, ChatStats, GlobalStats
from ..markdown import escape_url, safe_markdown, strip_card_emoji, truncate
from ..trello import Board, Card
from .actions import complete_link
from .supervisor import ConnectionStatus

MAX_LIST_MESSAGE_CHARS = 3000
SEARCH_RESULTS_SHOWN = 5
SEARCH_PREVIEW_LINES = 3
BOARDS_PREVIEW = 5

_URL_RE = re.compile(r"https?://\S+")
# descriptions written by older versions carried these metadata lines
_METADATA_PREFIXES = ("Added by:", "From:", "Date:", "User:", "Chat:")


def inline_keyboard(buttons: Iterable[tuple[str, str]]) -> dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data}] for text, data in buttons
        ]
    }


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def welcome_admin(name: str) -> str:
    return (
        f"👋 Hello Admin {name}!\n\n"
        "Welcome to your Trello Assistant Bot. You have full access to all features.\n\n"
        "Quick Start:\n"
        "1. /boards - View Trello boards\n"
        "2. /setboard - Select a board\n"
        "3. /idea or /task - Capture ideas\n\n"
        "Admin Commands:\n"
        "• /authorize [user_id] - Add user\n"
        "• /requests - View access requests\n"
        "• /authorized - View authorized list\n"
        "• /stats - Bot statistics\n\n"
        "Type /trellohelp for all commands."
    )


def welcome_authorized(name: str) -> str:
    return (
        f"👋 Hello {name}!\n\n"
        "Welcome back to Trello Assistant Bot. You have access to capture ideas and tasks.\n\n"
        "Commands:\n"
        "• /boards - View Trello boards\n"
        "• /setboard - Select a board\n"
        "• /idea [text] - Quick capture\n"
        "• /task [text] - Create task\n\n"
        "Type /trellohelp for all commands."
    )


def welcome_unauthorized(
    name: str, *, is_group: bool, chat_id: int, chat_title: str | None
) -> str:
    if is_group:
        how = (
            f"This group ({chat_title or chat_id}) needs authorization.\n\n"
            "An admin can authorize this group using:\n"
            f"/authorize group:{chat_id}"
        )
    else:
        how = "To request access, use: /request\n\nAn admin will review your request."
    return (
        f"👋 Hello {name}!\n\n"
        "I'm the Trello Assistant Bot. This bot requires authorization to use.\n\n"
        f"{how}\n\n"
        "Contact the bot admin for immediate access."
    )


def unauthorized(*, is_group: bool, chat_id: int) -> str:
    hint = (
        f"This group needs authorization. Group ID: {chat_id}"
        if is_group
        else "Use /request to request access."
    )
    return f"❌ Unauthorized access.\n\n{hint}"


def help_text(*, is_admin: bool, has_custom: bool, bot_username: str) -> str:
    workspace_line = (
        "/removeworkspace - Remove custom workspace"
        if has_custom
        else "/setworkspace - Use your own Trello account"
    )
    lines = [
        "📚 *Available Commands:*",
        "",
        "*Basic Commands:*",
        "/start - Initialize the bot",
        "/trellohelp - Show this help message",
        "/status - Show current configuration",
        "/cancel - Cancel the current dialog",
        "",
        "*Workspace Management:*",
        "/workspace - View current workspace",
        workspace_line,
        "",
        "*Capture Ideas:*",
        "/idea [text] - Quick capture an idea",
        "/task [text] - Create a task card",
        "/addidea - Interactive idea creation",
        "",
        "*Trello Management:*",
        "/boards - List and select Trello boards",
        "/lists - Show and select default list",
        "/view - View cards in current board",
        "",
        "*Advanced:*",
        "/search [query] - Search cards",
        "/assign - Create and assign a card",
        "/label - Add labels to cards",
    ]
    if is_admin:
        lines += [
            "",
            "*Admin Commands:*",
            "/authorize [user\\_id] - Authorize user",
            "/unauthorize [user\\_id] - Remove authorization",
            "/requests - View access requests",
            "/approve [n] - Approve request number n",
            "/reject [n] - Reject request number n",
            "/authorized - View authorized users",
            "/settings - Configure bot settings",
            "/stats - Show usage statistics",
            "/network - Connection status",
            "/reconnect - Reset and reconnect polling",
        ]
    tip = (
        "• You are using your own Trello workspace"
        if has_custom
        else "• Use /setworkspace to connect your own Trello account"
    )
    lines += [
        "",
        "💡 *Tips:*",
        tip,
        "• Each chat can have its own workspace",
        f"• Mention the bot: @{safe_markdown(bot_username)} idea: [text]",
    ]
    return "\n".join(lines)


def card_created(*, kind: str, card_name: str, url: str | None, list_name: str | None = None) -> str:
    headline = {
        "idea": "✅ Idea captured!",
        "task": "✅ Task created!",
    }.get(kind, "✅ Card created!")
    if list_name is not None:
        headline = f"✅ Idea added to *{safe_markdown(list_name)}*!\n"
    text = f"{headline}\n📋 Card: {safe_markdown(card_name)}"
    if url:
        text += f"\n🔗 [View in Trello]({escape_url(url)})"
    return text


def _escape_line(line: str) -> str:
    parts: list[str] = []
    last = 0
    for match in _URL_RE.finditer(line):
        parts.append(safe_markdown(line[last : match.start()]))
        parts.append(escape_url(match.group(0)))
        last = match.end()
    parts.append(safe_markdown(line[last:]))
    return "".join(parts)


def _description_lines(desc: str) -> list[str]:
    return [
        line.strip()
        for line in desc.splitlines()
        if line.strip() and not line.strip().startswith(_METADATA_PREFIXES)
    ]


def _format_description_line(line: str) -> str:
    if line.startswith("Details:"):
        return "   📝 _Details:_"
    if line.startswith("Links:"):
        return "   🔗 _Links:_"
    return f"   {_escape_line(line)}"


def empty_card_list(completed_count: int) -> str:
    if completed_count:
        return (
            "📭 No active cards in this list.\n\n"
            f"_{plural(completed_count, 'completed card')} hidden_"
        )
    return "📭 No cards found in this list."


def card_list(
    cards: Sequence[Card],
    *,
    header: str,
    list_id: str,
    chat_id: int | str,
    bot_username: str,
    completed_count: int = 0,
) -> str:
    if not cards:
        return empty_card_list(completed_count)
    text = f"{header}\n\n"
    for index, card in enumerate(cards):
        name = safe_markdown(strip_card_emoji(card.name).strip())
        text += f"*{index + 1}. {name}*\n"
        for line in _description_lines(card.desc):
            text += _format_description_line(line) + "\n"
        if card.url:
            text += f"   [View in Trello]({escape_url(card.url)}) | "
        link = complete_link(bot_username, card.id, list_id, chat_id)
        text += f"[✅ Complete]({link})\n\n"
        if len(text) > MAX_LIST_MESSAGE_CHARS:
            remaining = len(cards) - index - 1
            if remaining:
                text += f"_...and {plural(remaining, 'more card')}_"
            break
    if completed_count:
        text += f"\n_Note: {plural(completed_count, 'completed card')} hidden_"
    return text


def search_results(query: str, cards: Sequence[Card]) -> str:
    text = f'*Search Results for "{safe_markdown(query)}":*\n\n'
    for index, card in enumerate(cards[:SEARCH_RESULTS_SHOWN]):
        name = safe_markdown(strip_card_emoji(card.name).strip())
        text += f"*{index + 1}. {name}*\n"
        lines = _description_lines(card.desc)
        for line in lines[:SEARCH_PREVIEW_LINES]:
            text += _format_description_line(line) + "\n"
        if len(lines) > SEARCH_PREVIEW_LINES:
            text += "   _...more_\n"
        if card.url:
            text += f"   [View in Trello]({escape_url(card.url)})\n"
        text += "\n"
    return text


def idea_prompt_for_list(idea: str) -> str:
    preview = safe_markdown(truncate(idea, 50))
    return f'📝 *Select a list for your idea:*\n\n_"{preview}"_'


def chat_status(*, board_name: str | None, list_name: str | None, stats: ChatStats) -> str:
    lines = [
        "*Current Configuration:*",
        "",
        f"📋 Board: {safe_markdown(board_name) if board_name else 'Not set'}",
        f"📝 Default List: {safe_markdown(list_name) if list_name else 'Not set'}",
        "",
        "*Statistics:*",
        f"📊 Total cards created: {stats.total_cards}",
        f"👥 Active users: {stats.active_users}",
    ]
    for rank, user in enumerate(stats.top_users, start=1):
        lines.append(f"{rank}. {user.user_id}: {user.cards_created}")
    return "\n".join(lines)


def global_stats(stats: GlobalStats, recent: Sequence[Activity] = ()) -> str:
    lines = [
        "*📊 Bot Statistics:*",
        "",
        f"Total Cards Created: {stats.total_cards}",
        f"Active Chats: {stats.active_chats}",
        f"Active Users: {stats.total_users}",
    ]
    if recent:
        lines += ["", "*Recent Activity:*"]
        lines += [
            f"• {item.user_id} in {item.chat_id}: {item.cards_created} ({item.last_use})"
            for item in recent
        ]
    return "\n".join(lines)


def pending_requests(requests: Sequence[AccessRequest]) -> str:
    if not requests:
        return "📭 No pending requests."
    text = "*📝 Pending Access Requests:*\n\n"
    for index, req in enumerate(requests, start=1):
        text += (
            f"{index}. *{safe_markdown(req.user_name)}*\n"
            f"   Type: {req.kind}\n"
            f"   Chat: {safe_markdown(req.chat_title)}\n"
            f"   ID: {req.chat_id}\n"
            f"   Time: {req.timestamp}\n\n"
        )
    text += "To approve: /authorize [ID]\nTo approve request #: /approve [number]"
    return text


def _id_block(title: str, ids: Sequence[str]) -> str:
    body = "\n".join(f"• {item}" for item in ids) if ids else "None"
    return f"*{title}:*\n{body}"


def authorized_list(listing: AuthorizedList, stats: AuthStats) -> str:
    return "\n\n".join(
        [
            "*🔐 Authorized Access:*",
            _id_block("Admins", listing.admins),
            _id_block("Users", listing.users),
            _id_block("Groups", listing.groups),
            "*Stats:*\n"
            f"Total Users: {stats.total_users}\n"
            f"Total Groups: {stats.total_groups}\n"
            f"Pending Requests: {stats.pending_requests}",
        ]
    )


def access_request_notice(req: AccessRequest) -> str:
    return (
        "🔔 New access request:\n\n"
        f"From: {req.user_name}\n"
        f"Type: {req.kind}\n"
        f"Chat: {req.chat_title}\n"
        f"ID: {req.chat_id}\n\n"
        "Use /requests to review"
    )


WORKSPACE_INSTRUCTIONS = """🔐 *Set Your Trello Workspace*

To use your own Trello workspace in this chat, follow these steps:

*Step 1: Get your API Key*
1. Go to: https://trello.com/app-key
2. Log in to your Trello account
3. Copy the *API Key*

*Step 2: Get your Token*
1. On the same page, click the *Token* link
2. Click "Allow"
3. Copy the *Token* (long string)

*Step 3: Send me your credentials*
Reply with BOTH on separate lines (easiest):
```
your_api_key_here
your_token_here
```

Or with labels:
```
API_KEY:your_api_key_here
TOKEN:your_token_here
```

Type /cancel to abort."""

INVALID_CREDENTIALS_FORMAT = (
    "❌ Invalid format. Please provide both API\\_KEY and TOKEN.\n\n"
    "*Easiest format* (just paste the values):\n"
    "```\nyour_api_key_here\nyour_token_here\n```\n\n"
    "Or with labels:\n"
    "```\nAPI_KEY:your_key\nTOKEN:your_token\n```"
)


def invalid_credentials(error: str | None, *, api_key_len: int, token_len: int) -> str:
    return (
        f"❌ Invalid credentials: {error or 'validation failed'}\n\n"
        f"API Key length: {api_key_len} chars\n"
        f"Token length: {token_len} chars\n\n"
        "Please ensure:\n"
        "1. No extra spaces in the credentials\n"
        "2. Complete API key and token copied\n"
        "3. Credentials are from https://trello.com/app-key\n\n"
        "Send the credentials again or type /cancel to abort."
    )


def workspace_configured(account: str | None, email: str | None) -> str:
    return (
        "✅ *Workspace configured successfully!*\n\n"
        f"*Account:* {safe_markdown(account or 'Unknown')}\n"
        f"*Email:* {safe_markdown(email or 'Not available')}\n\n"
        "Now use /boards to select a board from your workspace."
    )


def workspace_summary(
    *,
    is_custom: bool,
    account: str | None,
    workspace: str,
    boards: Sequence[Board],
) -> str:
    lines = [
        "🏢 *Current Workspace*",
        "",
        f"*Status:* {'✅ Custom Workspace' if is_custom else '📦 Default Workspace'}",
        f"*Account:* {safe_markdown(account or 'Unknown')}",
        f"*Workspace:* {safe_markdown(workspace)}",
        "",
        f"*Available Boards:* {len(boards)}",
    ]
    lines += [f"• {safe_markdown(board.name)}" for board in boards[:BOARDS_PREVIEW]]
    if len(boards) > BOARDS_PREVIEW:
        lines.append(f"_...and {len(boards) - BOARDS_PREVIEW} more_")
    lines += ["", "*Commands:*"]
    if is_custom:
        lines.append("• /removeworkspace - Switch back to default")
    else:
        lines.append("• /setworkspace - Use your own Trello account")
    lines.append("• /boards - Select a board")
    return "\n".join(lines)


def _error_recovery(status: ConnectionStatus) -> str:
    if status.polling_gave_up:
        return "Gave up (liveness checks continue)"
    if status.polling_retry_count:
        return f"Active ({status.polling_retry_count} retries)"
    return "Standby"


def network_status(status: ConnectionStatus) -> str:
    state = {
        "connected": "✅ Connected",
        "reconnecting": "🔄 Reconnecting",
        "failed": "❌ Failed (use /reconnect)",
    }[status.state]
    lines = [
        "*🌐 Network Status:*",
        "",
        f"Connection: {state}",
        f"Polling: {'✅ Active' if status.receiving else '❌ Inactive'}",
        f"Reconnect Attempts: {status.reconnect_attempts}/{status.max_reconnect_attempts}",
        f"Next Reconnect Delay: {status.reconnect_delay_s:g}s",
        f"Last Successful: {status.last_success_iso() or 'Never'}",
        f"Error Recovery: {_error_recovery(status)}",
    ]
    if status.fatal_error:
        lines.append(f"Fatal Error: {safe_markdown(status.fatal_error)}")
    return "\n".join(lines)

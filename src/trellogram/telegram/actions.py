from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Literal

DEEP_LINK_COMPLETE = "complete_"


@dataclass(frozen=True, slots=True)
class SelectBoard:
    board_id: str


@dataclass(frozen=True, slots=True)
class SelectList:
    list_id: str


@dataclass(frozen=True, slots=True)
class IdeaList:
    list_id: str


@dataclass(frozen=True, slots=True)
class ViewListCards:
    list_id: str


@dataclass(frozen=True, slots=True)
class CompleteCard:
    card_id: str
    list_id: str


@dataclass(frozen=True, slots=True)
class UnknownAction:
    data: str


CallbackAction = (
    SelectBoard | SelectList | IdeaList | ViewListCards | CompleteCard | UnknownAction
)


def parse_action(data: str) -> CallbackAction:
    name, _, rest = data.partition(":")
    params = rest.split(":") if rest else []
    if not params or not all(params):
        return UnknownAction(data)
    match name, params:
        case "select_board", [board_id]:
            return SelectBoard(board_id)
        case "select_list", [list_id]:
            return SelectList(list_id)
        case "idea_list", [list_id]:
            return IdeaList(list_id)
        case "view_list_cards", [list_id]:
            return ViewListCards(list_id)
        case "complete_card", [card_id, list_id]:
            return CompleteCard(card_id, list_id)
    return UnknownAction(data)


def encode_action(action: CallbackAction) -> str:
    match action:
        case SelectBoard(board_id):
            return f"select_board:{board_id}"
        case SelectList(list_id):
            return f"select_list:{list_id}"
        case IdeaList(list_id):
            return f"idea_list:{list_id}"
        case ViewListCards(list_id):
            return f"view_list_cards:{list_id}"
        case CompleteCard(card_id, list_id):
            return f"complete_card:{card_id}:{list_id}"
        case UnknownAction(data):
            return data


@dataclass(frozen=True, slots=True)
class CompleteDeepLink:
    card_id: str
    list_id: str
    chat_id: str | None = None


def parse_start_param(param: str | None) -> CompleteDeepLink | None:
    """Parse ``complete_<card>_<list>[_<chat>]``.

    Ids are opaque, so fields are taken strictly by position.
    """
    if not param or not param.startswith(DEEP_LINK_COMPLETE):
        return None
    parts = param[len(DEEP_LINK_COMPLETE) :].split("_")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    chat_id = parts[2] if len(parts) > 2 and parts[2] else None
    return CompleteDeepLink(card_id=parts[0], list_id=parts[1], chat_id=chat_id)


def encode_start_param(card_id: str, list_id: str, chat_id: int | str) -> str:
    return f"{DEEP_LINK_COMPLETE}{card_id}_{list_id}_{chat_id}"


def complete_link(bot_username: str, card_id: str, list_id: str, chat_id: int | str) -> str:
    return f"https://t.me/{bot_username}?start={encode_start_param(card_id, list_id, chat_id)}"


class CommandKind(enum.Enum):
    START = "start"
    HELP = "trellohelp"
    REQUEST = "request"
    AUTHORIZE = "authorize"
    UNAUTHORIZE = "unauthorize"
    REQUESTS = "requests"
    APPROVE = "approve"
    REJECT = "reject"
    AUTHORIZED = "authorized"
    SET_WORKSPACE = "setworkspace"
    REMOVE_WORKSPACE = "removeworkspace"
    WORKSPACE = "workspace"
    IDEA = "idea"
    TASK = "task"
    ADD_IDEA = "addidea"
    BOARDS = "boards"
    LISTS = "lists"
    VIEW = "view"
    SEARCH = "search"
    ASSIGN = "assign"
    LABEL = "label"
    STATUS = "status"
    STATS = "stats"
    SETTINGS = "settings"
    CLEAR_BOARD = "clearboard"
    NETWORK = "network"
    RECONNECT = "reconnect"
    CANCEL = "cancel"


_ALIASES = {
    "help": CommandKind.HELP,
    "setboard": CommandKind.BOARDS,
}

ADMIN_COMMANDS = frozenset(
    {
        CommandKind.AUTHORIZE,
        CommandKind.UNAUTHORIZE,
        CommandKind.REQUESTS,
        CommandKind.APPROVE,
        CommandKind.REJECT,
        CommandKind.AUTHORIZED,
        CommandKind.STATS,
        CommandKind.SETTINGS,
        CommandKind.CLEAR_BOARD,
        CommandKind.NETWORK,
        CommandKind.RECONNECT,
    }
)

# run without the authorization gate; admin commands check the admin list instead
UNGATED_COMMANDS = ADMIN_COMMANDS | {CommandKind.START, CommandKind.REQUEST, CommandKind.CANCEL}


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    args: str = ""


@dataclass(frozen=True, slots=True)
class Mention:
    kind: Literal["idea", "task"]
    text: str


_COMMAND_RE = re.compile(r"^/([A-Za-z0-9_]+)(?:@([A-Za-z0-9_]+))?(?:\s+(.*))?$", re.DOTALL)
_MENTION_RE = re.compile(r"\b(idea|task):\s*(.+)", re.IGNORECASE | re.DOTALL)


def parse_command(text: str, bot_username: str) -> Command | None:
    """Parse ``/cmd``, ``/cmd args`` and ``/cmd@bot args``.

    Returns None for plain text, unknown commands, and commands addressed to
    a different bot.
    """
    match = _COMMAND_RE.match(text.strip())
    if match is None:
        return None
    name, target, args = match.groups()
    if target is not None and target.lower() != bot_username.lower():
        return None
    name = name.lower()
    kind = _ALIASES.get(name)
    if kind is None:
        try:
            kind = CommandKind(name)
        except ValueError:
            return None
    return Command(kind=kind, args=(args or "").strip())


def parse_mention(text: str, bot_username: str) -> Mention | None:
    if f"@{bot_username}".lower() not in text.lower():
        return None
    match = _MENTION_RE.search(text)
    if match is None:
        return None
    body = match.group(2).strip()
    if not body:
        return None
    return Mention(kind="idea" if match.group(1).lower() == "idea" else "task", text=body)


@dataclass(frozen=True, slots=True)
class AuthTarget:
    kind: Literal["user", "group"]
    target_id: str


def parse_auth_target(args: str) -> AuthTarget | None:
    value = args.strip()
    if not value:
        return None
    if value.startswith("group:"):
        group_id = value[len("group:") :].strip()
        return AuthTarget("group", group_id) if group_id else None
    return AuthTarget("user", value.split()[0])

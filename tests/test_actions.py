import pytest

from trellogram.telegram.actions import (
    ADMIN_COMMANDS,
    UNGATED_COMMANDS,
    AuthTarget,
    Command,
    CommandKind,
    CompleteCard,
    CompleteDeepLink,
    IdeaList,
    Mention,
    SelectBoard,
    SelectList,
    UnknownAction,
    ViewListCards,
    complete_link,
    encode_action,
    parse_action,
    parse_auth_target,
    parse_command,
    parse_mention,
    parse_start_param,
)

BOT = "trello_helper_bot"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("/idea Buy milk", Command(CommandKind.IDEA, "Buy milk")),
        ("/task@trello_helper_bot Call mom", Command(CommandKind.TASK, "Call mom")),
        ("/TASK@Trello_Helper_Bot x", Command(CommandKind.TASK, "x")),
        ("/help", Command(CommandKind.HELP)),
        ("/trellohelp", Command(CommandKind.HELP)),
        ("/setboard", Command(CommandKind.BOARDS)),
        ("/start complete_c1_l1_-100", Command(CommandKind.START, "complete_c1_l1_-100")),
        ("/idea line one\nline two", Command(CommandKind.IDEA, "line one\nline two")),
        ("  /cancel  ", Command(CommandKind.CANCEL)),
    ],
)
def test_parse_command(text: str, expected: Command) -> None:
    assert parse_command(text, BOT) == expected


@pytest.mark.parametrize(
    "text",
    ["hello", "/idea@other_bot Buy milk", "/unknown thing", "idea: Buy milk", "/"],
)
def test_parse_command_ignores(text: str) -> None:
    assert parse_command(text, BOT) is None


def test_admin_commands_skip_the_user_gate() -> None:
    assert ADMIN_COMMANDS <= UNGATED_COMMANDS
    assert CommandKind.REQUEST in UNGATED_COMMANDS
    assert CommandKind.IDEA not in UNGATED_COMMANDS


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("@trello_helper_bot idea: Buy milk", Mention("idea", "Buy milk")),
        ("hey @Trello_Helper_Bot TASK:   Call mom", Mention("task", "Call mom")),
        ("@trello_helper_bot task: first\nsecond", Mention("task", "first\nsecond")),
    ],
)
def test_parse_mention(text: str, expected: Mention) -> None:
    assert parse_mention(text, BOT) == expected


@pytest.mark.parametrize(
    "text",
    [
        "idea: Buy milk",
        "@trello_helper_bot hello",
        "@trello_helper_bot idea:   ",
        "@other_bot idea: x",
    ],
)
def test_parse_mention_ignores(text: str) -> None:
    assert parse_mention(text, BOT) is None


@pytest.mark.parametrize(
    ("data", "expected"),
    [
        ("select_board:b1", SelectBoard("b1")),
        ("select_list:l1", SelectList("l1")),
        ("idea_list:l1", IdeaList("l1")),
        ("view_list_cards:l1", ViewListCards("l1")),
        ("complete_card:c1:l1", CompleteCard("c1", "l1")),
        ("complete_card:c1", UnknownAction("complete_card:c1")),
        ("select_board:", UnknownAction("select_board:")),
        ("noop", UnknownAction("noop")),
    ],
)
def test_parse_action(data: str, expected) -> None:
    assert parse_action(data) == expected


def test_encode_action_matches_parser() -> None:
    action = CompleteCard("c1", "l2")
    assert encode_action(action) == "complete_card:c1:l2"
    assert parse_action(encode_action(action)) == action


@pytest.mark.parametrize(
    ("param", "expected"),
    [
        ("complete_c1_l1_-100", CompleteDeepLink("c1", "l1", "-100")),
        ("complete_c1_l1", CompleteDeepLink("c1", "l1")),
        ("complete_c1_l1_", CompleteDeepLink("c1", "l1")),
        ("complete_c1", None),
        ("complete__l1", None),
        ("other", None),
        (None, None),
    ],
)
def test_parse_start_param(param, expected) -> None:
    assert parse_start_param(param) == expected


def test_complete_link() -> None:
    assert (
        complete_link(BOT, "c1", "l1", -100)
        == "https://t.me/trello_helper_bot?start=complete_c1_l1_-100"
    )


@pytest.mark.parametrize(
    ("args", "expected"),
    [
        ("42", AuthTarget("user", "42")),
        (" 42 extra", AuthTarget("user", "42")),
        ("group:-100", AuthTarget("group", "-100")),
        ("group:", None),
        ("", None),
    ],
)
def test_parse_auth_target(args: str, expected) -> None:
    assert parse_auth_target(args) == expected

from trellogram.markdown import escape_url, safe_markdown, strip_card_emoji, truncate


def test_safe_markdown_escapes_legacy_specials() -> None:
    assert safe_markdown("a_b *c* `d` [e]") == "a\\_b \\*c\\* \\`d\\` \\[e]"
    assert safe_markdown(None) == ""
    assert safe_markdown("") == ""


def test_escape_url_only_touches_underscores() -> None:
    assert escape_url("https://trello.com/c/a_b*c") == "https://trello.com/c/a\\_b*c"


def test_strip_card_emoji() -> None:
    assert strip_card_emoji("💡 Buy milk") == "Buy milk"
    assert strip_card_emoji("📝Call mom") == "Call mom"
    assert strip_card_emoji("Plain 💡") == "Plain 💡"


def test_truncate() -> None:
    assert truncate("short", 10) == "short"
    assert truncate("a" * 12, 10) == "a" * 10 + "..."


def test_safe_markdown_leaves_closing_bracket_alone() -> None:
    assert safe_markdown("Sprint [Q3]") == "Sprint \\[Q3]"

from trellogram.structuring import render_description, structure_text


def test_single_line_is_title_only() -> None:
    note = structure_text("Buy milk")

    assert note.title == "Buy milk"
    assert note.detail_bullets == ()
    assert note.urls == ()
    assert note.rendered_description == ""


def test_later_lines_become_bullets() -> None:
    note = structure_text("Call mom\n- about the trip\n* book tickets\n2. pack\n\n• weather")

    assert note.title == "Call mom"
    assert note.detail_bullets == ("about the trip", "book tickets", "pack", "weather")
    assert note.rendered_description == (
        "Details:\n- about the trip\n- book tickets\n- pack\n- weather"
    )


def test_urls_move_to_links_block() -> None:
    note = structure_text(
        "Read https://example.com/a about caching\nsee also https://example.com/b"
    )

    assert note.title == "Read about caching"
    assert note.urls == ("https://example.com/a", "https://example.com/b")
    assert note.detail_bullets == ("see also",)
    assert note.rendered_description == (
        "Details:\n- see also\n\nLinks:\n- https://example.com/a\n- https://example.com/b"
    )


def test_link_only_title_falls_back_to_first_detail() -> None:
    note = structure_text("https://example.com\nrelease notes\nchangelog")

    assert note.title == "release notes"
    assert note.detail_bullets == ("changelog",)
    assert note.urls == ("https://example.com",)


def test_link_only_text_uses_link_as_title() -> None:
    note = structure_text("  https://example.com/x  ")

    assert note.title == "https://example.com/x"
    assert note.rendered_description == "Links:\n- https://example.com/x"


def test_blank_text() -> None:
    note = structure_text("  \n\n ")

    assert note.title == ""
    assert note.rendered_description == ""


def test_render_description_empty() -> None:
    assert render_description((), ()) == ""


def test_bulleted_link_line() -> None:
    note = structure_text("Buy milk\n- 2% \n- https://example.com/milk")

    assert note.title == "Buy milk"
    assert note.detail_bullets == ("2%",)
    assert note.urls == ("https://example.com/milk",)
    assert note.rendered_description == "Details:\n- 2%\n\nLinks:\n- https://example.com/milk"


def test_inline_link_without_details() -> None:
    note = structure_text("Call mom https://x.co")

    assert note.title == "Call mom"
    assert note.urls == ("https://x.co",)
    assert "Details:" not in note.rendered_description

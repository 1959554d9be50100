import pytest

from trellogram.telegram.commands import parse_credentials


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("abc123\ntok456", ("abc123", "tok456")),
        ("  abc123  \n\n  tok456 \n", ("abc123", "tok456")),
        ("API_KEY:abc123\nTOKEN:tok456", ("abc123", "tok456")),
        ("api key = abc123\ntoken = tok456", ("abc123", "tok456")),
        ("API-KEY abc123\nToken: tok456", ("abc123", "tok456")),
        ("TOKEN: tok456\nAPI_KEY: abc123", ("abc123", "tok456")),
    ],
)
def test_parse_credentials(text: str, expected: tuple[str, str]) -> None:
    assert parse_credentials(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "abc123",
        "one\ntwo\nthree",
        "API_KEY: abc123",
        "TOKEN: tok456\nsomething else",
        "",
    ],
)
def test_parse_credentials_rejects(text: str) -> None:
    assert parse_credentials(text) is None

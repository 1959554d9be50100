import logging

from trellogram.logging import redact_text, redact_token_processor, setup_logging


class TestRedaction:
    def test_redacts_bot_url_token(self) -> None:
        text = redact_text("https://api.telegram.org/bot123456789:ABCdefGHI_jkl/sendMessage")

        assert "123456789" not in text
        assert "bot[REDACTED]" in text

    def test_redacts_bare_token(self) -> None:
        text = redact_text("Token is 123456789:ABCDEFGHIJ_klmnop")

        assert "123456789" not in text
        assert "[REDACTED_TOKEN]" in text

    def test_redacts_trello_query_secrets(self) -> None:
        text = redact_text(
            "GET https://api.trello.com/1/members/me?key=abc123def&token=ATTA9876zz&filter=open"
        )

        assert "abc123def" not in text
        assert "ATTA9876zz" not in text
        assert "key=[REDACTED]" in text
        assert "token=[REDACTED]" in text
        assert "filter=open" in text

    def test_plain_text_unchanged(self) -> None:
        assert redact_text("card created in list Inbox") == "card created in list Inbox"

    def test_processor_redacts_every_string_field(self) -> None:
        event = {
            "event": "trello.network_error",
            "error": "GET /cards?key=abc123&token=def456 failed",
            "url": "https://api.telegram.org/bot1:secretTOKEN_abc/getMe",
            "status": 500,
        }

        result = redact_token_processor(None, "error", event)

        assert "abc123" not in result["error"]
        assert "def456" not in result["error"]
        assert "secretTOKEN" not in result["url"]
        assert result["status"] == 500
        assert result["event"] == "trello.network_error"


class TestSetupLogging:
    def test_setup_debug_mode(self) -> None:
        setup_logging(debug=True)
        assert logging.getLogger().level == logging.DEBUG

    def test_setup_info_mode(self) -> None:
        setup_logging(debug=False)
        assert logging.getLogger().level == logging.INFO

    def test_silences_noisy_loggers(self) -> None:
        setup_logging()
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("httpcore").level == logging.WARNING

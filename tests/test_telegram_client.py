import json

import httpx
import pytest

from trellogram.telegram.client import (
    TelegramApiError,
    TelegramClient,
    TelegramConflictError,
    TelegramNetworkError,
    TelegramRetryAfter,
)


def _ok(request: httpx.Request, result) -> httpx.Response:
    return httpx.Response(200, json={"ok": True, "result": result}, request=request)


@pytest.mark.anyio
async def test_send_message_retries_once_after_rate_limit() -> None:
    calls: list[str] = []
    slept: list[float] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) == 1:
            return httpx.Response(
                429,
                json={"ok": False, "error_code": 429, "parameters": {"retry_after": 3}},
                request=request,
            )
        return _ok(request, {"message_id": 7})

    async def sleep(delay: float) -> None:
        slept.append(delay)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abcDEF_ghij", client=client, sleep=sleep)
        result = await tg.send_message(1, "hi")

    assert result == {"message_id": 7}
    assert slept == [3.0]
    assert len(calls) == 2


@pytest.mark.anyio
async def test_send_message_gives_up_after_second_rate_limit() -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(
            429,
            json={"ok": False, "description": "Too Many Requests: retry after 2"},
            request=request,
        )

    async def sleep(delay: float) -> None:
        return None

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abcDEF_ghij", client=client, sleep=sleep)
        result = await tg.send_message(1, "hi")

    assert result is None
    assert len(calls) == 2


@pytest.mark.anyio
async def test_send_message_returns_none_on_bad_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            400,
            json={"ok": False, "error_code": 400, "description": "Bad Request: can't parse entities"},
            request=request,
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        assert await tg.send_message(1, "*broken", parse_mode="Markdown") is None


@pytest.mark.anyio
async def test_send_message_payload() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return _ok(request, {"message_id": 123})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        await tg.send_message(
            456,
            "hello",
            parse_mode="Markdown",
            reply_markup={"inline_keyboard": [[{"text": "btn", "callback_data": "x"}]]},
            disable_web_page_preview=True,
        )

    assert captured["chat_id"] == 456
    assert captured["parse_mode"] == "Markdown"
    assert captured["disable_web_page_preview"] is True
    assert captured["reply_markup"]["inline_keyboard"][0][0]["callback_data"] == "x"


@pytest.mark.anyio
async def test_edit_and_answer_callback() -> None:
    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path.rsplit("/", 1)[-1])
        if paths[-1] == "answerCallbackQuery":
            return _ok(request, True)
        return _ok(request, {"message_id": 789})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        edited = await tg.edit_message_text(456, 789, "edited")
        answered = await tg.answer_callback_query("cb", "done", show_alert=True)

    assert edited == {"message_id": 789}
    assert answered is True
    assert paths == ["editMessageText", "answerCallbackQuery"]


@pytest.mark.anyio
async def test_get_updates_classifies_conflict() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"ok": False, "error_code": 409, "description": "Conflict: terminated by other getUpdates request"},
            request=request,
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        with pytest.raises(TelegramConflictError):
            await tg.get_updates(offset=None, timeout_s=0)


@pytest.mark.anyio
async def test_get_updates_classifies_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        with pytest.raises(TelegramNetworkError):
            await tg.get_updates(offset=5, timeout_s=0)


@pytest.mark.anyio
async def test_get_updates_raises_retry_after() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            429,
            json={"ok": False, "error_code": 429, "parameters": {"retry_after": 4}},
            request=request,
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        with pytest.raises(TelegramRetryAfter) as exc:
            await tg.get_updates(offset=None)

    assert exc.value.retry_after == 4.0


@pytest.mark.anyio
async def test_get_updates_sends_offset_and_allowed_updates() -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(json.loads(request.content))
        return _ok(request, [{"update_id": 10}])

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        updates = await tg.get_updates(offset=10, timeout_s=25, allowed_updates=["message"])

    assert updates == [{"update_id": 10}]
    assert captured == {"offset": 10, "timeout": 25, "allowed_updates": ["message"]}


@pytest.mark.anyio
async def test_get_me_raises_on_invalid_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        with pytest.raises(TelegramApiError) as exc:
            await tg.get_me()

    assert exc.value.status == 502


def test_telegram_empty_token_raises() -> None:
    with pytest.raises(ValueError, match="empty"):
        TelegramClient("")


@pytest.mark.anyio
async def test_close_leaves_external_client_open() -> None:
    async with httpx.AsyncClient() as ext:
        client = TelegramClient("123:abc", client=ext)
        await client.close()
        assert not ext.is_closed


@pytest.mark.anyio
async def test_get_chat_member_returns_none_for_unknown_user() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        seen.append(payload)
        if payload["user_id"] == 7:
            return _ok(request, {"status": "member", "user": {"id": 7}})
        return httpx.Response(
            400,
            json={"ok": False, "error_code": 400, "description": "Bad Request: user not found"},
            request=request,
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tg = TelegramClient("123:abc", client=client)
        member = await tg.get_chat_member(-100, 7)
        missing = await tg.get_chat_member(-100, 8)

    assert member == {"status": "member", "user": {"id": 7}}
    assert missing is None
    assert seen[0] == {"chat_id": -100, "user_id": 7}

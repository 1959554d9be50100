from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import anyio
import httpx

from ..logging import get_logger

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramError(Exception):
    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        status: int | None = None,
        description: str | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.status = status
        self.description = description


class TelegramNetworkError(TelegramError):
    pass


class TelegramConflictError(TelegramError):
    """Another process is polling ``getUpdates`` with the same bot token."""


class TelegramApiError(TelegramError):
    pass


class TelegramRetryAfter(TelegramError):
    def __init__(self, retry_after: float, *, method: str | None = None) -> None:
        super().__init__(f"retry after {retry_after}", method=method, status=429)
        self.retry_after = float(retry_after)


class BotClient(Protocol):
    async def close(self) -> None: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict]: ...

    async def get_me(self) -> dict: ...

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None: ...

    async def edit_message_text(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None: ...

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        *,
        show_alert: bool = False,
    ) -> bool: ...

    async def get_chat_member(self, chat_id: int | str, user_id: int | str) -> dict | None: ...


_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


def _retry_after_from_payload(payload: dict[str, Any]) -> float | None:
    params = payload.get("parameters")
    if isinstance(params, dict):
        retry_after = params.get("retry_after")
        if isinstance(retry_after, (int, float)):
            return float(retry_after)
    description = payload.get("description")
    if isinstance(description, str):
        match = _RETRY_AFTER_RE.search(description)
        if match:
            return float(match.group(1))
    return None


class TelegramClient:
    """Bot API client.

    ``get_updates`` and ``get_me`` raise classified ``TelegramError``s so the
    connection supervisor can decide what to do. Outbound calls log failures
    and return ``None``; a rate limit is waited out once before giving up.
    """

    def __init__(
        self,
        token: str,
        timeout_s: float = 120,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = TELEGRAM_API_BASE,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._base = f"{base_url.rstrip('/')}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None
        self._sleep = sleep

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _call(self, method: str, json_data: dict[str, Any]) -> Any:
        logger.debug("telegram.request", method=method, payload=json_data)
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=json_data)
        except httpx.HTTPError as exc:
            raise TelegramNetworkError(
                f"{exc.__class__.__name__}: {exc}", method=method
            ) from exc

        try:
            payload = resp.json()
        except ValueError:
            payload = None

        if not isinstance(payload, dict):
            raise TelegramApiError(
                f"invalid response from {method}",
                method=method,
                status=resp.status_code,
                description=resp.text,
            )

        if payload.get("ok"):
            logger.debug("telegram.response", method=method, payload=payload)
            return payload.get("result")

        status = payload.get("error_code") or resp.status_code
        description = str(payload.get("description") or "")
        if status == 429:
            retry_after = _retry_after_from_payload(payload)
            if retry_after is not None:
                logger.info("telegram.rate_limited", method=method, retry_after=retry_after)
                raise TelegramRetryAfter(retry_after, method=method)
        if status == 409:
            raise TelegramConflictError(
                description or "conflict", method=method, status=409, description=description
            )
        raise TelegramApiError(
            description or f"{method} failed",
            method=method,
            status=status,
            description=description,
        )

    async def _post(self, method: str, json_data: dict[str, Any]) -> Any | None:
        for attempt in range(2):
            try:
                return await self._call(method, json_data)
            except TelegramRetryAfter as exc:
                if attempt:
                    logger.error("telegram.rate_limit_exhausted", method=method)
                    return None
                await self._sleep(exc.retry_after)
            except TelegramNetworkError as exc:
                logger.error("telegram.network_error", method=method, error=str(exc))
                return None
            except TelegramError as exc:
                logger.error(
                    "telegram.api_error",
                    method=method,
                    status=exc.status,
                    description=exc.description,
                )
                return None
        return None

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict]:
        params: dict[str, Any] = {"timeout": timeout_s}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        result = await self._call("getUpdates", params)
        return result if isinstance(result, list) else []

    async def get_me(self) -> dict:
        result = await self._call("getMe", {})
        if not isinstance(result, dict):
            raise TelegramApiError("getMe returned no user", method="getMe")
        return result

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if parse_mode is not None:
            params["parse_mode"] = parse_mode
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        if disable_web_page_preview is not None:
            params["disable_web_page_preview"] = disable_web_page_preview
        return await self._post("sendMessage", params)  # type: ignore[return-value]

    async def edit_message_text(
        self,
        chat_id: int | str,
        message_id: int,
        text: str,
        *,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
        disable_web_page_preview: bool | None = None,
    ) -> dict | None:
        params: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
        }
        if parse_mode is not None:
            params["parse_mode"] = parse_mode
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        if disable_web_page_preview is not None:
            params["disable_web_page_preview"] = disable_web_page_preview
        return await self._post("editMessageText", params)  # type: ignore[return-value]

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        *,
        show_alert: bool = False,
    ) -> bool:
        params: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text is not None:
            params["text"] = text
        if show_alert:
            params["show_alert"] = True
        return bool(await self._post("answerCallbackQuery", params))

    async def get_chat_member(self, chat_id: int | str, user_id: int | str) -> dict | None:
        result = await self._post("getChatMember", {"chat_id": chat_id, "user_id": user_id})
        return result if isinstance(result, dict) else None

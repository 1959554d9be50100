from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import TYPE_CHECKING

import anyio

from ..logging import get_logger
from .client import (
    BotClient,
    TelegramConflictError,
    TelegramError,
    TelegramNetworkError,
    TelegramRetryAfter,
)
from .parsing import parse_incoming_update
from .types import TelegramIncomingUpdate

if TYPE_CHECKING:
    from anyio.abc import TaskGroup

logger = get_logger(__name__)

ALLOWED_UPDATES = ["message", "callback_query"]
API_ERROR_PAUSE_S = 2.0

ErrorCallback = Callable[[Exception], Awaitable[None]]


class UpdatePoller:
    """Long-polls ``getUpdates`` in a cancellable task and queues parsed updates.

    A conflict or network failure ends the polling task; the error is handed to
    ``on_error`` in a separate task so the callback may restart polling. Rate
    limits are waited out and other API errors pause briefly before retrying.
    """

    def __init__(
        self,
        bot: BotClient,
        *,
        timeout_s: int = 50,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        buffer_size: int = 100,
    ) -> None:
        self._bot = bot
        self._timeout_s = timeout_s
        self._sleep = sleep
        self._send, self._receive = anyio.create_memory_object_stream[
            TelegramIncomingUpdate
        ](max_buffer_size=buffer_size)
        self._tg: TaskGroup | None = None
        self._scope: anyio.CancelScope | None = None
        self._stopped: anyio.Event | None = None
        self._offset: int | None = None
        self._polled_since_start = False
        self.on_error: ErrorCallback | None = None
        self.on_success: Callable[[], None] | None = None

    def attach(self, task_group: TaskGroup) -> None:
        self._tg = task_group

    def is_receiving(self) -> bool:
        return self._scope is not None

    async def start_receiving(self) -> None:
        if self._tg is None:
            raise RuntimeError("poller is not attached to a task group")
        if self.is_receiving():
            return
        await self._tg.start(self._run)
        logger.info("polling.started")

    async def stop_receiving(self) -> None:
        scope, stopped = self._scope, self._stopped
        if scope is None:
            return
        scope.cancel()
        if stopped is not None:
            await stopped.wait()
        logger.info("polling.stopped")

    async def probe_liveness(self) -> bool:
        try:
            await self._bot.get_me()
        except TelegramError as exc:
            logger.warning("polling.probe_failed", error=str(exc))
            return False
        return True

    async def updates(self) -> AsyncIterator[TelegramIncomingUpdate]:
        async with self._receive:
            async for update in self._receive:
                yield update

    async def aclose(self) -> None:
        await self.stop_receiving()
        await self._send.aclose()

    async def _run(self, *, task_status=anyio.TASK_STATUS_IGNORED) -> None:
        stopped = anyio.Event()
        failure: Exception | None = None
        with anyio.CancelScope() as scope:
            self._scope = scope
            self._stopped = stopped
            self._polled_since_start = False
            task_status.started()
            try:
                failure = await self._poll_until_failure()
            finally:
                self._scope = None
                stopped.set()
        if failure is not None:
            self._report(failure)

    async def _poll_until_failure(self) -> Exception:
        while True:
            try:
                raw_updates = await self._bot.get_updates(
                    offset=self._offset,
                    timeout_s=self._timeout_s,
                    allowed_updates=ALLOWED_UPDATES,
                )
            except TelegramRetryAfter as exc:
                await self._sleep(exc.retry_after)
                continue
            except TelegramConflictError as exc:
                logger.error("polling.conflict", error=str(exc))
                return exc
            except TelegramNetworkError as exc:
                logger.warning("polling.network_error", error=str(exc))
                return exc
            except TelegramError as exc:
                logger.warning("polling.api_error", error=str(exc), status=exc.status)
                self._report(exc)
                await self._sleep(API_ERROR_PAUSE_S)
                continue

            if not self._polled_since_start:
                self._polled_since_start = True
                if self.on_success is not None:
                    self.on_success()
            for raw in raw_updates:
                update_id = raw.get("update_id")
                if isinstance(update_id, int):
                    self._offset = update_id + 1
                parsed = parse_incoming_update(raw)
                if parsed is not None:
                    await self._send.send(parsed)

    def _report(self, exc: Exception) -> None:
        if self.on_error is None or self._tg is None:
            return
        self._tg.start_soon(self.on_error, exc)

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal, Protocol

import anyio

from ..config import ConnectionSettings
from ..logging import get_logger
from .client import TelegramConflictError, TelegramNetworkError

logger = get_logger(__name__)

ConnectionState = Literal["connected", "reconnecting", "failed"]

POLLING_BACKOFF_GROWTH = 1.5


class Receiver(Protocol):
    async def start_receiving(self) -> None: ...

    async def stop_receiving(self) -> None: ...

    def is_receiving(self) -> bool: ...

    async def probe_liveness(self) -> bool: ...


@dataclass(slots=True)
class ConnectionHealth:
    reconnect_delay_s: float
    polling_retry_delay_s: float
    state: ConnectionState = "connected"
    reconnect_attempts: int = 0
    last_successful_connection_at: float | None = None
    polling_retry_count: int = 0
    final_recovery_used: bool = False
    polling_gave_up: bool = False
    fatal_error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state == "connected"


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    state: ConnectionState
    receiving: bool
    reconnect_attempts: int
    max_reconnect_attempts: int
    reconnect_delay_s: float
    polling_retry_count: int
    last_successful_connection_at: float | None
    fatal_error: str | None
    recovering: bool
    polling_gave_up: bool = False

    @property
    def connected(self) -> bool:
        return self.state == "connected"

    @property
    def needs_intervention(self) -> bool:
        return self.state == "failed"

    def last_success_iso(self) -> str | None:
        if self.last_successful_connection_at is None:
            return None
        return datetime.fromtimestamp(
            self.last_successful_connection_at, tz=timezone.utc
        ).isoformat(timespec="seconds")


class ConnectionSupervisor:
    """Keeps the inbound update stream alive.

    Three recovery paths share one health record: the liveness probe with its
    reconnect backoff, the polling error handler with its own retry counter,
    and a coarse check that restarts a stream that is simply not running. Only
    one of them may restart the stream at a time (``_recovering``).

    Exhausted polling retries only silence the polling path. Exhausted
    reconnect attempts put the state in ``failed``: the probe and polling
    paths stop, while the coarse check keeps the stream running so operator
    commands still arrive; ``reset`` clears the failure. A conflict stops
    every path.
    """

    def __init__(
        self,
        receiver: Receiver,
        settings: ConnectionSettings | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._receiver = receiver
        self._settings = settings or ConnectionSettings()
        self._sleep = sleep
        self._clock = clock
        self._health = ConnectionHealth(
            reconnect_delay_s=self._settings.reconnect_delay_s,
            polling_retry_delay_s=self._settings.polling_retry_delay_s,
        )
        self._restart_lock = anyio.Lock()
        self._recovering = False

    @property
    def health(self) -> ConnectionHealth:
        return self._health

    def status(self) -> ConnectionStatus:
        health = self._health
        return ConnectionStatus(
            state=health.state,
            receiving=self._receiver.is_receiving(),
            reconnect_attempts=health.reconnect_attempts,
            max_reconnect_attempts=self._settings.max_reconnect_attempts,
            reconnect_delay_s=health.reconnect_delay_s,
            polling_retry_count=health.polling_retry_count,
            last_successful_connection_at=health.last_successful_connection_at,
            fatal_error=health.fatal_error,
            recovering=self._recovering,
            polling_gave_up=health.polling_gave_up,
        )

    def _halted(self) -> bool:
        return self._health.state == "failed"

    def _begin_recovery(self, source: str) -> bool:
        if self._recovering:
            logger.debug("supervisor.recovery.in_progress", source=source)
            return False
        self._recovering = True
        return True

    def _mark_connected(self) -> None:
        health = self._health
        health.state = "connected"
        health.reconnect_attempts = 0
        health.reconnect_delay_s = self._settings.reconnect_delay_s
        health.last_successful_connection_at = self._clock()

    def _mark_failed(self, reason: str) -> None:
        self._health.state = "failed"
        logger.error("supervisor.failed", reason=reason)

    async def _restart(self) -> bool:
        async with self._restart_lock:
            await self._receiver.stop_receiving()
            await self._receiver.start_receiving()
        return self._receiver.is_receiving()

    def record_poll_success(self) -> None:
        health = self._health
        health.polling_retry_count = 0
        health.polling_retry_delay_s = self._settings.polling_retry_delay_s
        health.final_recovery_used = False
        health.polling_gave_up = False
        health.last_successful_connection_at = self._clock()

    async def start(self) -> None:
        await self._receiver.start_receiving()
        if await self._receiver.probe_liveness():
            self._mark_connected()
        else:
            logger.warning("supervisor.start.probe_failed")

    async def check_liveness(self) -> bool:
        if self._halted():
            return False
        if await self._receiver.probe_liveness():
            if not self._recovering:
                self._mark_connected()
            return True
        logger.warning("supervisor.liveness.failed")
        await self.handle_disconnection()
        return False

    async def handle_disconnection(self) -> None:
        if self._halted():
            logger.debug("supervisor.recovery.halted", source="liveness")
            return
        if not self._begin_recovery("liveness"):
            return
        health = self._health
        settings = self._settings
        try:
            health.state = "reconnecting"
            while health.reconnect_attempts < settings.max_reconnect_attempts:
                health.reconnect_attempts += 1
                delay = health.reconnect_delay_s
                logger.info(
                    "supervisor.reconnect.scheduled",
                    attempt=health.reconnect_attempts,
                    max_attempts=settings.max_reconnect_attempts,
                    delay_s=delay,
                )
                await self._sleep(delay)
                if await self._restart() and await self._receiver.probe_liveness():
                    self._mark_connected()
                    logger.info("supervisor.reconnect.succeeded")
                    return
                health.reconnect_delay_s = min(
                    delay * settings.reconnect_growth, settings.reconnect_delay_max_s
                )
                logger.warning(
                    "supervisor.reconnect.failed",
                    attempt=health.reconnect_attempts,
                    next_delay_s=health.reconnect_delay_s,
                )
            self._mark_failed("max reconnect attempts reached")
        finally:
            self._recovering = False

    async def handle_polling_error(self, exc: Exception) -> None:
        if isinstance(exc, TelegramConflictError):
            # retrying would fight the other instance for updates
            self._health.fatal_error = str(exc) or "conflict"
            self._mark_failed("another instance is polling with this bot token")
            return
        if not isinstance(exc, TelegramNetworkError):
            logger.warning("supervisor.polling_error", error=str(exc))
            return
        health = self._health
        if self._halted() or health.polling_gave_up:
            logger.debug("supervisor.polling.ignored", error=str(exc), state=health.state)
            return
        if not self._begin_recovery("polling"):
            return
        settings = self._settings
        try:
            health.polling_retry_count += 1
            if health.polling_retry_count <= settings.max_polling_retries:
                delay = health.polling_retry_delay_s
                logger.info(
                    "supervisor.polling.retry",
                    attempt=health.polling_retry_count,
                    max_attempts=settings.max_polling_retries,
                    delay_s=delay,
                    error=str(exc),
                )
                await self._sleep(delay)
                health.polling_retry_delay_s = min(
                    delay * POLLING_BACKOFF_GROWTH, settings.polling_retry_delay_max_s
                )
                await self._restart()
                return
            if health.final_recovery_used:
                health.polling_gave_up = True
                logger.error(
                    "supervisor.polling.gave_up",
                    attempts=health.polling_retry_count - 1,
                )
                return
            health.final_recovery_used = True
            logger.error(
                "supervisor.polling.retries_exhausted",
                attempts=health.polling_retry_count - 1,
                final_recovery_in_s=settings.final_recovery_delay_s,
            )
            await self._sleep(settings.final_recovery_delay_s)
            health.polling_retry_delay_s = settings.polling_retry_delay_s
            logger.info("supervisor.polling.final_recovery")
            await self._restart()
        finally:
            self._recovering = False

    async def check_receiving(self) -> bool:
        """Restart the stream if it stopped; returns True when a restart ran."""
        if self._receiver.is_receiving():
            return False
        if self._health.fatal_error is not None:
            return False
        if not self._begin_recovery("receiving_check"):
            return False
        try:
            logger.warning("supervisor.receiving.restart", state=self._health.state)
            await self._restart()
        finally:
            self._recovering = False
        return True

    async def reset(self) -> ConnectionStatus:
        """Operator intervention: clear failure state and reconnect now."""
        health = self._health
        health.fatal_error = None
        health.reconnect_attempts = 0
        health.reconnect_delay_s = self._settings.reconnect_delay_s
        health.polling_retry_count = 0
        health.polling_retry_delay_s = self._settings.polling_retry_delay_s
        health.final_recovery_used = False
        health.polling_gave_up = False
        health.state = "reconnecting"
        logger.info("supervisor.reset")
        if self._begin_recovery("reset"):
            try:
                if await self._restart() and await self._receiver.probe_liveness():
                    self._mark_connected()
            finally:
                self._recovering = False
        return self.status()

    async def _every(self, interval_s: float, check: Callable[[], Awaitable[object]]) -> None:
        while True:
            await self._sleep(interval_s)
            await check()

    async def run(self) -> None:
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._every, self._settings.liveness_interval_s, self.check_liveness)
            tg.start_soon(
                self._every,
                self._settings.receiving_check_interval_s,
                self.check_receiving,
            )

"""Database connection-loss detection and bounded reconnection.

Failure signals from the store land on an ``asyncio.Queue``; ``run`` consumes
them and, when the connection was healthy, starts a single retry task. Any
signal that arrives while that task is active is coalesced into it. The
retry task reports its outcome through ``ReconnectionState.phase``:

    CONNECTED --failure--> RECONNECTING --connect ok--> CONNECTED
                           RECONNECTING --connect failed, attempts left--> RECONNECTING
                           RECONNECTING --connect failed, none left--> EXHAUSTED

EXHAUSTED is terminal: the shutdown callback is awaited once with a
non-zero status and no further signals are acted on.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING

import structlog

from cognicity.models.monitor import ConnectionPhase, ReconnectionState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = structlog.get_logger()

EXHAUSTED_EXIT_STATUS = 1


class ConnectionMonitor:
    """Serialises reconnection attempts against the shared database connection."""

    def __init__(
        self,
        state: ReconnectionState,
        connect: Callable[[], Awaitable[None]],
        shutdown: Callable[[int, str], Awaitable[None]],
    ) -> None:
        self.state = state
        self._connect = connect
        self._shutdown = shutdown
        self._events: asyncio.Queue[str] = asyncio.Queue()
        self._retry_task: asyncio.Task[None] | None = None

    @property
    def phase(self) -> ConnectionPhase:
        return self.state.phase

    def notify_failure(self, reason: str) -> None:
        """Report that the connection became unusable. Safe to call any number of times."""
        self._events.put_nowait(reason)

    async def run(self) -> None:
        """Consume failure signals until cancelled."""
        while True:
            reason = await self._events.get()
            try:
                self._on_failure(reason)
            finally:
                self._events.task_done()

    async def wait_idle(self) -> None:
        """Wait until every queued failure signal has been consumed."""
        await self._events.join()

    async def wait_settled(self) -> None:
        """Wait for the active retry task, if any, to finish."""
        if self._retry_task is not None:
            await asyncio.shield(self._retry_task)

    async def stop(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            self._retry_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._retry_task

    def _on_failure(self, reason: str) -> None:
        if self.state.phase is not ConnectionPhase.CONNECTED:
            log.debug("store_failure_coalesced", phase=self.state.phase, reason=reason)
            return

        log.error("store_connection_lost", reason=reason)
        self.state.phase = ConnectionPhase.RECONNECTING
        self.state.attempt = 0
        self._retry_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        delay_seconds = self.state.delay_ms / 1000
        while True:
            try:
                await self._connect()
            except Exception as exc:
                self.state.attempt += 1
                if self.state.attempt >= self.state.max_attempts:
                    self.state.phase = ConnectionPhase.EXHAUSTED
                    log.critical(
                        "store_reconnect_exhausted",
                        attempts=self.state.attempt,
                        error=str(exc),
                    )
                    await self._shutdown(EXHAUSTED_EXIT_STATUS, "store_reconnect_exhausted")
                    return

                log.warning(
                    "store_reconnect_failed",
                    attempt=self.state.attempt,
                    max_attempts=self.state.max_attempts,
                    retry_in_ms=self.state.delay_ms,
                    error=str(exc),
                )
                await asyncio.sleep(delay_seconds)
                continue

            log.info("store_reconnected", attempts=self.state.attempt + 1)
            self.state.attempt = 0
            self.state.phase = ConnectionPhase.CONNECTED
            return

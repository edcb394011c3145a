"""Unit tests for the reconnection state machine in monitor.py.

Each test drives ConnectionMonitor with a scripted ``connect`` coroutine and
an AsyncMock shutdown callback, then inspects the resulting phase, attempt
counter and number of connect calls.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from cognicity.models.monitor import ConnectionPhase, ReconnectionState
from cognicity.monitor import EXHAUSTED_EXIT_STATUS, ConnectionMonitor

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable


@pytest.fixture()
def make_monitor() -> Callable[..., ConnectionMonitor]:
    def factory(
        connect: AsyncMock,
        shutdown: AsyncMock,
        *,
        max_attempts: int = 3,
        delay_ms: int = 0,
    ) -> ConnectionMonitor:
        state = ReconnectionState(max_attempts=max_attempts, delay_ms=delay_ms)
        return ConnectionMonitor(state, connect=connect, shutdown=shutdown)

    return factory


@pytest.fixture()
async def running() -> AsyncIterator[Callable[[ConnectionMonitor], None]]:
    """Start ``monitor.run()`` in the background; cancelled at teardown."""
    tasks: list[asyncio.Task[None]] = []

    def start(monitor: ConnectionMonitor) -> None:
        tasks.append(asyncio.create_task(monitor.run()))

    yield start

    for task in tasks:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


async def _fail_and_settle(monitor: ConnectionMonitor, reason: str = "terminated") -> None:
    monitor.notify_failure(reason)
    await monitor.wait_idle()
    await monitor.wait_settled()


class TestReconnectionState:
    def test_starts_connected(self) -> None:
        state = ReconnectionState(max_attempts=3, delay_ms=100)
        assert state.phase is ConnectionPhase.CONNECTED
        assert state.attempt == 0

    @pytest.mark.parametrize("max_attempts", [0, -1])
    def test_max_attempts_must_be_positive(self, max_attempts: int) -> None:
        with pytest.raises(ValueError):
            ReconnectionState(max_attempts=max_attempts, delay_ms=0)

    def test_delay_must_not_be_negative(self) -> None:
        with pytest.raises(ValueError):
            ReconnectionState(max_attempts=1, delay_ms=-5)


class TestExhaustion:
    async def test_every_attempt_fails(self, make_monitor, running) -> None:
        connect = AsyncMock(side_effect=OSError("connection refused"))
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=3)
        running(monitor)

        await _fail_and_settle(monitor)

        assert connect.await_count == 3
        assert monitor.phase is ConnectionPhase.EXHAUSTED
        shutdown.assert_awaited_once_with(EXHAUSTED_EXIT_STATUS, "store_reconnect_exhausted")
        assert EXHAUSTED_EXIT_STATUS != 0

    async def test_single_attempt_budget(self, make_monitor, running) -> None:
        connect = AsyncMock(side_effect=OSError("down"))
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=1)
        running(monitor)

        await _fail_and_settle(monitor)

        assert connect.await_count == 1
        assert monitor.phase is ConnectionPhase.EXHAUSTED
        shutdown.assert_awaited_once()

    async def test_signals_after_exhaustion_are_ignored(self, make_monitor, running) -> None:
        connect = AsyncMock(side_effect=OSError("down"))
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=2)
        running(monitor)

        await _fail_and_settle(monitor)
        await _fail_and_settle(monitor)

        assert connect.await_count == 2
        assert monitor.phase is ConnectionPhase.EXHAUSTED
        shutdown.assert_awaited_once()


class TestRecovery:
    async def test_second_attempt_succeeds(self, make_monitor, running) -> None:
        connect = AsyncMock(side_effect=[OSError("still down"), None])
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=3)
        running(monitor)

        await _fail_and_settle(monitor)

        assert connect.await_count == 2
        assert monitor.phase is ConnectionPhase.CONNECTED
        assert monitor.state.attempt == 0
        shutdown.assert_not_awaited()

        # No further attempts without a new failure signal
        for _ in range(5):
            await asyncio.sleep(0)
        assert connect.await_count == 2

    async def test_first_attempt_succeeds(self, make_monitor, running) -> None:
        connect = AsyncMock(return_value=None)
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown)
        running(monitor)

        await _fail_and_settle(monitor)

        assert connect.await_count == 1
        assert monitor.phase is ConnectionPhase.CONNECTED

    async def test_new_failure_after_recovery_starts_fresh_episode(
        self, make_monitor, running
    ) -> None:
        # Two failures then success, twice over: each episode gets the full budget.
        connect = AsyncMock(side_effect=[OSError(), OSError(), None, OSError(), OSError(), None])
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=3)
        running(monitor)

        await _fail_and_settle(monitor)
        assert monitor.phase is ConnectionPhase.CONNECTED
        await _fail_and_settle(monitor)

        assert connect.await_count == 6
        assert monitor.phase is ConnectionPhase.CONNECTED
        assert monitor.state.attempt == 0
        shutdown.assert_not_awaited()


class TestCoalescing:
    async def test_signals_during_reconnect_share_one_sequence(
        self, make_monitor, running
    ) -> None:
        gate = asyncio.Event()
        attempts_seen: list[int] = []

        async def connect() -> None:
            attempts_seen.append(monitor.state.attempt)
            if len(attempts_seen) == 1:
                await gate.wait()
                raise OSError("first attempt fails")

        shutdown = AsyncMock()
        monitor = make_monitor(AsyncMock(side_effect=connect), shutdown, max_attempts=3)
        running(monitor)

        monitor.notify_failure("terminated")
        await monitor.wait_idle()
        assert monitor.phase is ConnectionPhase.RECONNECTING

        monitor.notify_failure("query_failed")
        monitor.notify_failure("terminated")
        await monitor.wait_idle()
        gate.set()
        await monitor.wait_settled()

        # One attempt per connect call, counter advanced exactly once between them
        assert attempts_seen == [0, 1]
        assert monitor.phase is ConnectionPhase.CONNECTED
        assert monitor.state.attempt == 0
        shutdown.assert_not_awaited()


class TestDelay:
    async def test_waits_delay_between_attempts(self, make_monitor, running) -> None:
        connect = AsyncMock(side_effect=OSError("down"))
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=3, delay_ms=250)
        running(monitor)

        with patch("cognicity.monitor.asyncio.sleep", new=AsyncMock()) as fake_sleep:
            await _fail_and_settle(monitor)

        # A wait after each non-final failure, none after exhaustion
        assert fake_sleep.await_count == 2
        fake_sleep.assert_awaited_with(0.25)

    async def test_stop_cancels_pending_retry(self, make_monitor, running) -> None:
        connect = AsyncMock(side_effect=OSError("down"))
        shutdown = AsyncMock()
        monitor = make_monitor(connect, shutdown, max_attempts=5, delay_ms=60_000)
        running(monitor)

        monitor.notify_failure("terminated")
        await monitor.wait_idle()
        await asyncio.sleep(0)
        await monitor.stop()

        assert connect.await_count == 1
        assert monitor.phase is ConnectionPhase.RECONNECTING
        shutdown.assert_not_awaited()

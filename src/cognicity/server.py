"""Gateway entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Open the report store and wire the connection monitor to it
- Build AppState and the Starlette app
- Run uvicorn until a shutdown is requested, then flush logs and exit
"""

from __future__ import annotations

import asyncio
import sys

import structlog

from cognicity import __version__
from cognicity.app import create_app
from cognicity.cache import ResponseCache
from cognicity.config import Settings
from cognicity.database import ReportStore
from cognicity.logs import setup_logging
from cognicity.models.monitor import ReconnectionState
from cognicity.monitor import ConnectionMonitor
from cognicity.shutdown import ShutdownCoordinator
from cognicity.state import AppState
from cognicity.transport import build_server

log = structlog.get_logger()

STARTUP_FAILURE_STATUS = 1


async def run(settings: Settings) -> int:
    """Serve until shutdown. Returns the process exit status."""
    log.info(
        "server_starting",
        version=__version__,
        host=settings.server.host,
        port=settings.server.port,
    )

    store = ReportStore(settings.database)
    try:
        await store.open()
    except Exception:
        log.critical("store_connect_failed", exc_info=True)
        return STARTUP_FAILURE_STATUS

    coordinator = ShutdownCoordinator()
    monitor = ConnectionMonitor(
        ReconnectionState(
            max_attempts=settings.database.reconnection_attempts,
            delay_ms=settings.database.reconnection_delay_ms,
        ),
        connect=store.reconnect,
        shutdown=coordinator.shutdown,
    )
    store.set_failure_listener(monitor.notify_failure)

    state = AppState(
        settings=settings,
        cache=ResponseCache(),
        store=store,
        monitor=monitor,
        shutdown=coordinator,
    )
    server = build_server(create_app(state), settings, coordinator)

    try:
        await server.serve()
    finally:
        await store.close()

    if coordinator.exit_status is not None:
        return coordinator.exit_status
    if not server.started:
        log.critical("server_start_failed")
        return STARTUP_FAILURE_STATUS
    return 0


async def _main(settings: Settings) -> int:
    pipeline = setup_logging(settings)
    try:
        status = await run(settings)
        log.info("application_exiting", status=status)
    finally:
        await pipeline.flush(settings.shutdown.flush_timeout_seconds)
    return status


def main() -> None:
    settings = Settings()
    sys.exit(asyncio.run(_main(settings)))


if __name__ == "__main__":
    main()

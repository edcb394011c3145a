"""Process shutdown coordination.

Every way out of the process goes through ``ShutdownCoordinator``: operator
signals (status 0), reconnection exhaustion and an unexpectedly dead
monitor (status 1). The first request wins; later ones are logged and
ignored. The coordinator only asks the HTTP server to stop; the entrypoint
then closes the store, flushes logs and exits with ``exit_status``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

log = structlog.get_logger()


class ShutdownCoordinator:
    def __init__(self, request_exit: Callable[[], None] | None = None) -> None:
        self._request_exit = request_exit
        self.exit_status: int | None = None
        self.reason: str | None = None

    @property
    def requested(self) -> bool:
        return self.exit_status is not None

    def attach(self, request_exit: Callable[[], None]) -> None:
        self._request_exit = request_exit

    def request(self, status: int, reason: str) -> None:
        """Begin shutting down with ``status``. Safe to call from a signal handler."""
        if self.exit_status is not None:
            log.info("shutdown_already_requested", status=status, reason=reason)
            return
        self.exit_status = status
        self.reason = reason
        if status == 0:
            log.info("application_shutting_down", reason=reason)
        else:
            log.error("application_shutting_down", reason=reason, status=status)
        if self._request_exit is not None:
            self._request_exit()

    async def shutdown(self, status: int, reason: str) -> None:
        self.request(status, reason)

"""Application state container.

AppState is created once at startup and handed to the Starlette app, which
exposes it to every request handler as ``request.app.state.cognicity``.
Nothing in the request path reaches for module-level globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cognicity.cache import ResponseCache
    from cognicity.config import Settings
    from cognicity.monitor import ConnectionMonitor
    from cognicity.protocols import ReportStoreProtocol
    from cognicity.shutdown import ShutdownCoordinator


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every request handler."""

    settings: Settings
    cache: ResponseCache
    store: ReportStoreProtocol
    monitor: ConnectionMonitor | None = None
    shutdown: ShutdownCoordinator | None = None

"""Background scheduler coroutines."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from cognicity.state import AppState

log = structlog.get_logger()


async def run_cache_sweep_scheduler(state: AppState) -> None:
    """Periodically drop expired cache entries so they don't pile up unread.

    Reads already ignore expired entries; this only reclaims memory.
    """
    interval_seconds = state.settings.cache.sweep_interval_seconds
    if interval_seconds <= 0:
        return

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = state.cache.purge_expired()
        except Exception:
            log.warning("cache_sweep_error", exc_info=True)
            continue
        if removed:
            log.info("cache_sweep_complete", removed=removed, remaining=len(state.cache))

"""In-process response cache with permanent and time-bounded retention.

Entries are keyed by the exact request path plus query string. Expired
entries are evicted lazily when read; ``purge_expired`` lets a background
task drop them early without changing what ``get`` returns.

All operations are synchronous and never yield to the event loop, so an
entry can't be observed half-written by another request handler.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import structlog

from cognicity.models.cache import CacheEntry

if TYPE_CHECKING:
    from collections.abc import Callable

    from cognicity.models.response import ResponseEnvelope

log = structlog.get_logger()


class ResponseCache:
    """Local, best-effort cache of prepared response envelopes."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, key: str, value: ResponseEnvelope, ttl: float | None = None) -> None:
        """Store ``value`` under ``key``; replaces any existing entry and its policy.

        ``ttl`` is in seconds. ``None`` keeps the entry for the life of the process.
        """
        expires_at = None if ttl is None else self._clock() + ttl
        self._entries[key] = CacheEntry(key=key, payload=value, expires_at=expires_at)

    def get(self, key: str) -> ResponseEnvelope | None:
        """Return the cached envelope, or ``None`` on miss or expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return None
        return entry.payload

    def cache_permanently(self, key: str, value: ResponseEnvelope) -> None:
        self.put(key, value)

    def cache_temporarily(self, key: str, value: ResponseEnvelope, ttl: float) -> None:
        self.put(key, value, ttl)

    def purge_expired(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        if expired:
            log.debug("cache_purge_complete", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

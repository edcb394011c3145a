from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cognicity.models.response import ResponseEnvelope


@dataclass(slots=True)
class CacheEntry:
    """A cached response keyed by request path + query string."""

    key: str
    payload: ResponseEnvelope
    expires_at: float | None = None  # monotonic clock; None = permanent

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at

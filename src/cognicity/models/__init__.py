from __future__ import annotations

from cognicity.models.cache import CacheEntry
from cognicity.models.monitor import ConnectionPhase, ReconnectionState
from cognicity.models.response import ResponseEnvelope

__all__ = [
    # cache
    "CacheEntry",
    # monitor
    "ConnectionPhase",
    "ReconnectionState",
    # response
    "ResponseEnvelope",
]

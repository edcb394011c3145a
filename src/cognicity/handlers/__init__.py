"""Data route handlers.

Each handler receives plain arguments plus AppState and returns the raw
domain data (a GeoJSON collection or ``None``). Caching, output formats
and HTTP wiring live in ``cognicity.app``.
"""

from __future__ import annotations

import math
import time


def time_window(seconds: int, now: float | None = None) -> tuple[int, int]:
    """Return ``(start, end)`` epoch seconds covering the last ``seconds``."""
    now = time.time() if now is None else now
    return math.floor(now - seconds), math.floor(now)

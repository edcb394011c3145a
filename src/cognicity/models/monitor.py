from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class ConnectionPhase(StrEnum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"  # terminal; only shutdown follows


@dataclass
class ReconnectionState:
    """Process-wide reconnection bookkeeping, mutated only by ConnectionMonitor.

    ``attempt`` counts failed connect attempts in the current episode and
    goes back to 0 only when the phase returns to CONNECTED.
    """

    max_attempts: int
    delay_ms: int
    attempt: int = 0
    phase: ConnectionPhase = ConnectionPhase.CONNECTED

    def __post_init__(self) -> None:
        if self.max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must not be negative")

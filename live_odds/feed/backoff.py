"""Reconnect delay policies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class BackoffMode(str, Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class ReconnectPolicy:
    """Delay before reconnect attempt ``n`` (1-based).

    Fixed mode always waits ``interval``; exponential mode doubles from
    ``interval`` and is capped at ``max_delay``.
    """

    mode: BackoffMode = BackoffMode.FIXED
    interval: float = 3.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        if self.mode is BackoffMode.FIXED:
            return self.interval
        return min(self.interval * 2 ** (attempt - 1), self.max_delay)

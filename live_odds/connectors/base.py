from __future__ import annotations

import abc
from dataclasses import dataclass
from enum import Enum

from live_odds.models import MarketOutcome, SessionRecord


class MarketMetadataSource(abc.ABC):
    """Resolves a market id to its ordered outcomes."""

    @abc.abstractmethod
    async def connect(self) -> None:
        """Initialize connection."""

    @abc.abstractmethod
    async def disconnect(self) -> None:
        """Clean up resources."""

    @abc.abstractmethod
    async def fetch_outcomes(self, market_id: str) -> list[MarketOutcome]:
        """Ordered (label, instrument id) pairs for a market."""


class ClaimStatus(str, Enum):
    CLAIMED = "claimed"
    NOT_FOUND = "not_found"
    ALREADY_USED = "already_used"


@dataclass
class ClaimResult:
    status: ClaimStatus
    record: SessionRecord | None = None

    @property
    def claimed(self) -> bool:
        return self.status is ClaimStatus.CLAIMED


class SessionStore(abc.ABC):
    """Single-use betting sessions: the first claim of a token wins."""

    @abc.abstractmethod
    async def connect(self) -> None:
        """Initialize storage."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release storage."""

    @abc.abstractmethod
    async def create(self, user_id: str, market_id: str, ttl: int) -> SessionRecord:
        """Create an unused session valid for ``ttl`` seconds."""

    @abc.abstractmethod
    async def claim(self, token: str) -> ClaimResult:
        """Atomically mark a session as used."""

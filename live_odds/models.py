from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Boundaries substituted for an empty side so mid-price stays on [0, 1]
EMPTY_BID_PRICE = 0.0
EMPTY_ASK_PRICE = 1.0


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class TradeSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class OrderBookLevel(BaseModel):
    """Single level in order book."""

    model_config = ConfigDict(allow_inf_nan=False)

    price: float
    size: float  # Number of shares available at this price


class OrderBookDepth(BaseModel):
    """Order book for one instrument as pushed by the feed."""

    bids: list[OrderBookLevel] = Field(default_factory=list)
    asks: list[OrderBookLevel] = Field(default_factory=list)

    @property
    def best_bid(self) -> float:
        """Highest bid price, 0 when the bid side is empty.

        The feed does not guarantee ordering, so the side is scanned.
        """
        if not self.bids:
            return EMPTY_BID_PRICE
        return max(level.price for level in self.bids)

    @property
    def best_ask(self) -> float:
        """Lowest ask price, 1 when the ask side is empty."""
        if not self.asks:
            return EMPTY_ASK_PRICE
        return min(level.price for level in self.asks)

    @property
    def mid_price(self) -> float:
        return (self.best_bid + self.best_ask) / 2

    @property
    def spread(self) -> float:
        return self.best_ask - self.best_bid


class DerivedOdds(BaseModel):
    """Human-facing odds for one instrument, recomputed on every book event."""

    instrument_id: str
    probability_pct: float  # 0-100
    mid_price: float  # 0-1
    spread: float
    american_odds: int  # -217, +217, ...
    european_odds: float  # 1.46, 3.17, ...
    best_bid: float
    best_ask: float
    timestamp: int  # epoch ms


class ExecutedTrade(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    instrument_id: str
    outcome_label: str
    side: TradeSide
    price: float
    size: float
    timestamp: int  # epoch ms as reported by the feed

    @field_validator("side", mode="before")
    @classmethod
    def _upper_side(cls, value):
        if isinstance(value, str):
            return value.upper()
        return value


class MarketSnapshot(BaseModel):
    """State handed to the presentation layer."""

    is_connected: bool = False
    connection_status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    live_odds: dict[str, DerivedOdds] = Field(default_factory=dict)
    executed_trades: list[ExecutedTrade] = Field(default_factory=list)
    last_update: int | None = None
    last_error: str | None = None
    # Diagnostics
    decode_errors: int = 0
    reconnect_attempts: int = 0


class MarketOutcome(BaseModel):
    """One tradable outcome of a market, as resolved from market metadata."""

    label: str
    instrument_id: str
    price: float | None = None


class SessionStatus(str, Enum):
    UNUSED = "UNUSED"
    USED = "USED"


class SessionRecord(BaseModel):
    token: str
    user_id: str
    market_id: str
    status: SessionStatus = SessionStatus.UNUSED
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime
    used_at: datetime | None = None


def build_outcome_map(instrument_ids: list[str], outcome_labels: list[str]) -> dict[str, str]:
    """Map each instrument id to its outcome label by position.

    Instruments without a label get a "Token {index}" placeholder.
    """
    mapping: dict[str, str] = {}
    for index, instrument_id in enumerate(instrument_ids):
        label = outcome_labels[index] if index < len(outcome_labels) else ""
        mapping[instrument_id] = label or f"Token {index}"
    return mapping

"""In-memory market state: latest odds per instrument and recent trades."""

from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from live_odds.engine.odds import derive_odds
from live_odds.feed.decoder import (
    BookEvent,
    FeedEvent,
    LastTradePriceEvent,
    PriceChangeEvent,
    TickSizeChangeEvent,
    UnknownEvent,
)
from live_odds.models import DerivedOdds, ExecutedTrade, OrderBookDepth, OrderBookLevel, TradeSide

logger = logging.getLogger(__name__)

DEFAULT_TRADE_LIMIT = 50
UNKNOWN_OUTCOME_LABEL = "Unknown"


def _now_ms() -> int:
    return int(time.time() * 1000)


class MarketStateStore:
    """Owns DerivedOdds and ExecutedTrade collections.

    All mutations go through the ``apply_*`` methods, called from the
    single feed-processing path. After ``close()`` every mutation is a no-op.
    """

    def __init__(
        self,
        outcome_labels: Mapping[str, str] | None = None,
        trade_limit: int = DEFAULT_TRADE_LIMIT,
        clock: Callable[[], int] = _now_ms,
    ):
        self._outcome_labels: dict[str, str] = dict(outcome_labels or {})
        self.trade_limit = trade_limit
        self._clock = clock
        self._odds: dict[str, DerivedOdds] = {}
        self._trades: list[ExecutedTrade] = []
        self._tick_sizes: dict[str, float] = {}
        self._last_update: int | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def live_odds(self) -> dict[str, DerivedOdds]:
        return dict(self._odds)

    @property
    def executed_trades(self) -> list[ExecutedTrade]:
        return list(self._trades)

    @property
    def last_update(self) -> int | None:
        return self._last_update

    def odds_for(self, instrument_id: str) -> DerivedOdds | None:
        return self._odds.get(instrument_id)

    def tick_size(self, instrument_id: str) -> float | None:
        return self._tick_sizes.get(instrument_id)

    def outcome_label(self, instrument_id: str) -> str:
        return self._outcome_labels.get(instrument_id, UNKNOWN_OUTCOME_LABEL)

    def set_outcome_labels(self, outcome_labels: Mapping[str, str]) -> None:
        if self._closed:
            return
        self._outcome_labels = dict(outcome_labels)

    def apply(self, event: FeedEvent) -> bool:
        """Apply one decoded event. Returns True if state changed."""
        if self._closed:
            return False

        if isinstance(event, BookEvent):
            return self.apply_book_event(event.asset_id, event.bids, event.asks) is not None
        elif isinstance(event, LastTradePriceEvent):
            trade = self.apply_trade_event(
                event.asset_id, event.side, event.price, event.size, event.timestamp
            )
            return trade is not None
        elif isinstance(event, PriceChangeEvent):
            self.apply_price_change_event(event)
            return False
        elif isinstance(event, TickSizeChangeEvent):
            return self.apply_tick_size_change(event.asset_id, event.new_tick_size)
        elif isinstance(event, UnknownEvent):
            logger.debug(f"Store ignoring unknown event: {event.event_type!r}")
            return False
        raise TypeError(f"Unhandled feed event: {type(event).__name__}")

    def apply_book_event(
        self,
        instrument_id: str,
        bids: list[OrderBookLevel],
        asks: list[OrderBookLevel],
    ) -> DerivedOdds | None:
        """Recompute odds for an instrument from a full book, replacing any prior entry."""
        if self._closed:
            return None
        now = self._clock()
        odds = derive_odds(instrument_id, OrderBookDepth(bids=bids, asks=asks), timestamp=now)
        self._odds[instrument_id] = odds
        self._last_update = now
        logger.debug(
            f"Book {self.outcome_label(instrument_id)}: {odds.probability_pct:.2f}% "
            f"(spread {odds.spread:.4f})"
        )
        return odds

    def apply_trade_event(
        self,
        instrument_id: str,
        side: TradeSide | str,
        price: float,
        size: float,
        timestamp: str | int,
    ) -> ExecutedTrade | None:
        """Record an executed trade at the head of the bounded history."""
        if self._closed:
            return None
        ts = self._parse_timestamp(timestamp)
        trade = ExecutedTrade(
            id=f"{instrument_id}-{ts}",
            instrument_id=instrument_id,
            outcome_label=self.outcome_label(instrument_id),
            side=side,
            price=price,
            size=size,
            timestamp=ts,
        )
        self._trades.insert(0, trade)
        del self._trades[self.trade_limit:]
        self._last_update = self._clock()
        logger.debug(f"Trade {trade.outcome_label}: {trade.side.value} {trade.size} @ {trade.price}")
        return trade

    def apply_price_change_event(self, event: PriceChangeEvent) -> None:
        """Hook for incremental book updates.

        Books are replaced wholesale on every book event, so price changes
        carry no state of their own here.
        """
        logger.debug(f"Price change for {self.outcome_label(event.asset_id)}: {len(event.changes)} level(s)")

    def apply_tick_size_change(self, instrument_id: str, tick_size: float) -> bool:
        if self._closed:
            return False
        self._tick_sizes[instrument_id] = tick_size
        logger.info(f"Tick size for {self.outcome_label(instrument_id)} is now {tick_size}")
        return True

    def discard(self, instrument_id: str) -> None:
        """Drop derived state for an instrument that is no longer tracked."""
        if self._closed:
            return
        self._odds.pop(instrument_id, None)
        self._tick_sizes.pop(instrument_id, None)

    def clear(self) -> None:
        if self._closed:
            return
        self._odds.clear()
        self._trades.clear()
        self._tick_sizes.clear()
        self._last_update = None

    def close(self) -> None:
        """Discard all state; later mutations are ignored."""
        self.clear()
        self._closed = True

    def _parse_timestamp(self, timestamp: str | int) -> int:
        try:
            return int(timestamp)
        except (TypeError, ValueError):
            return self._clock()

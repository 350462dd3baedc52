"""Tests for the market state store."""

import pytest

from live_odds.feed.decoder import (
    BookEvent,
    LastTradePriceEvent,
    PriceChangeEvent,
    TickSizeChangeEvent,
    UnknownEvent,
)
from live_odds.feed.store import MarketStateStore
from live_odds.models import OrderBookLevel, TradeSide, build_outcome_map

NOW = 1_700_000_000_000


@pytest.fixture
def store():
    """Store with two labelled instruments and a frozen clock."""
    labels = build_outcome_map(["tok_thunder", "tok_pacers"], ["Thunder", "Pacers"])
    return MarketStateStore(labels, clock=lambda: NOW)


def _levels(*pairs):
    return [OrderBookLevel(price=p, size=s) for p, s in pairs]


def test_book_event_derives_odds(store):
    odds = store.apply_book_event("tok_thunder", _levels((0.64, 100)), _levels((0.66, 150)))

    assert odds.mid_price == pytest.approx(0.65)
    assert odds.spread == pytest.approx(0.02)
    assert odds.probability_pct == pytest.approx(65.0)
    assert store.odds_for("tok_thunder") == odds
    assert store.last_update == NOW


def test_identical_book_event_is_idempotent(store):
    bids, asks = _levels((0.64, 100)), _levels((0.66, 150))
    first = store.apply_book_event("tok_thunder", bids, asks)
    second = store.apply_book_event("tok_thunder", bids, asks)

    assert first == second
    assert list(store.live_odds) == ["tok_thunder"]


def test_book_event_replaces_previous_entry(store):
    store.apply_book_event("tok_thunder", _levels((0.64, 100)), _levels((0.66, 150)))
    store.apply_book_event("tok_thunder", _levels((0.70, 10)), _levels((0.72, 10)))

    assert store.odds_for("tok_thunder").mid_price == pytest.approx(0.71)


def test_trade_history_capped_newest_first(store):
    for i in range(55):
        store.apply_trade_event("tok_thunder", TradeSide.BUY, 0.65, 1.0, str(NOW + i))

    trades = store.executed_trades
    assert len(trades) == 50
    assert trades[0].timestamp == NOW + 54
    assert trades[-1].timestamp == NOW + 5
    # The five oldest are gone
    assert all(t.timestamp >= NOW + 5 for t in trades)


def test_trade_id_and_label(store):
    trade = store.apply_trade_event("tok_pacers", "SELL", 0.35, 12.5, "1700000000123")

    assert trade.id == "tok_pacers-1700000000123"
    assert trade.outcome_label == "Pacers"
    assert trade.side is TradeSide.SELL
    assert trade.timestamp == 1700000000123


def test_trade_for_unknown_instrument_uses_fallback_label(store):
    trade = store.apply_trade_event("tok_other", TradeSide.BUY, 0.5, 1, "1")
    assert trade.outcome_label == "Unknown"


def test_trade_with_unparseable_timestamp_uses_clock(store):
    trade = store.apply_trade_event("tok_thunder", TradeSide.BUY, 0.5, 1, "soon")
    assert trade.timestamp == NOW
    assert trade.id == f"tok_thunder-{NOW}"


def test_trade_without_timestamp_gets_id_from_clock():
    ticks = iter([NOW, NOW + 1, NOW + 2, NOW + 3])
    store = MarketStateStore(clock=lambda: next(ticks))

    first = store.apply_trade_event("tok_thunder", TradeSide.BUY, 0.5, 1, "")
    second = store.apply_trade_event("tok_thunder", TradeSide.BUY, 0.5, 1, "")

    assert first.id == f"tok_thunder-{NOW}"
    assert second.id == f"tok_thunder-{NOW + 2}"
    assert first.id != second.id


def test_apply_dispatches_variants(store):
    book = BookEvent(event_type="book", asset_id="tok_thunder", bids=_levels((0.5, 1)), asks=_levels((0.6, 1)))
    trade = LastTradePriceEvent(event_type="last_trade_price", asset_id="tok_thunder", price=0.55, side=TradeSide.BUY, size=3, timestamp="9")
    change = PriceChangeEvent(event_type="price_change", asset_id="tok_thunder")
    tick = TickSizeChangeEvent(event_type="tick_size_change", asset_id="tok_thunder", old_tick_size=0.01, new_tick_size=0.001)
    unknown = UnknownEvent(event_type="whatever")

    assert store.apply(book) is True
    assert store.apply(trade) is True
    assert store.apply(change) is False
    assert store.apply(tick) is True
    assert store.apply(unknown) is False
    assert store.tick_size("tok_thunder") == 0.001
    assert len(store.executed_trades) == 1


def test_discard_drops_instrument(store):
    store.apply_book_event("tok_thunder", _levels((0.5, 1)), _levels((0.6, 1)))
    store.apply_book_event("tok_pacers", _levels((0.4, 1)), _levels((0.5, 1)))
    store.discard("tok_thunder")

    assert list(store.live_odds) == ["tok_pacers"]


def test_mutations_after_close_are_noops(store):
    store.apply_book_event("tok_thunder", _levels((0.5, 1)), _levels((0.6, 1)))
    store.close()

    assert store.live_odds == {}
    assert store.apply_book_event("tok_thunder", _levels((0.5, 1)), _levels((0.6, 1))) is None
    assert store.apply_trade_event("tok_thunder", TradeSide.BUY, 0.5, 1, "1") is None
    assert store.apply_tick_size_change("tok_thunder", 0.01) is False
    assert store.live_odds == {}
    assert store.executed_trades == []
    assert store.last_update is None


def test_outcome_map_placeholders():
    mapping = build_outcome_map(["a", "b", "c"], ["Yes"])
    assert mapping == {"a": "Yes", "b": "Token 1", "c": "Token 2"}

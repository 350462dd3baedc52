"""Tests for market-channel frame decoding."""

import json

import pytest

from live_odds.errors import FrameDecodeError
from live_odds.feed.decoder import (
    BookEvent,
    LastTradePriceEvent,
    PriceChangeEvent,
    TickSizeChangeEvent,
    UnknownEvent,
    decode_frame,
)
from live_odds.models import TradeSide


@pytest.fixture
def book_payload():
    return {
        "event_type": "book",
        "asset_id": "tok_yes",
        "market": "0xabc",
        "timestamp": "1700000000000",
        "hash": "h1",
        "bids": [{"price": "0.64", "size": "200.0"}, {"price": "0.63", "size": "50"}],
        "asks": [{"price": "0.66", "size": "150.0"}],
    }


def test_liveness_frames_are_discarded():
    assert decode_frame("ping") == []
    assert decode_frame("pong") == []
    assert decode_frame(b"pong") == []


def test_non_json_frame_raises():
    with pytest.raises(FrameDecodeError):
        decode_frame("not json at all")


def test_single_book_event(book_payload):
    events = decode_frame(json.dumps(book_payload))

    assert len(events) == 1
    book = events[0]
    assert isinstance(book, BookEvent)
    assert book.asset_id == "tok_yes"
    assert book.bids[0].price == 0.64
    assert book.bids[0].size == 200.0
    assert book.asks[0].price == 0.66


def test_list_of_events_keeps_order(book_payload):
    trade = {
        "event_type": "last_trade_price",
        "asset_id": "tok_yes",
        "market": "0xabc",
        "price": "0.65",
        "side": "BUY",
        "size": "10",
        "fee_rate_bps": "0",
        "timestamp": "1700000000001",
    }
    change = {
        "event_type": "price_change",
        "asset_id": "tok_yes",
        "changes": [{"price": "0.65", "size": "20", "side": "BUY"}],
        "hash": "h2",
        "timestamp": "1700000000002",
    }
    events = decode_frame(json.dumps([book_payload, trade, change]))

    assert [type(e) for e in events] == [BookEvent, LastTradePriceEvent, PriceChangeEvent]
    assert events[1].side is TradeSide.BUY
    assert events[1].price == 0.65
    assert events[2].changes[0].size == 20.0


def test_legacy_buys_sells_aliases():
    payload = {
        "event_type": "book",
        "asset_id": "tok_no",
        "buys": [{"price": "0.30", "size": "5"}],
        "sells": [{"price": "0.36", "size": "7"}],
    }
    [event] = decode_frame(json.dumps(payload))
    assert event.bids[0].price == 0.30
    assert event.asks[0].price == 0.36


def test_tick_size_change():
    payload = {
        "event_type": "tick_size_change",
        "asset_id": "tok_yes",
        "old_tick_size": "0.01",
        "new_tick_size": "0.001",
    }
    [event] = decode_frame(json.dumps(payload))
    assert isinstance(event, TickSizeChangeEvent)
    assert event.new_tick_size == 0.001


def test_unknown_event_type_is_kept_as_unknown():
    [event] = decode_frame(json.dumps({"event_type": "best_bid_ask", "asset_id": "x"}))
    assert isinstance(event, UnknownEvent)
    assert event.event_type == "best_bid_ask"
    assert event.payload["asset_id"] == "x"


def test_lowercase_trade_side_is_normalized():
    payload = {
        "event_type": "last_trade_price",
        "asset_id": "tok",
        "price": "0.5",
        "side": "sell",
        "size": "1",
    }
    [event] = decode_frame(json.dumps(payload))
    assert event.side is TradeSide.SELL


def test_malformed_entries_are_skipped(book_payload):
    bad_trade = {"event_type": "last_trade_price", "asset_id": "tok", "side": "HOLD", "price": "x"}
    events = decode_frame(json.dumps([42, bad_trade, book_payload]))

    assert len(events) == 1
    assert isinstance(events[0], BookEvent)


@pytest.mark.parametrize("bad_price", ["NaN", "Infinity", "-inf"])
def test_non_finite_book_price_is_skipped(book_payload, bad_price):
    book_payload["bids"][0]["price"] = bad_price
    assert decode_frame(json.dumps(book_payload)) == []


def test_non_finite_trade_price_is_skipped():
    trade = {
        "event_type": "last_trade_price",
        "asset_id": "tok_yes",
        "price": "nan",
        "side": "BUY",
        "size": "10",
    }
    assert decode_frame(json.dumps(trade)) == []

"""Decoder for Polymarket CLOB market-channel frames.

A frame is either a liveness literal (``ping``/``pong``), a single JSON
event object or a JSON array of events. Events are classified by their
``event_type`` field into a closed set of variants; anything else becomes
an ``UnknownEvent`` so new feed events never break the client.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from live_odds.errors import FrameDecodeError
from live_odds.models import OrderBookLevel, TradeSide

logger = logging.getLogger(__name__)

PING_FRAME = "ping"
PONG_FRAME = "pong"
LIVENESS_FRAMES = frozenset({PING_FRAME, PONG_FRAME})


class BookEvent(BaseModel):
    event_type: Literal["book"]
    asset_id: str
    market: str = ""
    timestamp: str = ""
    hash: str = ""
    # "buys"/"sells" are legacy names for the same sides
    bids: list[OrderBookLevel] = Field(
        default_factory=list, validation_alias=AliasChoices("bids", "buys")
    )
    asks: list[OrderBookLevel] = Field(
        default_factory=list, validation_alias=AliasChoices("asks", "sells")
    )


class PriceChange(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    price: float
    size: float
    side: str


class PriceChangeEvent(BaseModel):
    event_type: Literal["price_change"]
    asset_id: str
    market: str = ""
    changes: list[PriceChange] = Field(default_factory=list)
    hash: str = ""
    timestamp: str = ""


class LastTradePriceEvent(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    event_type: Literal["last_trade_price"]
    asset_id: str
    market: str = ""
    price: float
    side: TradeSide
    size: float
    fee_rate_bps: str = ""
    timestamp: str = ""


class TickSizeChangeEvent(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    event_type: Literal["tick_size_change"]
    asset_id: str
    market: str = ""
    old_tick_size: float
    new_tick_size: float
    timestamp: str = ""


class UnknownEvent(BaseModel):
    """Event with a discriminant this client does not understand."""

    event_type: str | None = None
    payload: dict = Field(default_factory=dict)


KnownEvent = Annotated[
    Union[BookEvent, PriceChangeEvent, LastTradePriceEvent, TickSizeChangeEvent],
    Field(discriminator="event_type"),
]
FeedEvent = Union[BookEvent, PriceChangeEvent, LastTradePriceEvent, TickSizeChangeEvent, UnknownEvent]

_KNOWN_EVENT_TYPES = frozenset({"book", "price_change", "last_trade_price", "tick_size_change"})
_event_adapter: TypeAdapter = TypeAdapter(KnownEvent)


def is_liveness_frame(raw: str) -> bool:
    return raw in LIVENESS_FRAMES


def decode_event(item: Any) -> FeedEvent | None:
    """Classify one parsed event. Returns None for entries that cannot be used."""
    if not isinstance(item, dict):
        logger.warning(f"Skipping non-object event: {item!r:.100}")
        return None

    event_type = item.get("event_type")
    if event_type not in _KNOWN_EVENT_TYPES:
        logger.info(f"Ignoring unknown event type: {event_type!r}")
        return UnknownEvent(event_type=event_type if isinstance(event_type, str) else None, payload=item)

    if isinstance(item.get("side"), str):
        item = {**item, "side": item["side"].upper()}
    try:
        return _event_adapter.validate_python(item)
    except ValidationError as e:
        logger.warning(
            f"Skipping malformed {event_type} event for {item.get('asset_id', '?')}: "
            f"{e.error_count()} validation error(s)"
        )
        return None


def decode_frame(raw: str | bytes) -> list[FeedEvent]:
    """Decode one inbound frame into an ordered list of events.

    Liveness frames yield an empty list. Raises FrameDecodeError when the
    frame is not JSON; individual bad events inside a valid frame are
    skipped.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"frame is not valid UTF-8: {e}") from e

    if is_liveness_frame(raw):
        return []

    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise FrameDecodeError(f"frame is not JSON: {raw[:100]!r}") from e

    items = data if isinstance(data, list) else [data]
    events: list[FeedEvent] = []
    for item in items:
        event = decode_event(item)
        if event is not None:
            events.append(event)
    return events

"""Real-time market-data feed: decoding, subscription, connection and state."""

from live_odds.feed.backoff import BackoffMode, ReconnectPolicy
from live_odds.feed.client import FeedConfig, MarketFeedClient
from live_odds.feed.decoder import (
    BookEvent,
    FeedEvent,
    LastTradePriceEvent,
    PriceChangeEvent,
    TickSizeChangeEvent,
    UnknownEvent,
    decode_frame,
)
from live_odds.feed.store import MarketStateStore
from live_odds.feed.subscription import MarketSubscription, SubscriptionManager

__all__ = [
    "BackoffMode",
    "BookEvent",
    "FeedConfig",
    "FeedEvent",
    "LastTradePriceEvent",
    "MarketFeedClient",
    "MarketStateStore",
    "MarketSubscription",
    "PriceChangeEvent",
    "ReconnectPolicy",
    "SubscriptionManager",
    "TickSizeChangeEvent",
    "UnknownEvent",
    "decode_frame",
]

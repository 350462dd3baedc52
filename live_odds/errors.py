"""Exception types raised inside the live odds service."""


class LiveOddsError(Exception):
    """Base class for all live odds errors."""


class FeedStateError(LiveOddsError):
    """Illegal connection state transition."""


class FrameDecodeError(LiveOddsError):
    """Inbound frame could not be parsed."""


class SubscriptionError(LiveOddsError):
    """Subscription frame could not be sent."""


class MarketMetadataError(LiveOddsError):
    """Market metadata could not be fetched or resolved."""

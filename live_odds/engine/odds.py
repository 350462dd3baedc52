"""Odds conversions from implied probability.

Probabilities are expressed in percent (0-100). Rounding is half-up
(``floor(x + 0.5)``) so displayed numbers match the betting UI, which
rounds the same way.
"""

from __future__ import annotations

import math

from live_odds.models import DerivedOdds, OrderBookDepth

# 0% and 100% have no finite odds; probabilities are clamped into this range
MIN_PROBABILITY_PCT = 0.01
MAX_PROBABILITY_PCT = 99.99


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_probability(probability_pct: float) -> float:
    """Clamp a percent probability into the range where odds are finite."""
    if math.isnan(probability_pct):
        raise ValueError("probability is NaN")
    return min(max(probability_pct, MIN_PROBABILITY_PCT), MAX_PROBABILITY_PCT)


def american_odds(probability_pct: float) -> int:
    """American odds: negative for favorites, positive for underdogs.

    >>> american_odds(68.5)
    -217
    >>> american_odds(31.5)
    217
    """
    p = clamp_probability(probability_pct) / 100
    if p > 0.5:
        return _round_half_up(-(p / (1 - p)) * 100)
    return _round_half_up(((1 - p) / p) * 100)


def european_odds(probability_pct: float) -> float:
    """Decimal odds (payout multiplier) with 2-decimal precision.

    >>> european_odds(68.5)
    1.46
    """
    p = clamp_probability(probability_pct) / 100
    return _round_half_up((1 / p) * 100) / 100


def derive_odds(instrument_id: str, book: OrderBookDepth, timestamp: int) -> DerivedOdds:
    """Compute the full set of derived metrics for one order book."""
    mid_price = book.mid_price
    probability_pct = mid_price * 100
    return DerivedOdds(
        instrument_id=instrument_id,
        probability_pct=probability_pct,
        mid_price=mid_price,
        spread=book.spread,
        american_odds=american_odds(probability_pct),
        european_odds=european_odds(probability_pct),
        best_bid=book.best_bid,
        best_ask=book.best_ask,
        timestamp=timestamp,
    )


def format_odds_display(outcome_label: str, probability_pct: float) -> str:
    """Format one outcome line, e.g. ``• Thunder — -217 (EU 1.46)``."""
    american = american_odds(probability_pct)
    sign = "+" if american > 0 else ""
    return f"• {outcome_label} — {sign}{american} (EU {european_odds(probability_pct)})"

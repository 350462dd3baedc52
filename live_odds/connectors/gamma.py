from __future__ import annotations

import json
import logging

import httpx

from live_odds.config import settings
from live_odds.connectors.base import MarketMetadataSource
from live_odds.errors import MarketMetadataError
from live_odds.models import MarketOutcome

logger = logging.getLogger(__name__)


class GammaMarketSource(MarketMetadataSource):
    """Market metadata from the Polymarket Gamma API."""

    def __init__(self, base_url: str = "", transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url or settings.gamma_api
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=10,
            transport=self._transport,
        )
        logger.info(f"Gamma market source initialized ({self.base_url})")

    async def disconnect(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None

    async def fetch_outcomes(self, market_id: str) -> list[MarketOutcome]:
        """Fetch a market and pair its outcome labels with CLOB token ids.

        Gamma returns ``outcomes``, ``outcomePrices`` and ``clobTokenIds``
        as JSON-encoded strings (sometimes as plain lists), aligned by
        position.
        """
        if self._http is None:
            raise MarketMetadataError("Gamma market source is not connected")

        try:
            resp = await self._http.get(f"/markets/{market_id}")
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            raise MarketMetadataError(
                f"Gamma returned {e.response.status_code} for market {market_id}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise MarketMetadataError(f"Failed to fetch market {market_id}: {e}") from e

        labels = self._parse_json_field(data.get("outcomes", "[]"))
        prices = self._parse_json_field(data.get("outcomePrices", "[]"))
        tokens = self._parse_json_field(data.get("clobTokenIds", "[]"))

        if not tokens:
            raise MarketMetadataError(f"Market {market_id} has no CLOB token ids")
        if len(labels) != len(tokens):
            logger.warning(
                f"Market {market_id}: {len(labels)} outcomes for {len(tokens)} tokens, "
                f"missing labels get placeholders"
            )

        outcomes: list[MarketOutcome] = []
        for i, token_id in enumerate(tokens):
            label = str(labels[i]) if i < len(labels) and labels[i] else f"Token {i}"
            price = None
            if i < len(prices):
                try:
                    price = float(prices[i])
                except (TypeError, ValueError):
                    pass
            outcomes.append(MarketOutcome(label=label, instrument_id=str(token_id), price=price))

        logger.info(f"Gamma: market {market_id} has {len(outcomes)} outcomes")
        return outcomes

    @staticmethod
    def _parse_json_field(value) -> list:
        """Parse a field that may be a JSON string or already a list."""
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                return []
            return parsed if isinstance(parsed, list) else []
        return []

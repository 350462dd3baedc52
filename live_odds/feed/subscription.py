"""Market channel subscription."""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel

from live_odds.errors import SubscriptionError

logger = logging.getLogger(__name__)


class MarketSubscription(BaseModel):
    type: Literal["MARKET"] = "MARKET"
    assets_ids: list[str]
    initial_dump: bool = True  # ask for a full book dump, not only deltas


class SubscriptionManager:
    """Builds and sends the subscribe frame for the tracked instruments.

    No acknowledgement is awaited: the feed answers with book snapshots.
    Subscriptions do not survive a reconnect, so the client calls ``send``
    after every successful open.
    """

    def __init__(self, instrument_ids: list[str], initial_dump: bool = True):
        self._instrument_ids = list(instrument_ids)
        self.initial_dump = initial_dump

    @property
    def instrument_ids(self) -> list[str]:
        return list(self._instrument_ids)

    def set_instruments(self, instrument_ids: list[str]) -> None:
        self._instrument_ids = list(instrument_ids)

    def build_request(self) -> MarketSubscription:
        return MarketSubscription(assets_ids=self._instrument_ids, initial_dump=self.initial_dump)

    def build_frame(self) -> str:
        return json.dumps(self.build_request().model_dump())

    async def send(self, ws: Any, is_open: bool) -> bool:
        """Send the subscribe frame if the connection is open.

        Returns False without sending when the connection is not open or no
        instruments are tracked. Raises SubscriptionError when the send fails.
        """
        if not self._instrument_ids:
            logger.warning("Cannot subscribe: no instruments tracked")
            return False
        if ws is None or not is_open:
            logger.warning("Cannot subscribe: connection is not open")
            return False

        try:
            await ws.send(self.build_frame())
        except Exception as e:
            raise SubscriptionError(f"Failed to send subscription: {e}") from e

        logger.info(f"Subscribed to {len(self._instrument_ids)} instruments")
        return True

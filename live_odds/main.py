from __future__ import annotations

import asyncio
import logging

import uvicorn

from live_odds.config import settings
from live_odds.connectors.gamma import GammaMarketSource
from live_odds.connectors.sessions import SqliteSessionStore
from live_odds.errors import MarketMetadataError
from live_odds.feed.client import FeedConfig, MarketFeedClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def build_feed_client(source: GammaMarketSource, market_id: str) -> MarketFeedClient:
    """Resolve a market's outcomes and build a feed client tracking them."""
    outcomes = await source.fetch_outcomes(market_id)
    config = FeedConfig.from_settings(
        settings,
        instrument_ids=[o.instrument_id for o in outcomes],
        outcome_labels=[o.label for o in outcomes],
        market_id=market_id,
    )
    for o in outcomes:
        logger.info(f"  {o.label:<16} -> {o.instrument_id[:12]}...")
    return MarketFeedClient(config)


async def run_app() -> None:
    """Resolve the market, start the feed and serve the HTTP API."""
    if not settings.market_id:
        logger.error("MARKET_ID is not set; nothing to stream")
        return

    source = GammaMarketSource()
    await source.connect()
    try:
        client = await build_feed_client(source, settings.market_id)
    except MarketMetadataError as e:
        logger.error(f"Cannot start feed: {e}")
        return
    finally:
        await source.disconnect()

    sessions = SqliteSessionStore()
    await sessions.connect()
    purged = await sessions.purge_expired()
    if purged:
        logger.info(f"Startup: purged {purged} expired sessions")

    # Setup web routes (deferred to avoid circular import)
    from live_odds.web.app import setup_routes
    from live_odds.web.routes import broadcast_snapshot, set_feed_client, set_session_store
    setup_routes()
    set_feed_client(client)
    set_session_store(sessions)
    client.add_listener(broadcast_snapshot)

    config = uvicorn.Config(
        "live_odds.web.app:app",
        host=settings.host,
        port=settings.port,
        log_level="info",
    )
    server = uvicorn.Server(config)

    client.connect()
    try:
        await server.serve()
    finally:
        await client.aclose()
        await sessions.close()
        logger.info("Shutdown complete")


def main():
    asyncio.run(run_app())


if __name__ == "__main__":
    main()

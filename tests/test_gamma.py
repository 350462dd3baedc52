"""Tests for the Gamma market metadata source."""

import json

import httpx
import pytest

from live_odds.connectors.gamma import GammaMarketSource
from live_odds.errors import MarketMetadataError


def _source(handler) -> GammaMarketSource:
    return GammaMarketSource(base_url="https://gamma.test", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_fetch_outcomes_parses_json_string_fields():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/markets/12345"
        return httpx.Response(200, json={
            "id": "12345",
            "question": "Thunder vs. Pacers",
            "outcomes": json.dumps(["Thunder", "Pacers"]),
            "outcomePrices": json.dumps(["0.685", "0.315"]),
            "clobTokenIds": json.dumps(["111", "222"]),
        })

    source = _source(handler)
    await source.connect()
    outcomes = await source.fetch_outcomes("12345")
    await source.disconnect()

    assert [(o.label, o.instrument_id, o.price) for o in outcomes] == [
        ("Thunder", "111", 0.685),
        ("Pacers", "222", 0.315),
    ]


@pytest.mark.asyncio
async def test_fetch_outcomes_accepts_lists_and_fills_missing_labels():
    def handler(request):
        return httpx.Response(200, json={"outcomes": ["Yes"], "clobTokenIds": ["a", "b"]})

    source = _source(handler)
    await source.connect()
    outcomes = await source.fetch_outcomes("m")
    await source.disconnect()

    assert [o.label for o in outcomes] == ["Yes", "Token 1"]
    assert outcomes[1].price is None


@pytest.mark.asyncio
async def test_fetch_outcomes_without_tokens_fails():
    source = _source(lambda request: httpx.Response(200, json={"outcomes": "[]", "clobTokenIds": "oops"}))
    await source.connect()
    with pytest.raises(MarketMetadataError):
        await source.fetch_outcomes("m")
    await source.disconnect()


@pytest.mark.asyncio
async def test_fetch_outcomes_http_error():
    source = _source(lambda request: httpx.Response(404, json={"error": "not found"}))
    await source.connect()
    with pytest.raises(MarketMetadataError, match="404"):
        await source.fetch_outcomes("missing")
    await source.disconnect()


@pytest.mark.asyncio
async def test_fetch_requires_connect():
    with pytest.raises(MarketMetadataError):
        await GammaMarketSource(base_url="https://gamma.test").fetch_outcomes("m")

from __future__ import annotations

import asyncio
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from live_odds.config import settings
from live_odds.connectors.base import ClaimStatus
from live_odds.models import MarketSnapshot

logger = logging.getLogger(__name__)
router = APIRouter()

# Queues of connected SSE clients
_sse_subscribers: list[asyncio.Queue] = []

# Components initialized in main.py
_feed_client = None
_session_store = None


def set_feed_client(client) -> None:
    """Set the market feed client from main.py initialization."""
    global _feed_client
    _feed_client = client


def set_session_store(store) -> None:
    """Set the session store from main.py initialization."""
    global _session_store
    _session_store = store


def broadcast_snapshot(snapshot: MarketSnapshot) -> None:
    """Push a snapshot to all SSE subscribers. Registered as a feed listener."""
    msg = snapshot.model_dump_json()
    for q in _sse_subscribers:
        try:
            q.put_nowait(msg)
        except asyncio.QueueFull:
            pass


def _require_feed():
    if _feed_client is None:
        raise HTTPException(status_code=503, detail="Market feed not initialized")
    return _feed_client


def _require_sessions():
    if _session_store is None:
        raise HTTPException(status_code=503, detail="Session store not initialized")
    return _session_store


@router.get("/health")
async def health():
    status = _feed_client.status.value if _feed_client is not None else "uninitialized"
    return {"status": "ok", "connection_status": status}


@router.get("/api/odds")
async def get_odds() -> MarketSnapshot:
    return _require_feed().snapshot()


@router.get("/api/odds/{instrument_id}")
async def get_instrument_odds(instrument_id: str):
    odds = _require_feed().store.odds_for(instrument_id)
    if odds is None:
        raise HTTPException(status_code=404, detail=f"No odds for instrument {instrument_id}")
    return odds


@router.get("/api/stream")
async def sse_stream(request: Request):
    queue: asyncio.Queue = asyncio.Queue(maxsize=100)
    _sse_subscribers.append(queue)
    if _feed_client is not None:
        # Start every stream with the current state
        queue.put_nowait(_feed_client.snapshot().model_dump_json())

    async def event_generator() -> AsyncGenerator[dict, None]:
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    msg = await asyncio.wait_for(queue.get(), timeout=15)
                    yield {"event": "update", "data": msg}
                except asyncio.TimeoutError:
                    yield {"event": "ping", "data": "keepalive"}
        finally:
            _sse_subscribers.remove(queue)

    return EventSourceResponse(event_generator())


# --- Sessions ---


class SessionCreateRequest(BaseModel):
    user_id: str
    market_id: str
    ttl: int | None = None


@router.post("/api/session", status_code=201)
async def create_session(body: SessionCreateRequest):
    store = _require_sessions()
    record = await store.create(body.user_id, body.market_id, body.ttl or settings.session_ttl)
    return record


@router.post("/api/session/{token}/claim")
async def claim_session(token: str):
    store = _require_sessions()
    result = await store.claim(token)
    if result.status is ClaimStatus.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Session not found or expired")
    if result.status is ClaimStatus.ALREADY_USED:
        raise HTTPException(status_code=409, detail="Session already used")
    return result.record

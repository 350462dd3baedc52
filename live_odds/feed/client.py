"""Resilient client for the Polymarket CLOB market channel.

The client is an explicit state machine over ``ConnectionStatus``:

    disconnected -> connecting -> connected -> reconnecting -> connecting ...

Every timer it starts (reconnect, heartbeat, delayed subscribe) is owned
by the client and cancelled on the transition that supersedes it. Each
connection attempt gets a generation number; callbacks belonging to an
older generation are inert, so nothing fires after ``disconnect()``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import websockets

from live_odds.config import Settings
from live_odds.errors import FeedStateError, FrameDecodeError, SubscriptionError
from live_odds.feed.backoff import BackoffMode, ReconnectPolicy
from live_odds.feed.decoder import PING_FRAME, decode_frame
from live_odds.feed.store import MarketStateStore
from live_odds.feed.subscription import SubscriptionManager
from live_odds.models import ConnectionStatus, MarketSnapshot, build_outcome_map

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]
Listener = Callable[[MarketSnapshot], Any]

_TRANSITIONS: dict[ConnectionStatus, frozenset[ConnectionStatus]] = {
    ConnectionStatus.DISCONNECTED: frozenset({ConnectionStatus.CONNECTING}),
    ConnectionStatus.CONNECTING: frozenset({
        ConnectionStatus.CONNECTED,
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.DISCONNECTED,
    }),
    ConnectionStatus.CONNECTED: frozenset({
        ConnectionStatus.RECONNECTING,
        ConnectionStatus.DISCONNECTED,
    }),
    ConnectionStatus.RECONNECTING: frozenset({
        ConnectionStatus.CONNECTING,
        ConnectionStatus.DISCONNECTED,
    }),
}


@dataclass
class FeedConfig:
    """Per-client connection settings."""

    market_id: str
    instrument_ids: list[str]
    outcome_labels: list[str] = field(default_factory=list)
    ws_url: str = "wss://ws-subscriptions-clob.polymarket.com/ws/market"
    auto_reconnect: bool = True
    reconnect_policy: ReconnectPolicy = field(default_factory=ReconnectPolicy)
    max_reconnect_attempts: int = 10
    heartbeat_interval: float = 30.0
    subscribe_delay: float = 0.1
    trade_history_limit: int = 50

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        instrument_ids: list[str],
        outcome_labels: list[str] | None = None,
        market_id: str | None = None,
    ) -> FeedConfig:
        return cls(
            market_id=market_id if market_id is not None else settings.market_id,
            instrument_ids=list(instrument_ids),
            outcome_labels=list(outcome_labels or []),
            ws_url=settings.clob_ws_url,
            auto_reconnect=settings.auto_reconnect,
            reconnect_policy=ReconnectPolicy(
                mode=BackoffMode(settings.reconnect_backoff),
                interval=settings.reconnect_interval,
                max_delay=settings.max_reconnect_delay,
            ),
            max_reconnect_attempts=settings.max_reconnect_attempts,
            heartbeat_interval=settings.heartbeat_interval,
            subscribe_delay=settings.subscribe_delay,
            trade_history_limit=settings.trade_history_limit,
        )


class MarketFeedClient:
    """Keeps a market-channel connection alive and feeds the state store."""

    def __init__(
        self,
        config: FeedConfig,
        store: MarketStateStore | None = None,
        connector: Connector | None = None,
    ):
        self.config = config
        self.store = store or MarketStateStore(
            build_outcome_map(config.instrument_ids, config.outcome_labels),
            trade_limit=config.trade_history_limit,
        )
        self.subscriptions = SubscriptionManager(config.instrument_ids)
        self._connector: Connector = connector or websockets.connect

        self._status = ConnectionStatus.DISCONNECTED
        self._last_error: str | None = None
        self._ws: Any = None
        self._generation = 0
        self._reconnect_attempts = 0
        self._should_reconnect = False
        self._retries_exhausted = False
        self._closed = False
        self._decode_errors = 0

        # Owned timers
        self._reader_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None
        self._subscribe_task: asyncio.Task | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None

        self._listeners: list[Listener] = []

    # --- Public state ---

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def retries_exhausted(self) -> bool:
        return self._retries_exhausted

    @property
    def decode_errors(self) -> int:
        return self._decode_errors

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def snapshot(self) -> MarketSnapshot:
        return MarketSnapshot(
            is_connected=self.is_connected,
            connection_status=self._status,
            live_odds=self.store.live_odds,
            executed_trades=self.store.executed_trades,
            last_update=self.store.last_update,
            last_error=self._last_error,
            decode_errors=self._decode_errors,
            reconnect_attempts=self._reconnect_attempts,
        )

    def add_listener(self, callback: Listener) -> None:
        """Register ``callback(snapshot)``, called after every state change."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Listener) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # --- Commands ---

    def connect(self) -> bool:
        """Request a connection. Must be called from the running event loop.

        Returns False, without starting anything, when the client has no
        market or instruments configured or has been closed.
        """
        if self._closed:
            logger.warning("Cannot connect: client is closed")
            return False
        if not self.config.market_id or not self.subscriptions.instrument_ids:
            logger.warning(
                f"Cannot connect: missing market id or instruments "
                f"(market_id={self.config.market_id!r}, "
                f"instruments={len(self.subscriptions.instrument_ids)})"
            )
            self._last_error = "Cannot connect: market id and instrument ids are required"
            self._emit()
            return False

        self._should_reconnect = True
        if self._status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
            return True

        self._reconnect_attempts = 0
        self._retries_exhausted = False
        # An explicit connect supersedes any pending retry
        self._cancel_reconnect_timer()
        self._begin_connecting()
        return True

    async def disconnect(self) -> None:
        """Tear down the connection and suppress auto-reconnect.

        Safe to call in any state and more than once.
        """
        self._should_reconnect = False
        self._generation += 1
        self._cancel_reconnect_timer()
        self._cancel_session_timers()

        ws, self._ws = self._ws, None
        task, self._reader_task = self._reader_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

        if self._status is not ConnectionStatus.DISCONNECTED:
            self._transition(ConnectionStatus.DISCONNECTED)
            logger.info("Feed disconnected")
            self._emit()

        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing feed socket: {e}")
        if task is not None and task is not asyncio.current_task():
            await asyncio.gather(task, return_exceptions=True)

    async def aclose(self) -> None:
        """Permanent teardown: disconnect, discard market state, drop listeners."""
        await self.disconnect()
        self._closed = True
        self.store.close()
        self._listeners.clear()

    def update_instruments(self, instrument_ids: list[str], outcome_labels: list[str] | None = None) -> None:
        """Replace the tracked instruments.

        State of instruments no longer tracked is discarded. When connected
        the new set is subscribed right away; otherwise it is used on the
        next successful connect.
        """
        removed = set(self.subscriptions.instrument_ids) - set(instrument_ids)
        self.subscriptions.set_instruments(instrument_ids)
        self.store.set_outcome_labels(build_outcome_map(instrument_ids, outcome_labels or []))
        for instrument_id in removed:
            self.store.discard(instrument_id)
        logger.info(f"Tracking {len(instrument_ids)} instruments ({len(removed)} removed)")

        if self.is_connected:
            self._schedule_subscribe(self._ws, delay=0)
        self._emit()

    # --- Transitions ---

    def _transition(self, new_status: ConnectionStatus) -> None:
        if new_status not in _TRANSITIONS[self._status]:
            raise FeedStateError(f"Illegal transition {self._status.value} -> {new_status.value}")
        logger.debug(f"Feed status {self._status.value} -> {new_status.value}")
        self._status = new_status

    def _begin_connecting(self) -> None:
        self._transition(ConnectionStatus.CONNECTING)
        self._generation += 1
        generation = self._generation
        logger.info(
            f"Connecting to {self.config.ws_url} for market {self.config.market_id} "
            f"({len(self.subscriptions.instrument_ids)} instruments)"
        )
        self._reader_task = asyncio.get_running_loop().create_task(
            self._run_connection(generation), name=f"feed-reader-{generation}"
        )
        self._emit()

    async def _run_connection(self, generation: int) -> None:
        try:
            ws = await self._connector(self.config.ws_url, ping_interval=None)
        except Exception as e:
            if generation == self._generation:
                self._on_error(e)
                self._on_close(None, str(e))
            return

        if generation != self._generation:
            await ws.close()
            return

        self._on_open(ws, generation)
        try:
            async for raw in ws:
                self._on_message(raw)
        except websockets.ConnectionClosed as e:
            if generation == self._generation:
                self._on_error(e)
        except Exception as e:
            if generation == self._generation:
                logger.exception("Feed reader failed")
                self._on_error(e)
        finally:
            try:
                await ws.close()
            except Exception as e:
                logger.debug(f"Error closing feed socket: {e}")

        if generation == self._generation:
            self._on_close(getattr(ws, "close_code", None), getattr(ws, "close_reason", None) or "")

    def _on_open(self, ws: Any, generation: int) -> None:
        self._ws = ws
        self._reconnect_attempts = 0
        self._retries_exhausted = False
        self._transition(ConnectionStatus.CONNECTED)
        self._last_error = None
        logger.info("Feed connected")

        self._schedule_subscribe(ws, delay=self.config.subscribe_delay)
        self._heartbeat_task = asyncio.get_running_loop().create_task(
            self._heartbeat(ws, generation), name=f"feed-heartbeat-{generation}"
        )
        self._emit()

    def _on_message(self, raw: str | bytes) -> None:
        try:
            events = decode_frame(raw)
        except FrameDecodeError as e:
            self._decode_errors += 1
            logger.warning(f"Dropping frame: {e}")
            return

        changed = False
        for event in events:
            try:
                if self.store.apply(event):
                    changed = True
            except Exception as e:
                self._decode_errors += 1
                logger.warning(f"Dropping {type(event).__name__}: {e}")
        if changed:
            self._emit()

    def _on_error(self, error: BaseException) -> None:
        # Errors only record state; the close that follows drives the transition
        logger.warning(f"Feed transport error: {error}")
        self._last_error = f"WebSocket connection error: {error}"

    def _on_close(self, code: int | None, reason: str) -> None:
        self._cancel_session_timers()
        self._ws = None
        logger.info(f"Feed socket closed (code={code}, reason={reason!r})")

        if not (self.config.auto_reconnect and self._should_reconnect):
            self._transition(ConnectionStatus.DISCONNECTED)
            self._emit()
            return

        max_attempts = self.config.max_reconnect_attempts
        if self._reconnect_attempts >= max_attempts:
            self._transition(ConnectionStatus.DISCONNECTED)
            self._retries_exhausted = True
            self._last_error = f"Connection lost; gave up after {max_attempts} reconnect attempts"
            logger.error(self._last_error)
            self._emit()
            return

        self._reconnect_attempts += 1
        delay = self.config.reconnect_policy.delay(self._reconnect_attempts)
        self._transition(ConnectionStatus.RECONNECTING)
        logger.info(f"Reconnecting in {delay:.1f}s (attempt {self._reconnect_attempts}/{max_attempts})")
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            delay, self._reconnect_due, self._generation
        )
        self._emit()

    def _reconnect_due(self, generation: int) -> None:
        self._reconnect_handle = None
        if generation != self._generation or not self._should_reconnect or self._closed:
            return
        self._begin_connecting()

    # --- Owned timers ---

    def _schedule_subscribe(self, ws: Any, delay: float) -> None:
        if self._subscribe_task is not None:
            self._subscribe_task.cancel()
        self._subscribe_task = asyncio.get_running_loop().create_task(
            self._subscribe_after(ws, delay, self._generation), name="feed-subscribe"
        )

    async def _subscribe_after(self, ws: Any, delay: float, generation: int) -> None:
        await asyncio.sleep(delay)
        if generation != self._generation:
            return
        is_open = self.is_connected and self._ws is ws
        try:
            await self.subscriptions.send(ws, is_open=is_open)
        except SubscriptionError as e:
            logger.error(str(e))
            self._last_error = "Failed to send subscription"
            self._emit()

    async def _heartbeat(self, ws: Any, generation: int) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval)
            if generation != self._generation or self._ws is not ws or not self.is_connected:
                return
            try:
                await ws.send(PING_FRAME)
                logger.debug("Sent ping")
            except Exception as e:
                # The reader sees the same failure and closes the connection
                logger.warning(f"Heartbeat send failed: {e}")
                return

    def _cancel_session_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self._heartbeat_task, self._subscribe_task):
            if task is not None and task is not current:
                task.cancel()
        self._heartbeat_task = None
        self._subscribe_task = None

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _emit(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Error notifying feed listener: {e}")

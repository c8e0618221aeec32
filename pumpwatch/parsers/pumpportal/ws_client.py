import asyncio
import json
import time
from collections.abc import Awaitable, Callable
from enum import Enum

import websockets
from loguru import logger
from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection

from pumpwatch.parsers.pumpportal.models import (
    EventKind,
    PumpPortalHeartbeat,
    PumpPortalNewToken,
    PumpPortalTrade,
    parse_event,
)

PUMPPORTAL_WS_URL = "wss://pumpportal.fun/api/data"
HEARTBEAT_MESSAGE = json.dumps({"type": "heartbeat"})


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ACTIVE = "active"


class PumpPortalClient:
    """WebSocket client for the PumpPortal creation/trade stream.

    Single connection for all subscriptions. Reconnects after a drop with a
    linear backoff (delay x attempt); after ``max_reconnect_attempts``
    consecutive failures it gives up and stays DISCONNECTED.
    """

    def __init__(
        self,
        url: str = PUMPPORTAL_WS_URL,
        *,
        reconnect_delay: float = 5.0,
        max_reconnect_attempts: int = 5,
        heartbeat_interval: float | None = 30.0,
    ) -> None:
        self._url = url
        self._ws: ClientConnection | None = None
        self._state = ConnectionState.DISCONNECTED
        self._running = False
        self._gave_up = False
        self._tracked_tokens: set[str] = set()
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._reconnect_attempts = 0
        self._heartbeat_interval = heartbeat_interval
        self._heartbeat_task: asyncio.Task | None = None
        self._message_count = 0
        self._last_heartbeat_at: float | None = None

        # Typed callbacks
        self.on_new_token: Callable[[PumpPortalNewToken], Awaitable[None]] | None = None
        self.on_trade: Callable[[PumpPortalTrade], Awaitable[None]] | None = None
        self.on_heartbeat: Callable[[PumpPortalHeartbeat], Awaitable[None]] | None = None
        self.on_connection_change: Callable[[bool], None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def message_count(self) -> int:
        return self._message_count

    @property
    def gave_up(self) -> bool:
        return self._gave_up

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def last_heartbeat_at(self) -> float | None:
        return self._last_heartbeat_at

    async def connect(self) -> None:
        """Connect and listen until stopped or reconnect attempts run out."""
        self._running = True
        self._gave_up = False
        self._reconnect_attempts = 0
        while self._running:
            try:
                self._state = ConnectionState.CONNECTING
                async with websockets.connect(
                    self._url,
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    self._state = ConnectionState.CONNECTED
                    self._reconnect_attempts = 0
                    await self._subscribe_all()
                    self._state = ConnectionState.ACTIVE
                    self._set_connected(True)
                    logger.info("[PP] WS connected and subscribed")
                    self._start_heartbeat()
                    try:
                        await self._listen()
                    finally:
                        await self._stop_heartbeat()
                if self._running:
                    logger.warning("[PP] WS closed by server")
            except (
                websockets.ConnectionClosed,
                websockets.InvalidHandshake,
                ConnectionError,
                OSError,
                TimeoutError,
            ) as e:
                logger.warning(f"[PP] WS disconnected: {e}")

            self._ws = None
            self._state = ConnectionState.DISCONNECTED
            self._set_connected(False)
            if not self._running:
                break

            self._reconnect_attempts += 1
            if self._reconnect_attempts > self._max_reconnect_attempts:
                self._gave_up = True
                self._running = False
                logger.error(
                    f"[PP] Giving up after {self._max_reconnect_attempts} reconnect attempts"
                )
                break

            delay = self._reconnect_delay * self._reconnect_attempts
            logger.info(
                f"[PP] Reconnecting in {delay:.0f}s "
                f"(attempt {self._reconnect_attempts}/{self._max_reconnect_attempts})"
            )
            await asyncio.sleep(delay)

    async def _subscribe_all(self) -> None:
        if not self._ws:
            return

        await self._ws.send(json.dumps({"method": "subscribeNewToken"}))

        if self._tracked_tokens:
            await self._ws.send(
                json.dumps(
                    {
                        "method": "subscribeTokenTrade",
                        "keys": list(self._tracked_tokens),
                    }
                )
            )

    async def _listen(self) -> None:
        if not self._ws:
            return

        async for message in self._ws:
            self._message_count += 1
            await self.handle_message(message)

    async def handle_message(self, message: str | bytes) -> None:
        """Decode one frame and dispatch it to the typed callback."""
        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.debug("[PP] Non-JSON frame dropped")
            return
        if not isinstance(data, dict):
            return

        try:
            kind, event = parse_event(data)
        except ValidationError as e:
            logger.debug(f"[PP] Malformed event dropped: {e.error_count()} errors")
            return

        try:
            if kind is EventKind.CREATE:
                if self.on_new_token:
                    await self.on_new_token(event)
            elif kind is EventKind.TRADE:
                if self.on_trade:
                    await self.on_trade(event)
            elif kind is EventKind.HEARTBEAT:
                self._last_heartbeat_at = time.monotonic()
                if self.on_heartbeat:
                    await self.on_heartbeat(event)
            else:
                # Subscription acks ({"message": ...}) land here too
                logger.debug(f"[PP] Unhandled message: {str(data)[:80]}")
        except Exception as e:
            logger.error(f"[PP] Error handling {kind.value} event: {e}")

    def _start_heartbeat(self) -> None:
        if self._heartbeat_interval:
            self._heartbeat_task = asyncio.create_task(
                self._heartbeat_loop(), name="pumpportal_heartbeat"
            )

    async def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _heartbeat_loop(self) -> None:
        while self._ws is not None:
            await asyncio.sleep(self._heartbeat_interval)
            ws = self._ws
            if ws is None:
                break
            try:
                await ws.send(HEARTBEAT_MESSAGE)
            except websockets.ConnectionClosed:
                break

    def _set_connected(self, connected: bool) -> None:
        if self.on_connection_change:
            try:
                self.on_connection_change(connected)
            except Exception as e:
                logger.error(f"[PP] Connection callback failed: {e}")

    async def subscribe_tokens_live(self, mint_addresses: list[str]) -> None:
        """Subscribe to token trades on the active connection."""
        self._tracked_tokens.update(mint_addresses)
        if self._ws and self._state == ConnectionState.ACTIVE:
            await self._ws.send(
                json.dumps({"method": "subscribeTokenTrade", "keys": mint_addresses})
            )

    async def unsubscribe_tokens_live(self, mint_addresses: list[str]) -> None:
        """Stop trade updates for tokens evicted from the store."""
        self._tracked_tokens.difference_update(mint_addresses)
        if self._ws and self._state == ConnectionState.ACTIVE:
            await self._ws.send(
                json.dumps({"method": "unsubscribeTokenTrade", "keys": mint_addresses})
            )

    async def stop(self) -> None:
        self._running = False
        await self._stop_heartbeat()
        if self._ws:
            await self._ws.close()
            self._ws = None
        self._state = ConnectionState.DISCONNECTED

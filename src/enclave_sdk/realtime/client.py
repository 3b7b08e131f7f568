"""
RealtimeClient: push updates for checkbooks, allocations, withdrawals and prices.

Usage:
    rt = RealtimeClient("wss://backend/api/ws", auth_token=token)
    rt.on("withdrawals", lambda update: print(update.entity.status))
    await rt.connect()
    await rt.subscribe("withdrawals", owner=owner_hex)

Subscriptions are recorded in a registry and replayed on every (re)connect.
Liveness is tracked with an application-level ping; a missed pong forces
one disconnect followed by the backoff reconnect loop.
"""

from __future__ import annotations

import asyncio
import enum
import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any
from urllib.parse import quote

from enclave_sdk.core.errors import ValidationError, WebSocketError
from enclave_sdk.realtime.messages import (
    EntityUpdate,
    PongMessage,
    ServerError,
    SubscriptionAck,
    parse_server_message,
)
from enclave_sdk.realtime.reconnection import ReconnectionPolicy
from enclave_sdk.realtime.subscriptions import (
    Channel,
    SubscriptionRegistry,
    to_channel,
    unsubscribe_message,
)
from enclave_sdk.realtime.transport import Transport, TransportFactory, WebsocketsTransport

Handler = Callable[[Any], Any]

# Heartbeat timeout is never shorter than this multiple of the ping interval
HEARTBEAT_FACTOR = 1.5


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


EVENTS = frozenset(
    {
        "connected",
        "disconnected",
        "state_changed",
        "error",
        "message",
        "subscription",
        *(c.value for c in Channel),
    }
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def with_token(url: str, token: str | None) -> str:
    if not token:
        return url
    sep = "&" if "?" in url else "?"
    return f"{url}{sep}token={quote(token, safe='')}"


def _redact(url: str) -> str:
    head, sep, _ = url.partition("token=")
    return f"{head}{sep}***" if sep else url


class RealtimeClient:
    """
    Reconnecting WebSocket client.

    Args:
        url: ws:// or wss:// endpoint.
        transport_factory: builds a Transport per connection attempt.
            Defaults to WebsocketsTransport.
        auth_token: JWT appended as the `token` query parameter.
        auto_reconnect: reconnect with backoff after an unexpected close.
        reconnect: backoff policy (default ReconnectionPolicy()).
        ping_interval: seconds between pings.
        ping_timeout: minimum seconds to wait for a pong.
        clock: monotonic clock used for heartbeat deadlines.
        sleep: coroutine used for every wait (heartbeat ticks and backoff).
        logger: optional logger.
    """

    def __init__(
        self,
        url: str,
        transport_factory: TransportFactory | None = None,
        auth_token: str | None = None,
        auto_reconnect: bool = True,
        reconnect: ReconnectionPolicy | None = None,
        ping_interval: float = 30.0,
        ping_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        if not url.startswith(("ws://", "wss://")):
            raise ValidationError(f"WebSocket url must start with ws:// or wss://: {url!r}", "url")
        if ping_interval <= 0 or ping_timeout <= 0:
            raise ValidationError("ping_interval and ping_timeout must be positive", "ping_interval")
        self.url = url
        self._log = logger or logging.getLogger("enclave_sdk.realtime")
        self._transport_factory = transport_factory or WebsocketsTransport
        self._auth_token = auth_token
        self.auto_reconnect = auto_reconnect
        self.policy = reconnect or ReconnectionPolicy(logger=self._log)
        self.subscriptions = SubscriptionRegistry(logger=self._log)
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self._clock = clock
        self._sleep = sleep

        self._state = ConnectionState.DISCONNECTED
        self._transport: Transport | None = None
        self._handlers: dict[str, list[Handler]] = {e: [] for e in EVENTS}
        self._heartbeat_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._closing = False
        self._last_pong = 0.0
        self._last_ping = 0.0
        self._ping_sent_at: float | None = None

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def heartbeat_timeout(self) -> float:
        return max(self.ping_timeout, HEARTBEAT_FACTOR * self.ping_interval)

    @property
    def heartbeat_tick(self) -> float:
        return min(self.ping_interval, self.heartbeat_timeout) / 2

    @property
    def reconnect_task(self) -> asyncio.Task | None:
        return self._reconnect_task

    def set_auth_token(self, token: str | None) -> None:
        """Used on the next connect; an open connection keeps its token."""
        self._auth_token = token

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: str, handler: Handler) -> Callable[[], None]:
        """
        Register a handler. Handlers may be plain functions or coroutines.

        Returns:
            A callable that removes the handler.
        """
        if event not in EVENTS:
            raise ValidationError(f"Unknown realtime event: {event!r}", "event")
        self._handlers[event].append(handler)
        return lambda: self.off(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    async def _emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self._handlers[event]):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self._log.error(f"Realtime {event!r} handler failed: {e}")

    async def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        old, self._state = self._state, state
        self._log.debug(f"Realtime state {old.value} -> {state.value}")
        await self._emit("state_changed", state)

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the connection.

        With auto_reconnect a failed first attempt starts the reconnect
        loop in the background instead of raising.

        Raises:
            WebSocketError: the connection failed and auto_reconnect is off.
        """
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return
        self._closing = False
        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        self.policy.reset()
        try:
            await self._open(ConnectionState.CONNECTING)
        except WebSocketError as e:
            self._log.warning(f"Realtime connect failed: {e}")
            await self._emit("error", e)
            if not self.auto_reconnect:
                await self._set_state(ConnectionState.DISCONNECTED)
                raise
            self._schedule_reconnect()

    async def _open(self, state: ConnectionState) -> None:
        await self._set_state(state)
        self._stop_heartbeat()
        await self._close_transport()
        url = with_token(self.url, self._auth_token)
        self._log.info(f"Connecting to {_redact(url)}")
        transport: Transport | None = None

        # Frames and closes from a transport that has since been replaced are dropped.
        async def on_message(raw: str) -> None:
            if transport is not None and transport is self._transport:
                await self._on_frame(raw)

        async def on_close(code: int | None, reason: str) -> None:
            if transport is not None and transport is self._transport:
                await self._on_transport_close(code, reason)
            else:
                self._log.debug(f"Ignoring close of a replaced transport (code={code})")

        transport = self._transport_factory(on_message, on_close)
        try:
            await transport.open(url)
        except asyncio.CancelledError:
            await transport.close()
            raise

        self._transport = transport
        now = self._clock()
        self._last_pong = now
        self._last_ping = now
        self._ping_sent_at = None
        await self._set_state(ConnectionState.CONNECTED)
        self.policy.reset()
        self._start_heartbeat()
        self._log.info("Realtime connected")
        await self._resubscribe()
        await self._emit("connected")

    async def disconnect(self) -> None:
        """Close the connection. No reconnect follows."""
        self._closing = True
        self._cancel(self._reconnect_task)
        self._reconnect_task = None
        was_connected = self.is_connected
        self._stop_heartbeat()
        await self._close_transport()
        await self._set_state(ConnectionState.DISCONNECTED)
        if was_connected:
            self._log.info("Realtime disconnected")
            await self._emit("disconnected", "client disconnect")

    async def _close_transport(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            await transport.close()
        except WebSocketError as e:
            self._log.debug(f"Error while closing transport: {e}")

    async def _handle_loss(self, reason: str, close_transport: bool) -> None:
        # Only the first caller observes CONNECTED; later ones are no-ops.
        if self._state is not ConnectionState.CONNECTED:
            return
        await self._set_state(ConnectionState.DISCONNECTED)
        self._stop_heartbeat()
        if close_transport:
            await self._close_transport()
        else:
            self._transport = None
        self._log.warning(f"Realtime connection lost: {reason}")
        await self._emit("disconnected", reason)
        if self.auto_reconnect and not self._closing:
            self._schedule_reconnect()

    async def force_disconnect(self, reason: str = "forced") -> None:
        """Drop the connection as if it had failed; reconnects when enabled."""
        await self._handle_loss(reason, close_transport=True)

    async def _on_transport_close(self, code: int | None, reason: str) -> None:
        if self._closing:
            return
        await self._handle_loss(f"closed by server (code={code}, reason={reason!r})", close_transport=False)

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._closing:
            delay = self.policy.next_delay()
            if delay is None:
                await self._set_state(ConnectionState.ERROR)
                error = WebSocketError(
                    f"Realtime reconnect gave up after {self.policy.max_attempts} attempts",
                    details={"attempts": self.policy.max_attempts},
                )
                self._log.error(str(error))
                await self._emit("error", error)
                return
            await self._set_state(ConnectionState.RECONNECTING)
            await self._sleep(delay)
            if self._closing:
                return
            try:
                await self._open(ConnectionState.RECONNECTING)
                return
            except WebSocketError as e:
                self._log.warning(f"Reconnect attempt {self.policy.attempt} failed: {e}")
                await self._emit("error", e)

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        self._cancel(self._heartbeat_task)
        self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        while True:
            await self._sleep(self.heartbeat_tick)
            if not await self.check_heartbeat():
                return

    async def check_heartbeat(self) -> bool:
        """
        Run one heartbeat tick.

        Sends a ping when the interval has elapsed and no ping is outstanding.
        When the outstanding ping or the last pong is older than the
        heartbeat timeout, the connection is dropped.

        Returns:
            False when the client is not (or no longer) connected.
        """
        if not self.is_connected:
            return False
        now = self._clock()
        timeout = self.heartbeat_timeout
        if self._ping_sent_at is not None and now - self._ping_sent_at > timeout:
            await self.force_disconnect(f"no pong within {timeout:.1f}s")
            return False
        if now - self._last_pong > timeout:
            await self.force_disconnect(f"no pong for {now - self._last_pong:.1f}s")
            return False
        if self._ping_sent_at is None and now - self._last_ping >= self.ping_interval:
            if await self._try_send({"type": "ping", "timestamp": _now_ms()}):
                self._ping_sent_at = now
                self._last_ping = now
        return True

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(
        self,
        channel: Channel | str,
        owner: str | None = None,
        token_id: str | None = None,
    ) -> bool:
        """
        Subscribe to a channel. Sent immediately when connected, otherwise
        on the next connect.

        Returns:
            False if an identical subscription already existed.
        """
        ch = to_channel(channel)
        if not self.subscriptions.add(ch, owner, token_id):
            return False
        if self.is_connected:
            sub = self.subscriptions.get(ch)
            await self._try_send(sub.subscribe_message(_now_ms()))
        else:
            self._log.debug(f"Not connected; {ch.value} subscription will be sent on connect")
        return True

    async def unsubscribe(self, channel: Channel | str) -> bool:
        ch = to_channel(channel)
        if not self.subscriptions.remove(ch):
            return False
        if self.is_connected:
            await self._try_send(unsubscribe_message(ch, _now_ms()))
        return True

    async def _resubscribe(self) -> None:
        for sub in self.subscriptions.all():
            await self._try_send(sub.subscribe_message(_now_ms()))

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    async def send(self, payload: dict[str, Any]) -> None:
        """
        Raises:
            WebSocketError: not connected, or the transport rejected the frame.
        """
        if not self.is_connected or self._transport is None:
            raise WebSocketError("Realtime client is not connected")
        await self._transport.send(json.dumps(payload))

    async def _try_send(self, payload: dict[str, Any]) -> bool:
        try:
            await self.send(payload)
        except WebSocketError as e:
            self._log.warning(f"Realtime send of {payload.get('type')!r} failed: {e}")
            return False
        return True

    async def _on_frame(self, raw: str) -> None:
        try:
            message = parse_server_message(raw)
        except WebSocketError as e:
            self._log.warning(f"Dropping realtime frame: {e}")
            return

        if isinstance(message, PongMessage):
            now = self._clock()
            self._last_pong = now
            self._last_ping = now
            self._ping_sent_at = None

        await self._emit("message", message)
        if isinstance(message, SubscriptionAck):
            await self._emit("subscription", message)
        elif isinstance(message, ServerError):
            self._log.warning(f"Realtime server error {message.code}: {message.message}")
            await self._emit("error", message)
        elif isinstance(message, EntityUpdate):
            await self._emit(message.channel.value, message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def __aenter__(self) -> RealtimeClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

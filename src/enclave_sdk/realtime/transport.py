"""
WebSocket transport used by RealtimeClient.

A transport is built per connection attempt with two callbacks:

    transport = factory(on_message, on_close)
    await transport.open(url)
    await transport.send(text)
    await transport.close()

on_message(raw) is awaited for every frame. on_close(code, reason) is
awaited once when the peer (or the network) ends the connection; it is
not called after a local close().
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

import websockets

from enclave_sdk.core.errors import WebSocketError

MessageCallback = Callable[[str], Awaitable[None]]
CloseCallback = Callable[[int | None, str], Awaitable[None]]

# Upper bound for a single frame; price snapshots are the largest messages
MAX_FRAME_BYTES = 4 * 1024 * 1024


class Transport(Protocol):
    async def open(self, url: str) -> None: ...

    async def send(self, text: str) -> None: ...

    async def close(self) -> None: ...


TransportFactory = Callable[[MessageCallback, CloseCallback], Transport]


class WebsocketsTransport:
    """Transport on top of `websockets.connect` with a background reader task."""

    def __init__(
        self,
        on_message: MessageCallback,
        on_close: CloseCallback,
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
        max_size: int = MAX_FRAME_BYTES,
        logger: logging.Logger | None = None,
    ) -> None:
        self._on_message = on_message
        self._on_close = on_close
        self.open_timeout = open_timeout
        self.close_timeout = close_timeout
        self.max_size = max_size
        self._ws = None
        self._reader: asyncio.Task | None = None
        self._closing = False
        self._log = logger or logging.getLogger("enclave_sdk.realtime.transport")

    async def open(self, url: str) -> None:
        """
        Raises:
            WebSocketError: handshake failed or timed out.
        """
        try:
            # Application-level ping/pong is handled by RealtimeClient
            self._ws = await websockets.connect(
                url,
                open_timeout=self.open_timeout,
                close_timeout=self.close_timeout,
                ping_interval=None,
                max_size=self.max_size,
            )
        except (asyncio.TimeoutError, websockets.exceptions.WebSocketException, OSError) as e:
            raise WebSocketError(f"WebSocket handshake failed: {e}") from e
        self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                await self._on_message(message)
        except websockets.exceptions.ConnectionClosed as e:
            self._log.debug(f"WebSocket closed by peer: {e}")
        if self._closing:
            return
        await self._on_close(ws.close_code, ws.close_reason or "")

    async def send(self, text: str) -> None:
        if self._ws is None:
            raise WebSocketError("WebSocket is not open")
        try:
            await self._ws.send(text)
        except websockets.exceptions.ConnectionClosed as e:
            raise WebSocketError(f"WebSocket send failed: {e}") from e

    async def close(self) -> None:
        self._closing = True
        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

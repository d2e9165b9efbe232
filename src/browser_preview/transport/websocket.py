"""WebSocket transport.

Connects to a target's ``webSocketDebuggerUrl`` and exchanges one JSON
message per text frame, which is how DevTools targets speak the protocol.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from .base import BaseTransport, TransportConfig

logger = logging.getLogger(__name__)


class WebSocketTransport(BaseTransport):
    """Full-duplex transport over a single WebSocket."""

    def __init__(self, config: TransportConfig | None = None):
        super().__init__(config or TransportConfig())
        self._ws: Any = None

    async def _do_connect(self) -> None:
        if not self.config.url:
            raise ValueError("WebSocket URL not configured")

        self._ws = await websockets.connect(
            self.config.url,
            open_timeout=self.config.connect_timeout,
            max_size=self.config.max_message_size,
            ping_interval=30,
            ping_timeout=10,
        )
        logger.info(f"WebSocket connected to {self.config.url}")

    async def _do_disconnect(self) -> None:
        if self._ws:
            await self._ws.close()
            self._ws = None

    async def _do_write(self, frame: str) -> None:
        if not self._ws:
            raise ConnectionError("WebSocket not connected")
        await self._ws.send(frame)

    async def _receive_frames(self) -> AsyncIterator[str | bytes]:
        if not self._ws:
            raise ConnectionError("WebSocket not connected")

        try:
            async for data in self._ws:
                yield data
        except ConnectionClosed as e:
            logger.info(f"WebSocket closed: {e}")


def create_websocket_transport(url: str, connect_timeout: float = 10.0) -> WebSocketTransport:
    """Create a WebSocket transport for a target's debugger URL.

    Args:
        url: ``ws://`` URL of the page target
        connect_timeout: Seconds to wait for the handshake

    Returns:
        WebSocketTransport ready to connect
    """
    return WebSocketTransport(TransportConfig(url=url, connect_timeout=connect_timeout))

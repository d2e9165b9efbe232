"""In-memory transport.

Records outbound messages and lets the caller inject inbound ones. No actual
I/O; used by tests and by embedders that bridge messages themselves (for
example a webview ``postMessage`` channel).

Usage:
    transport = MemoryTransport()
    transport.set_response("Page.getNavigationHistory", {"currentIndex": 0, "entries": []})

    async with Connection(transport) as connection:
        history = await connection.send("Page.getNavigationHistory")

    assert transport.sent[0]["method"] == "Page.getNavigationHistory"
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

from ..errors import TransportError
from ..protocol.messages import encode_message
from .base import BaseTransport, TransportConfig

_EOF = object()


class MemoryTransport(BaseTransport):
    """Loopback transport with recorded sends and injectable receives."""

    def __init__(self) -> None:
        super().__init__(TransportConfig())
        self._sent: list[dict[str, Any]] = []
        self._responses: dict[str, dict[str, Any]] = {}
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    @property
    def sent(self) -> list[dict[str, Any]]:
        """All messages written through this transport, in order."""
        return list(self._sent)

    @property
    def sent_methods(self) -> list[str]:
        return [message.get("method", "") for message in self._sent]

    def set_response(
        self,
        method: str,
        result: Any = None,
        error: dict[str, Any] | None = None,
    ) -> None:
        """Answer every future command named ``method`` with a canned reply."""
        reply: dict[str, Any] = {"error": error} if error is not None else {"result": result}
        self._responses[method] = reply

    def inject(self, message: Any) -> None:
        """Deliver an inbound message as if the target had sent it."""
        self._inbound.put_nowait(encode_message(message))

    def inject_raw(self, frame: str | bytes) -> None:
        """Deliver an undecoded frame (for malformed input)."""
        self._inbound.put_nowait(frame)

    def terminate(self) -> None:
        """Simulate the target severing the channel."""
        self._inbound.put_nowait(_EOF)

    def clear(self) -> None:
        """Clear recorded messages and canned responses."""
        self._sent.clear()
        self._responses.clear()

    def send(self, message: dict[str, Any]) -> None:
        """Record the message immediately instead of queueing it."""
        if not self.is_connected:
            raise TransportError("Transport not connected")
        self._record(encode_message(message))

    def _record(self, frame: str) -> None:
        message = json.loads(frame)
        self._sent.append(message)

        reply = self._responses.get(message.get("method", ""))
        if reply is not None and "id" in message:
            self.inject({"id": message["id"], **reply})

    async def _do_connect(self) -> None:
        """No-op for memory."""
        pass

    async def _do_disconnect(self) -> None:
        self.terminate()

    async def _do_write(self, frame: str) -> None:
        self._record(frame)

    async def _receive_frames(self) -> AsyncIterator[str | bytes]:
        while True:
            frame = await self._inbound.get()
            if frame is _EOF:
                return
            yield frame

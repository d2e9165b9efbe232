"""Transport abstraction for the preview Connection.

A transport moves already-framed protocol messages between the Connection
and the remote target. It does not know about ids, pending calls or event
handlers; all correlation lives in the Connection.

Contract:
- ``send(message)`` is synchronous and non-blocking. Messages are written in
  the order ``send`` was called. Encoding failures raise immediately.
- ``messages()`` yields decoded inbound messages in arrival order and ends
  when the channel terminates.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from ..errors import TransportError
from ..protocol.messages import decode_message, encode_message

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class TransportConfig:
    """Configuration shared by the transports."""

    # WebSocket settings
    url: str = ""
    connect_timeout: float = 10.0
    max_message_size: int | None = None  # screencast frames can be large

    # Stdio settings (for subprocess mode)
    command: list[str] = field(default_factory=list)
    working_directory: str | None = None
    env: dict[str, str] | None = None


@runtime_checkable
class Transport(Protocol):
    """Protocol for message transports used by the Connection."""

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        ...

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        ...

    async def connect(self) -> None:
        """Open the channel.

        Raises:
            TransportError: If the channel cannot be opened
        """
        ...

    async def disconnect(self) -> None:
        """Close the channel. Ends the ``messages()`` iterator."""
        ...

    def send(self, message: dict[str, Any]) -> None:
        """Queue one outbound message.

        Raises:
            TransportError: If not connected
            TypeError: If the message cannot be serialized
        """
        ...

    def messages(self) -> AsyncIterator[Any]:
        """Yield decoded inbound messages until the channel terminates."""
        ...


class BaseTransport(ABC):
    """Base class for transports with common functionality.

    Provides:
    - State management
    - An ordered outbound queue drained by a writer task
    - JSON decoding of inbound frames (undecodable frames are dropped)
    """

    def __init__(self, config: TransportConfig):
        self.config = config
        self._state = TransportState.DISCONNECTED
        self._outbound: asyncio.Queue[str] = asyncio.Queue()
        self._writer_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._state == TransportState.CONNECTED

    async def connect(self) -> None:
        """Establish connection."""
        async with self._lock:
            if self._state == TransportState.CONNECTED:
                return

            self._state = TransportState.CONNECTING
            try:
                await self._do_connect()
            except Exception as e:
                self._state = TransportState.DISCONNECTED
                raise TransportError(f"Failed to connect: {e}") from e

            self._state = TransportState.CONNECTED
            self._writer_task = asyncio.create_task(self._write_loop())
            logger.info(f"{self.__class__.__name__} connected")

    async def disconnect(self) -> None:
        """Close the connection."""
        async with self._lock:
            if self._state in (TransportState.DISCONNECTED, TransportState.CLOSED):
                return

            self._state = TransportState.CLOSED

            if self._writer_task:
                self._writer_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._writer_task
                self._writer_task = None

            await self._do_disconnect()
            logger.info(f"{self.__class__.__name__} disconnected")

    def send(self, message: dict[str, Any]) -> None:
        """Encode and queue a message for the writer task."""
        if not self.is_connected:
            raise TransportError("Transport not connected")
        self._outbound.put_nowait(encode_message(message))

    async def messages(self) -> AsyncIterator[Any]:
        """Yield decoded inbound messages."""
        async for frame in self._receive_frames():
            try:
                yield decode_message(frame)
            except (UnicodeDecodeError, ValueError) as e:
                logger.warning(f"Dropping undecodable frame: {e} (frame: {str(frame)[:80]})")

    async def _write_loop(self) -> None:
        """Background task writing queued frames in order."""
        while True:
            frame = await self._outbound.get()
            try:
                await self._do_write(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # The reader side notices the broken channel and ends messages()
                logger.error(f"Write failed, stopping writer: {e}")
                return

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_connect(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_disconnect(self) -> None:
        """Implementation-specific disconnection logic."""
        ...

    @abstractmethod
    async def _do_write(self, frame: str) -> None:
        """Implementation-specific write of one encoded frame."""
        ...

    @abstractmethod
    def _receive_frames(self) -> AsyncIterator[str | bytes]:
        """Implementation-specific receive logic. Must be an async generator."""
        ...

    async def __aenter__(self) -> BaseTransport:
        await self.connect()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

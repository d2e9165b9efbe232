"""Transport layer.

Moves framed protocol messages between the Connection and the target:
- memory - in-process loopback for tests and custom bridges
- websocket - DevTools targets (one JSON message per text frame)
- stdio - bridge subprocess speaking JSON lines

The Connection depends only on the ``Transport`` protocol, so any of these
can be swapped without touching correlation or dispatch code.
"""

from .base import BaseTransport, Transport, TransportConfig, TransportState
from .memory import MemoryTransport
from .stdio import StdioTransport, create_stdio_transport
from .websocket import WebSocketTransport, create_websocket_transport

__all__ = [
    "BaseTransport",
    "MemoryTransport",
    "StdioTransport",
    "Transport",
    "TransportConfig",
    "TransportState",
    "WebSocketTransport",
    "create_stdio_transport",
    "create_websocket_transport",
]

"""Browser Preview - drive a browser tab over a DevTools-style protocol.

The Connection multiplexes commands and events over one transport; the
PreviewController is the application layer built on top of it.
"""

from .config import ConnectionConfig, PreviewSettings
from .connection import Connection, ConnectionState, PendingCall
from .controller import PreviewController, PreviewState
from .errors import (
    BrowserPreviewError,
    CommandTimeoutError,
    ConnectionClosedError,
    ProtocolError,
    TransportError,
)

__version__ = "0.1.0"

__all__ = [
    "BrowserPreviewError",
    "CommandTimeoutError",
    "Connection",
    "ConnectionClosedError",
    "ConnectionConfig",
    "ConnectionState",
    "PendingCall",
    "PreviewController",
    "PreviewSettings",
    "PreviewState",
    "ProtocolError",
    "TransportError",
]

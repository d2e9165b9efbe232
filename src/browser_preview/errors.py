"""Error types raised through command futures.

Protocol errors and channel termination reach the caller by rejecting the
future returned from ``Connection.send``. Unmatched responses, unknown events
and malformed messages never become exceptions; the Connection absorbs them.
"""

from __future__ import annotations

from typing import Any


class BrowserPreviewError(Exception):
    """Base class for all browser preview errors."""


class ProtocolError(BrowserPreviewError):
    """The remote target answered a command with an error payload."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        data: Any = None,
        method: str | None = None,
    ):
        self.message = message
        self.code = code
        self.data = data
        self.method = method
        prefix = f"{method}: " if method else ""
        suffix = f" (code {code})" if code is not None else ""
        super().__init__(f"{prefix}{message}{suffix}")


class ConnectionClosedError(BrowserPreviewError):
    """The channel was closed before a response arrived, or send() after close."""


class CommandTimeoutError(BrowserPreviewError):
    """No response arrived within the configured call timeout."""

    def __init__(self, method: str, call_id: int, timeout: float):
        self.method = method
        self.call_id = call_id
        self.timeout = timeout
        super().__init__(f"{method} (id={call_id}) timed out after {timeout:g}s")


class TransportError(BrowserPreviewError, ConnectionError):
    """The underlying transport failed to connect, read or write."""

"""Connection - command/event multiplexer over one transport.

The Connection owns the shared channel to the target. It:
- assigns integer correlation ids to outbound commands
- keeps a table of pending calls and settles each exactly once
- classifies inbound messages as responses or event notifications
- fans events out to every handler registered for the event name
- mirrors traffic to a trace logger while the process-wide logging mode is on

All state is touched only from the event loop thread, by ``send``, ``on``,
``off``, ``dispatch``, ``close`` and timer callbacks, and none of those await
while mutating the pending table or the handler registry.

Usage:
    async with Connection(transport) as connection:
        connection.on("Page.loadEventFired", on_load)
        await connection.send("Page.navigate", {"url": "https://example.com"})
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError

from .config import ConnectionConfig
from .errors import CommandTimeoutError, ConnectionClosedError
from .protocol.messages import Command, ErrorPayload, Notification, Response, classify_message
from .protocol.methods import CommandMethod, EventMethod, method_name
from .transport.base import Transport

logger = logging.getLogger(__name__)
trace_logger = logging.getLogger("browser_preview.trace")

# Handlers receive the event payload; coroutine handlers are scheduled as tasks
EventHandler = Callable[[Any], Any]


class ConnectionState(str, Enum):
    """Connection lifecycle. There is no way back from CLOSED."""

    OPEN = "open"
    CLOSED = "closed"


@dataclass
class PendingCall:
    """Bookkeeping for one in-flight command."""

    id: int
    method: str
    future: asyncio.Future[Any]
    issued_at: float
    timer: asyncio.TimerHandle | None = None

    def cancel_timer(self) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None


class _Registration:
    """One entry in the handler registry.

    Registrations are distinct objects so the same handler registered twice
    fires twice and each unsubscribe removes only its own entry.
    """

    __slots__ = ("handler",)

    def __init__(self, handler: EventHandler):
        self.handler = handler


class Connection:
    """Multiplexes commands and events over a single transport."""

    # Process-wide tracing switch, shared by every Connection
    _logging_enabled: bool = False

    def __init__(self, transport: Transport, config: ConnectionConfig | None = None):
        self._transport = transport
        self.config = config or ConnectionConfig()
        self._state = ConnectionState.OPEN
        self._last_id = 0
        self._pending: dict[int, PendingCall] = {}
        self._handlers: dict[str, list[_Registration]] = {}
        self._handler_tasks: set[asyncio.Task[Any]] = set()
        self._reader_task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == ConnectionState.OPEN

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def pending_count(self) -> int:
        """Number of commands still waiting for a response."""
        return len(self._pending)

    def pending_ids(self) -> list[int]:
        return list(self._pending)

    # =========================================================================
    # Logging mode
    # =========================================================================

    @classmethod
    def set_logging_mode(cls, enabled: bool) -> None:
        """Turn traffic tracing on or off for every Connection in the process.

        Only affects whether messages are mirrored to the
        ``browser_preview.trace`` logger. Safe to call while calls are pending.
        """
        Connection._logging_enabled = bool(enabled)

    @classmethod
    def logging_enabled(cls) -> bool:
        return Connection._logging_enabled

    def _trace(self, direction: str, message: Any) -> None:
        if Connection._logging_enabled:
            trace_logger.info(f"{direction} {message}")

    # =========================================================================
    # Commands
    # =========================================================================

    def send(
        self,
        method: str | CommandMethod,
        params: dict[str, Any] | None = None,
    ) -> asyncio.Future[Any]:
        """Send a command and return a future for its result.

        The command is written to the transport before this returns, so
        commands go out in the order ``send`` is called. Every command gets a
        correlation id and a pending entry, whether or not the caller awaits
        the future.

        Args:
            method: Command name (opaque to the Connection)
            params: Optional JSON-serializable parameters

        Returns:
            Future resolving with the response's ``result``. It is rejected
            with ProtocolError when the target answers with an error,
            ConnectionClosedError when the channel closes first,
            CommandTimeoutError when ``config.call_timeout`` elapses, and the
            transport's exception when the write itself fails.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        name = method_name(method)
        if not isinstance(name, str) or not name:
            future.set_exception(ValueError("Command method must be a non-empty string"))
            return future

        if self._state == ConnectionState.CLOSED:
            future.set_exception(ConnectionClosedError(f"Connection is closed, cannot send {name}"))
            return future

        self._last_id += 1
        call_id = self._last_id

        try:
            command = Command(id=call_id, method=name, params=params)
        except ValidationError as e:
            future.set_exception(ValueError(f"Invalid params for {name}: {e}"))
            return future

        pending = PendingCall(id=call_id, method=name, future=future, issued_at=loop.time())
        self._pending[call_id] = pending
        future.add_done_callback(functools.partial(self._on_future_done, call_id))

        if self.config.call_timeout is not None:
            pending.timer = loop.call_later(self.config.call_timeout, self._expire, call_id)

        message = command.to_wire()
        self._trace("SEND", message)

        try:
            self._transport.send(message)
        except Exception as e:
            logger.warning(f"Failed to write {name} (id={call_id}): {e}")
            self._reject(call_id, e)

        return future

    def _settle(self, response: Response) -> None:
        pending = self._pending.pop(response.id, None)
        if pending is None:
            logger.debug(f"Discarding response for unknown id {response.id}")
            return

        pending.cancel_timer()
        if pending.future.done():
            return

        if response.is_error():
            error = ErrorPayload.from_raw(response.error)
            pending.future.set_exception(error.to_exception(pending.method))
        else:
            pending.future.set_result(response.result)

    def _reject(self, call_id: int, exc: BaseException) -> None:
        pending = self._pending.pop(call_id, None)
        if pending is None:
            return
        pending.cancel_timer()
        if not pending.future.done():
            pending.future.set_exception(exc)

    def _expire(self, call_id: int) -> None:
        pending = self._pending.get(call_id)
        if pending is None:
            return
        pending.timer = None
        timeout = self.config.call_timeout or 0.0
        logger.warning(f"{pending.method} (id={call_id}) timed out after {timeout:g}s")
        self._reject(call_id, CommandTimeoutError(pending.method, call_id, timeout))

    def _on_future_done(self, call_id: int, future: asyncio.Future[Any]) -> None:
        # A caller cancelling its future abandons the call
        if future.cancelled():
            pending = self._pending.pop(call_id, None)
            if pending is not None:
                pending.cancel_timer()
                logger.debug(f"{pending.method} (id={call_id}) cancelled by caller")

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, method: str | EventMethod, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for an event name.

        Handlers fire in registration order. Registering the same handler
        twice makes it fire twice.

        Args:
            method: Event name (opaque to the Connection)
            handler: Called with the event payload. May be a coroutine
                function; its coroutine is scheduled as a task.

        Returns:
            Unsubscribe function removing exactly this registration
        """
        name = method_name(method)
        if not isinstance(name, str) or not name:
            raise ValueError("Event method must be a non-empty string")
        if not callable(handler):
            raise TypeError(f"Handler for {name} is not callable")

        registration = _Registration(handler)
        self._handlers.setdefault(name, []).append(registration)

        def unsubscribe() -> None:
            registrations = self._handlers.get(name)
            if registrations and registration in registrations:
                registrations.remove(registration)
                if not registrations:
                    del self._handlers[name]

        return unsubscribe

    def off(self, method: str | EventMethod, handler: EventHandler) -> bool:
        """Remove the earliest registration of ``handler`` for ``method``.

        Returns:
            True if a registration was removed
        """
        name = method_name(method)
        registrations = self._handlers.get(name)
        if not registrations:
            return False

        for registration in registrations:
            if registration.handler == handler:
                registrations.remove(registration)
                if not registrations:
                    del self._handlers[name]
                return True
        return False

    def handlers(self, method: str | EventMethod) -> list[EventHandler]:
        """Handlers registered for ``method``, in firing order."""
        return [r.handler for r in self._handlers.get(method_name(method), [])]

    def _emit(self, notification: Notification) -> None:
        # Snapshot so handlers may (un)register without affecting this delivery
        registrations = list(self._handlers.get(notification.method, ()))
        if not registrations:
            return

        payload = notification.payload
        for registration in registrations:
            try:
                result = registration.handler(payload)
            except Exception:
                logger.exception(f"Error in handler for {notification.method}")
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._handler_tasks.add(task)
                task.add_done_callback(
                    functools.partial(self._on_handler_task_done, notification.method)
                )

    def _on_handler_task_done(self, method: str, task: asyncio.Task[Any]) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Error in async handler for {method}", exc_info=exc)

    # =========================================================================
    # Inbound
    # =========================================================================

    def dispatch(self, message: Any) -> None:
        """Process one inbound message from the transport.

        Responses settle their pending call; notifications go to the
        registered handlers. Unmatched responses, unhandled events and
        malformed messages are dropped without raising.
        """
        self._trace("RECV", message)

        if self._state == ConnectionState.CLOSED:
            logger.debug("Ignoring message received after close")
            return

        classified = classify_message(message)
        if isinstance(classified, Response):
            self._settle(classified)
        elif isinstance(classified, Notification):
            self._emit(classified)
        else:
            logger.warning(f"Discarding malformed message: {str(message)[:200]}")

    async def _read_loop(self) -> None:
        """Background task feeding transport messages into dispatch."""
        reason = "Transport closed"
        try:
            async for message in self._transport.messages():
                self.dispatch(message)
        except Exception as e:
            logger.error(f"Transport read failed: {e}")
            reason = f"Transport failed: {e}"
        self._mark_closed(reason)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Connect the transport and start reading inbound messages.

        Raises:
            ConnectionClosedError: If the connection was already closed
            TransportError: If the transport cannot connect
        """
        if self._state == ConnectionState.CLOSED:
            raise ConnectionClosedError("Connection is closed; create a new one")
        if self._reader_task is not None:
            return

        if not self._transport.is_connected:
            await self._transport.connect()
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        """Close the connection and the transport.

        Every pending call is rejected with ConnectionClosedError.
        """
        self._mark_closed("Connection closed")

        reader = self._reader_task
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        await self._transport.disconnect()

    async def wait_closed(self) -> None:
        """Wait until the channel terminates or ``close()`` is called."""
        await self._closed.wait()

    def _mark_closed(self, reason: str) -> None:
        if self._state == ConnectionState.CLOSED:
            return

        self._state = ConnectionState.CLOSED
        pending = list(self._pending.values())
        self._pending.clear()

        for call in pending:
            call.cancel_timer()
            if not call.future.done():
                call.future.set_exception(
                    ConnectionClosedError(f"{reason} before {call.method} (id={call.id}) completed")
                )

        self._closed.set()
        logger.info(f"{reason}; rejected {len(pending)} pending call(s)")

    async def __aenter__(self) -> Connection:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

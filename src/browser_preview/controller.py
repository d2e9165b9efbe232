"""Preview controller.

Owns the preview panel's application state and drives the target through a
Connection: it reacts to navigation, load and screencast events, and turns
user intents (toolbar actions, viewport resizes, raw interactions) into
commands. Rendering is left to whoever subscribes to state changes.
"""

from __future__ import annotations

import asyncio
import logging
import math
import re
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field, replace
from typing import Any

from pydantic import ValidationError

from .config import DEFAULT_START_URL, PreviewSettings
from .connection import Connection
from .errors import BrowserPreviewError
from .protocol.methods import CommandMethod, EventMethod
from .protocol.payloads import (
    AppConfigurationParams,
    DeviceMetrics,
    FrameNavigatedParams,
    NavigationHistory,
    ScreencastFrameParams,
    ScreencastOptions,
    WindowOpenParams,
    parse_event_params,
    to_params,
)

logger = logging.getLogger(__name__)

# Seconds the progress bar stays full after the load event
LOAD_SETTLE_DELAY = 0.5

_HTTP_PREFIX = re.compile(r"^http://(.+)")


@dataclass(frozen=True)
class ViewportMetadata:
    width: int = 0
    height: int = 0
    is_loading: bool = False
    loading_percent: float = 0.0


@dataclass(frozen=True)
class HistoryState:
    can_go_back: bool = False
    can_go_forward: bool = False


@dataclass(frozen=True)
class ScreencastFrame:
    base64_data: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PreviewState:
    """Everything the presentation layer needs to draw the panel."""

    url: str = DEFAULT_START_URL
    verbose: bool = False
    frame: ScreencastFrame | None = None
    viewport: ViewportMetadata = field(default_factory=ViewportMetadata)
    history: HistoryState = field(default_factory=HistoryState)


StateListener = Callable[[PreviewState], None]


def display_url(url: str) -> str:
    """Strip a leading ``http://`` for the address bar."""
    match = _HTTP_PREFIX.match(url)
    return match.group(1) if match else url


class PreviewController:
    """Application controller for the preview panel."""

    def __init__(
        self,
        connection: Connection,
        settings: PreviewSettings | None = None,
        load_settle_delay: float = LOAD_SETTLE_DELAY,
    ):
        self._connection = connection
        self.settings = settings or PreviewSettings()
        self.load_settle_delay = load_settle_delay
        self.state = PreviewState(url=self.settings.start_url, verbose=self.settings.verbose)

        self._listeners: list[StateListener] = []
        self._unsubscribers: list[Callable[[], None]] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._settle_timer: asyncio.TimerHandle | None = None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Register event handlers, enable the Page domain and load history."""
        Connection.set_logging_mode(self.state.verbose)

        handlers: dict[EventMethod, Callable[[Any], None]] = {
            EventMethod.PAGE_FRAME_NAVIGATED: self._on_frame_navigated,
            EventMethod.PAGE_LOAD_EVENT_FIRED: self._on_load_event_fired,
            EventMethod.PAGE_SCREENCAST_FRAME: self._on_screencast_frame,
            EventMethod.PAGE_WINDOW_OPEN: self._on_window_open,
            EventMethod.EXTENSION_APP_CONFIGURATION: self._on_app_configuration,
        }
        for method, handler in handlers.items():
            self._unsubscribers.append(self._connection.on(method, handler))

        self._fire(CommandMethod.PAGE_ENABLE)
        self._spawn(self.request_navigation_history())

    async def stop(self) -> None:
        """Unregister handlers and cancel outstanding background work."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        if self._settle_timer is not None:
            self._settle_timer.cancel()
            self._settle_timer = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for background work started by event handlers."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # State
    # =========================================================================

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with the state after every change.

        Returns:
            Unsubscribe function
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _update(self, **changes: Any) -> None:
        self.state = replace(self.state, **changes)
        for listener in list(self._listeners):
            try:
                listener(self.state)
            except Exception:
                logger.exception("Error in state listener")

    def _update_viewport(self, **changes: Any) -> None:
        self._update(viewport=replace(self.state.viewport, **changes))

    # =========================================================================
    # Command helpers
    # =========================================================================

    def _fire(self, method: CommandMethod | str, params: dict[str, Any] | None = None) -> None:
        """Send a command whose result nobody waits for; failures are logged."""
        future = self._connection.send(method, params)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning(f"Command failed: {exc}")

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    # =========================================================================
    # Navigation history
    # =========================================================================

    async def request_navigation_history(self) -> NavigationHistory | None:
        """Refresh url, back/forward state and the panel title."""
        try:
            raw = await self._connection.send(CommandMethod.PAGE_GET_NAVIGATION_HISTORY)
        except BrowserPreviewError as e:
            logger.warning(f"Could not get navigation history: {e}")
            return None

        if not raw:
            return None

        try:
            history = NavigationHistory.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Unexpected navigation history: {e}")
            return None

        entry = history.current_entry
        if entry is None:
            return history

        index = history.current_index
        self._update(
            url=display_url(entry.url),
            history=HistoryState(
                can_go_back=index > 0,
                can_go_forward=index < len(history.entries) - 1,
            ),
        )

        panel_title = entry.title or entry.url
        self._fire(
            CommandMethod.EXTENSION_UPDATE_TITLE,
            {"title": f"Browser Preview ({panel_title})"},
        )
        return history

    # =========================================================================
    # Event handlers
    # =========================================================================

    def _on_frame_navigated(self, payload: Any) -> None:
        params = parse_event_params(EventMethod.PAGE_FRAME_NAVIGATED, payload)
        if not isinstance(params, FrameNavigatedParams) or not params.frame.is_main_frame:
            return

        self._spawn(self.request_navigation_history())
        self._update_viewport(is_loading=True, loading_percent=0.1)

    def _on_load_event_fired(self, payload: Any) -> None:
        self._update_viewport(loading_percent=1.0)

        if self._settle_timer is not None:
            self._settle_timer.cancel()
        loop = asyncio.get_running_loop()
        self._settle_timer = loop.call_later(self.load_settle_delay, self._finish_loading)

    def _finish_loading(self) -> None:
        self._settle_timer = None
        self._update_viewport(is_loading=False, loading_percent=0.0)

    def _on_screencast_frame(self, payload: Any) -> None:
        params = parse_event_params(EventMethod.PAGE_SCREENCAST_FRAME, payload)
        if not isinstance(params, ScreencastFrameParams):
            return

        self._fire(CommandMethod.PAGE_SCREENCAST_FRAME_ACK, {"sessionId": params.session_id})
        self._update(
            frame=ScreencastFrame(
                base64_data=params.data,
                metadata=params.metadata.model_dump(by_alias=True, exclude_none=True),
            )
        )

    def _on_window_open(self, payload: Any) -> None:
        params = parse_event_params(EventMethod.PAGE_WINDOW_OPEN, payload)
        if not isinstance(params, WindowOpenParams):
            return
        self._fire(CommandMethod.EXTENSION_WINDOW_OPEN_REQUESTED, {"url": params.url})

    def _on_app_configuration(self, payload: Any) -> None:
        params = parse_event_params(EventMethod.EXTENSION_APP_CONFIGURATION, payload)
        if not isinstance(params, AppConfigurationParams) or params.settings is None:
            return

        settings = params.settings
        verbose = settings.verbose or False
        self._update(url=settings.start_url or DEFAULT_START_URL, verbose=verbose)
        Connection.set_logging_mode(verbose)

        if settings.start_url:
            self._fire(CommandMethod.PAGE_NAVIGATE, {"url": settings.start_url})

    # =========================================================================
    # User intents
    # =========================================================================

    def go_forward(self) -> None:
        self._fire(CommandMethod.PAGE_GO_FORWARD)

    def go_backward(self) -> None:
        self._fire(CommandMethod.PAGE_GO_BACKWARD)

    def reload(self) -> None:
        self._fire(CommandMethod.PAGE_RELOAD)

    def navigate(self, url: str) -> None:
        self._fire(CommandMethod.PAGE_NAVIGATE, {"url": url})
        self._update(url=url)

    def interact(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Forward a raw interaction command (mouse, keyboard, ...) as is."""
        self._fire(method, params)

    def start_casting(self) -> None:
        ratio = self.settings.device_pixel_ratio
        options = ScreencastOptions(
            format="jpeg",
            max_width=math.floor(self.state.viewport.width * ratio),
            max_height=math.floor(self.state.viewport.height * ratio),
        )
        self._fire(CommandMethod.PAGE_START_SCREENCAST, to_params(options))

    def stop_casting(self) -> None:
        self._fire(CommandMethod.PAGE_STOP_SCREENCAST)

    async def resize(self, width: float, height: float) -> None:
        """Apply a new viewport size and restart the screencast.

        Raises:
            BrowserPreviewError: If the target rejects the metrics override
        """
        self.stop_casting()

        metrics = DeviceMetrics(
            width=math.floor(width),
            height=math.floor(height),
            device_scale_factor=2,
            mobile=False,
        )
        await self._connection.send(CommandMethod.PAGE_SET_DEVICE_METRICS_OVERRIDE, to_params(metrics))

        self._update_viewport(width=math.floor(width), height=math.floor(height))
        self.start_casting()

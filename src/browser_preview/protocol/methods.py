"""Known command and event names of the preview protocol.

The names belong to the remote target (DevTools ``Page`` domain) and to the
hosting extension. The Connection treats every name as an opaque string; these
enums only give callers typed spellings of the ones in use.
"""

from __future__ import annotations

from enum import Enum


class CommandMethod(str, Enum):
    """Commands sent to the target."""

    # Page domain
    PAGE_ENABLE = "Page.enable"
    PAGE_NAVIGATE = "Page.navigate"
    PAGE_RELOAD = "Page.reload"
    PAGE_GO_FORWARD = "Page.goForward"
    PAGE_GO_BACKWARD = "Page.goBackward"
    PAGE_GET_NAVIGATION_HISTORY = "Page.getNavigationHistory"
    PAGE_SET_DEVICE_METRICS_OVERRIDE = "Page.setDeviceMetricsOverride"

    # Screencast
    PAGE_START_SCREENCAST = "Page.startScreencast"
    PAGE_STOP_SCREENCAST = "Page.stopScreencast"
    PAGE_SCREENCAST_FRAME_ACK = "Page.screencastFrameAck"

    # Extension host
    EXTENSION_UPDATE_TITLE = "extension.updateTitle"
    EXTENSION_WINDOW_OPEN_REQUESTED = "extension.windowOpenRequested"


class EventMethod(str, Enum):
    """Notifications emitted by the target."""

    PAGE_FRAME_NAVIGATED = "Page.frameNavigated"
    PAGE_LOAD_EVENT_FIRED = "Page.loadEventFired"
    PAGE_SCREENCAST_FRAME = "Page.screencastFrame"
    PAGE_WINDOW_OPEN = "Page.windowOpen"
    EXTENSION_APP_CONFIGURATION = "extension.appConfiguration"


def method_name(method: str | CommandMethod | EventMethod) -> str:
    """Return the wire spelling of a method given as enum or string."""
    return method.value if isinstance(method, Enum) else method

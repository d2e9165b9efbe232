"""Unit tests for the preview controller.

The controller runs against a real Connection over a MemoryTransport, so
these tests also exercise command/event choreography end to end.
"""

from __future__ import annotations

import asyncio

import pytest

from browser_preview.config import PreviewSettings
from browser_preview.connection import Connection
from browser_preview.controller import PreviewController, PreviewState, display_url

HISTORY = {
    "currentIndex": 1,
    "entries": [
        {"id": 1, "url": "about:blank", "title": ""},
        {"id": 2, "url": "http://example.com/docs", "title": "Docs"},
        {"id": 3, "url": "https://example.com/next", "title": "Next"},
    ],
}


@pytest.fixture
def controller(connection: Connection) -> PreviewController:
    return PreviewController(
        connection,
        PreviewSettings(device_pixel_ratio=2.0),
        load_settle_delay=0.01,
    )


def sent_with(transport, method: str) -> list[dict]:
    return [m for m in transport.sent if m["method"] == method]


class TestStart:
    """Tests for startup choreography."""

    @pytest.mark.asyncio
    async def test_enables_page_and_loads_history(self, controller, transport) -> None:
        transport.set_response("Page.getNavigationHistory", HISTORY)

        controller.start()
        await controller.drain()

        assert transport.sent_methods[:2] == ["Page.enable", "Page.getNavigationHistory"]
        assert controller.state.url == "example.com/docs"
        assert controller.state.history.can_go_back is True
        assert controller.state.history.can_go_forward is True
        assert sent_with(transport, "extension.updateTitle")[0]["params"] == {
            "title": "Browser Preview (Docs)"
        }

    @pytest.mark.asyncio
    async def test_title_falls_back_to_url(self, controller, transport) -> None:
        transport.set_response(
            "Page.getNavigationHistory",
            {"currentIndex": 0, "entries": [{"url": "https://a.test/", "title": ""}]},
        )

        controller.start()
        await controller.drain()

        assert controller.state.url == "https://a.test/"
        assert controller.state.history.can_go_back is False
        assert controller.state.history.can_go_forward is False
        assert sent_with(transport, "extension.updateTitle")[0]["params"]["title"] == (
            "Browser Preview (https://a.test/)"
        )

    @pytest.mark.asyncio
    async def test_history_error_keeps_state(self, controller, transport) -> None:
        transport.set_response("Page.getNavigationHistory", error={"message": "detached"})

        controller.start()
        await controller.drain()

        assert controller.state.url == "about:blank"
        assert sent_with(transport, "extension.updateTitle") == []

    @pytest.mark.asyncio
    async def test_stop_unregisters_handlers(self, controller, connection) -> None:
        controller.start()
        await controller.stop()

        assert connection.handlers("Page.frameNavigated") == []
        assert connection.handlers("Page.screencastFrame") == []


class TestEventHandling:
    """Tests for reactions to target events."""

    @pytest.mark.asyncio
    async def test_main_frame_navigation_starts_loading(self, controller, transport, settle) -> None:
        transport.set_response("Page.getNavigationHistory", HISTORY)
        controller.start()
        await controller.drain()
        transport.clear()
        transport.set_response("Page.getNavigationHistory", HISTORY)

        transport.inject({"method": "Page.frameNavigated", "params": {"frame": {"id": "main"}}})
        await settle()

        assert controller.state.viewport.is_loading is True
        assert controller.state.viewport.loading_percent == 0.1
        await controller.drain()
        assert "Page.getNavigationHistory" in transport.sent_methods

    @pytest.mark.asyncio
    async def test_child_frame_navigation_is_ignored(self, controller, transport, settle) -> None:
        controller.start()
        await settle()
        transport.clear()

        transport.inject(
            {"method": "Page.frameNavigated", "params": {"frame": {"id": "c", "parentId": "main"}}}
        )
        await settle()

        assert controller.state.viewport.is_loading is False
        assert transport.sent_methods == []

    @pytest.mark.asyncio
    async def test_load_event_completes_then_resets(self, controller, transport, settle) -> None:
        controller.start()

        transport.inject({"method": "Page.loadEventFired", "params": {"timestamp": 1}})
        await settle()
        assert controller.state.viewport.loading_percent == 1.0

        await asyncio.sleep(0.05)
        assert controller.state.viewport.is_loading is False
        assert controller.state.viewport.loading_percent == 0.0

    @pytest.mark.asyncio
    async def test_screencast_frame_is_acked_and_stored(self, controller, transport, settle) -> None:
        controller.start()

        transport.inject(
            {
                "method": "Page.screencastFrame",
                "params": {"sessionId": 9, "data": "aGVsbG8=", "metadata": {"deviceWidth": 400}},
            }
        )
        await settle()

        assert sent_with(transport, "Page.screencastFrameAck")[0]["params"] == {"sessionId": 9}
        assert controller.state.frame.base64_data == "aGVsbG8="
        assert controller.state.frame.metadata == {"deviceWidth": 400}

    @pytest.mark.asyncio
    async def test_window_open_is_forwarded(self, controller, transport, settle) -> None:
        controller.start()

        transport.inject({"method": "Page.windowOpen", "params": {"url": "http://popup.test"}})
        await settle()

        assert sent_with(transport, "extension.windowOpenRequested")[0]["params"] == {
            "url": "http://popup.test"
        }

    @pytest.mark.asyncio
    async def test_app_configuration_applies_settings(self, controller, transport, settle) -> None:
        controller.start()

        transport.inject(
            {
                "method": "extension.appConfiguration",
                "params": {"settings": {"startUrl": "http://localhost:3000", "verbose": True}},
            }
        )
        await settle()

        assert controller.state.url == "http://localhost:3000"
        assert controller.state.verbose is True
        assert Connection.logging_enabled() is True
        assert sent_with(transport, "Page.navigate")[0]["params"] == {
            "url": "http://localhost:3000"
        }

    @pytest.mark.asyncio
    async def test_app_configuration_without_settings(self, controller, transport, settle) -> None:
        controller.start()
        await settle()
        transport.clear()

        transport.inject({"method": "extension.appConfiguration", "params": {}})
        await settle()

        assert controller.state.url == "about:blank"
        assert transport.sent_methods == []


class TestUserIntents:
    """Tests for toolbar and viewport intents."""

    @pytest.mark.asyncio
    async def test_toolbar_actions(self, controller, transport) -> None:
        controller.go_forward()
        controller.go_backward()
        controller.reload()
        controller.navigate("http://example.com")

        assert transport.sent_methods == [
            "Page.goForward",
            "Page.goBackward",
            "Page.reload",
            "Page.navigate",
        ]
        assert controller.state.url == "http://example.com"

    @pytest.mark.asyncio
    async def test_interaction_passthrough(self, controller, transport) -> None:
        controller.interact("Input.dispatchMouseEvent", {"type": "mousePressed", "x": 1, "y": 2})

        assert transport.sent[-1]["method"] == "Input.dispatchMouseEvent"
        assert transport.sent[-1]["params"]["x"] == 1

    @pytest.mark.asyncio
    async def test_resize_restarts_screencast(self, controller, transport) -> None:
        transport.set_response("Page.setDeviceMetricsOverride", {})

        await controller.resize(640.7, 480.2)

        assert transport.sent_methods == [
            "Page.stopScreencast",
            "Page.setDeviceMetricsOverride",
            "Page.startScreencast",
        ]
        assert transport.sent[1]["params"] == {
            "width": 640,
            "height": 480,
            "deviceScaleFactor": 2,
            "mobile": False,
        }
        assert transport.sent[2]["params"] == {
            "format": "jpeg",
            "maxWidth": 1280,
            "maxHeight": 960,
        }
        assert controller.state.viewport.width == 640
        assert controller.state.viewport.height == 480

    @pytest.mark.asyncio
    async def test_listeners_see_state_changes(self, controller) -> None:
        seen: list[PreviewState] = []
        unsubscribe = controller.subscribe(seen.append)

        controller.navigate("http://a.test")
        unsubscribe()
        controller.navigate("http://b.test")

        assert [s.url for s in seen] == ["http://a.test"]


def test_display_url():
    assert display_url("http://example.com/") == "example.com/"
    assert display_url("https://example.com/") == "https://example.com/"

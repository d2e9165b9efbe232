"""Unit tests for wire message models and classification."""

import json

import pytest

from browser_preview.errors import ProtocolError
from browser_preview.protocol.messages import (
    Command,
    ErrorPayload,
    Notification,
    Response,
    classify_message,
    decode_message,
    encode_message,
)
from browser_preview.protocol.methods import CommandMethod, EventMethod, method_name


class TestCommand:
    """Test outbound Command construction."""

    def test_to_wire_omits_absent_params(self):
        """Params are left out when not given."""
        cmd = Command(id=1, method="Page.enable")

        assert cmd.to_wire() == {"id": 1, "method": "Page.enable"}

    def test_to_wire_with_params(self):
        cmd = Command(id=3, method="Page.navigate", params={"url": "http://x"})

        assert cmd.to_wire() == {"id": 3, "method": "Page.navigate", "params": {"url": "http://x"}}

    def test_rejects_empty_method(self):
        with pytest.raises(ValueError):
            Command(id=1, method="")

    def test_rejects_non_mapping_params(self):
        with pytest.raises(ValueError):
            Command(id=1, method="Page.navigate", params=["http://x"])


class TestClassifyMessage:
    """Test response/notification classification."""

    def test_response_with_result(self):
        msg = classify_message({"id": 4, "result": {"frameId": "F"}})

        assert isinstance(msg, Response)
        assert msg.id == 4
        assert msg.result == {"frameId": "F"}
        assert msg.is_error() is False

    def test_response_with_error(self):
        msg = classify_message({"id": 4, "error": {"code": -1, "message": "nope"}})

        assert isinstance(msg, Response)
        assert msg.is_error() is True

    def test_notification(self):
        msg = classify_message({"method": "Page.loadEventFired", "params": {"timestamp": 2}})

        assert isinstance(msg, Notification)
        assert msg.method == "Page.loadEventFired"
        assert msg.payload == {"timestamp": 2}

    def test_notification_without_params_has_empty_payload(self):
        msg = classify_message({"method": "Page.loadEventFired"})

        assert isinstance(msg, Notification)
        assert msg.payload == {}

    def test_invalid_id_falls_back_to_method(self):
        """A non-integer id does not make a response."""
        msg = classify_message({"id": "x", "method": "Page.windowOpen", "params": {"url": "u"}})

        assert isinstance(msg, Notification)

    @pytest.mark.parametrize(
        "raw",
        [None, 42, "text", [], {}, {"result": {}}, {"id": 1.5}, {"method": None}],
    )
    def test_malformed(self, raw):
        assert classify_message(raw) is None


class TestErrorPayload:
    """Test error payload coercion."""

    def test_from_dict(self):
        payload = ErrorPayload.from_raw({"code": -32000, "message": "Cannot navigate", "data": "x"})

        assert payload.code == -32000
        assert payload.message == "Cannot navigate"
        assert payload.data == "x"

    def test_from_string(self):
        payload = ErrorPayload.from_raw("bad things")

        assert payload.message == "bad things"
        assert payload.code is None

    def test_from_dict_with_wrong_types(self):
        payload = ErrorPayload.from_raw({"code": "abc", "message": "odd"})

        assert payload.message == "odd"

    def test_to_exception(self):
        exc = ErrorPayload(code=7, message="fail").to_exception("Page.reload")

        assert isinstance(exc, ProtocolError)
        assert str(exc) == "Page.reload: fail (code 7)"


class TestCodec:
    """Test JSON encoding and decoding."""

    def test_encode_is_compact(self):
        assert encode_message({"id": 1, "method": "Page.enable"}) == '{"id":1,"method":"Page.enable"}'

    def test_encode_rejects_unserializable(self):
        with pytest.raises(TypeError):
            encode_message({"id": 1, "method": "x", "params": {"v": object()}})

    def test_decode_bytes(self):
        assert decode_message(b'{"id": 1}') == {"id": 1}

    def test_decode_invalid(self):
        with pytest.raises(json.JSONDecodeError):
            decode_message("{")


class TestMethods:
    """Test method name enums."""

    def test_wire_names(self):
        assert CommandMethod.PAGE_SCREENCAST_FRAME_ACK.value == "Page.screencastFrameAck"
        assert EventMethod.EXTENSION_APP_CONFIGURATION.value == "extension.appConfiguration"

    def test_method_name(self):
        assert method_name(CommandMethod.PAGE_NAVIGATE) == "Page.navigate"
        assert method_name("Custom.thing") == "Custom.thing"

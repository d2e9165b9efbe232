"""Wire message models for the preview protocol.

Three message shapes travel over the channel:

- Command (outbound): ``{"id": 7, "method": "Page.navigate", "params": {...}}``
- Response (inbound): ``{"id": 7, "result": {...}}`` or ``{"id": 7, "error": {...}}``
- Notification (inbound): ``{"method": "Page.loadEventFired", "params": {...}}``

Responses are told apart from notifications by the presence of an integer
``id``. Anything matching neither shape is malformed.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, ValidationError

from ..errors import ProtocolError


class Command(BaseModel):
    """An outbound command.

    ``params`` is omitted from the wire when absent; an explicitly empty
    mapping is sent as ``{}``.
    """

    id: StrictInt
    method: StrictStr = Field(min_length=1)
    params: dict[str, Any] | None = None

    def to_wire(self) -> dict[str, Any]:
        """Build the outbound message dict."""
        return self.model_dump(exclude_none=True)


class ErrorPayload(BaseModel):
    """Error object carried by a failed response."""

    model_config = ConfigDict(extra="allow")

    code: int | None = None
    message: str = "Unknown error"
    data: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> ErrorPayload:
        """Coerce whatever the target sent in ``error`` into a payload."""
        if isinstance(raw, dict):
            try:
                return cls.model_validate(raw)
            except ValidationError:
                return cls(message=str(raw.get("message", raw)), data=raw)
        return cls(message=str(raw))

    def to_exception(self, method: str | None = None) -> ProtocolError:
        return ProtocolError(self.message, code=self.code, data=self.data, method=method)


class Response(BaseModel):
    """Inbound reply correlated to a command by ``id``."""

    model_config = ConfigDict(extra="ignore")

    id: StrictInt
    result: Any = None
    error: Any = None

    def is_error(self) -> bool:
        return self.error is not None


class Notification(BaseModel):
    """Inbound unsolicited event."""

    model_config = ConfigDict(extra="ignore")

    method: StrictStr = Field(min_length=1)
    params: Any = None

    @property
    def payload(self) -> Any:
        """Event payload handed to handlers; empty dict when absent."""
        return self.params if self.params is not None else {}


def classify_message(raw: Any) -> Response | Notification | None:
    """Classify an inbound message.

    Returns a Response when the message carries an integer ``id``, a
    Notification when it carries a method name, and None when it is
    malformed.
    """
    if not isinstance(raw, dict):
        return None

    if "id" in raw:
        try:
            return Response.model_validate(raw)
        except ValidationError:
            pass

    if "method" in raw:
        try:
            return Notification.model_validate(raw)
        except ValidationError:
            pass

    return None


def encode_message(message: dict[str, Any]) -> str:
    """Serialize a message for the wire.

    Raises:
        TypeError: If the message contains values JSON cannot represent.
    """
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


def decode_message(data: str | bytes) -> Any:
    """Parse one framed inbound message.

    Raises:
        ValueError: If the frame is not valid JSON.
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    return json.loads(data)

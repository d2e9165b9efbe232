"""Transport-agnostic protocol layer.

Defines the command/response/notification shapes of the preview protocol
and typed payloads for the commands and events the preview uses.

Key concepts:
- Commands: outbound requests carrying an integer correlation id
- Responses: inbound replies carrying the same id with a result or error
- Notifications: inbound events carrying a method name and no id
"""

from .messages import (
    Command,
    ErrorPayload,
    Notification,
    Response,
    classify_message,
    decode_message,
    encode_message,
)
from .methods import CommandMethod, EventMethod, method_name
from .payloads import parse_event_params

__all__ = [
    "Command",
    "CommandMethod",
    "ErrorPayload",
    "EventMethod",
    "Notification",
    "Response",
    "classify_message",
    "decode_message",
    "encode_message",
    "method_name",
    "parse_event_params",
]

"""Runtime configuration.

Settings are plain dataclasses; ``from_env()`` overlays ``BROWSER_PREVIEW_*``
environment variables on the defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_START_URL = "about:blank"
DEFAULT_ENDPOINT = "http://localhost:9222"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = float(value)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {value!r}") from e
    # Zero or negative disables the timeout
    return parsed if parsed > 0 else None


@dataclass
class ConnectionConfig:
    """Configuration for a Connection.

    call_timeout: seconds a command may stay pending before it is rejected
        with CommandTimeoutError. None keeps calls pending until a response
        arrives or the connection closes.
    """

    call_timeout: float | None = None

    @classmethod
    def from_env(cls) -> ConnectionConfig:
        return cls(call_timeout=_env_float("BROWSER_PREVIEW_CALL_TIMEOUT", None))


@dataclass
class PreviewSettings:
    """Application settings for the preview controller."""

    start_url: str = DEFAULT_START_URL
    verbose: bool = False
    device_pixel_ratio: float = 1.0
    endpoint: str = DEFAULT_ENDPOINT

    @classmethod
    def from_env(cls) -> PreviewSettings:
        ratio = _env_float("BROWSER_PREVIEW_DEVICE_PIXEL_RATIO", 1.0)
        return cls(
            start_url=os.getenv("BROWSER_PREVIEW_START_URL", DEFAULT_START_URL),
            verbose=_env_bool("BROWSER_PREVIEW_VERBOSE", False),
            device_pixel_ratio=ratio if ratio is not None else 1.0,
            endpoint=os.getenv("BROWSER_PREVIEW_ENDPOINT", DEFAULT_ENDPOINT),
        )

"""Typed payloads for the known commands and events.

Known event names map to a pydantic model; unknown names keep their raw
payload so new target versions never break dispatch.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .methods import EventMethod, method_name

logger = logging.getLogger(__name__)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# =============================================================================
# Event payloads
# =============================================================================


class Frame(_Payload):
    id: str | None = None
    parent_id: str | None = Field(default=None, alias="parentId")
    url: str | None = None

    @property
    def is_main_frame(self) -> bool:
        return not self.parent_id


class FrameNavigatedParams(_Payload):
    frame: Frame = Field(default_factory=Frame)


class LoadEventFiredParams(_Payload):
    timestamp: float | None = None


class ScreencastFrameMetadata(_Payload):
    offset_top: float | None = Field(default=None, alias="offsetTop")
    page_scale_factor: float | None = Field(default=None, alias="pageScaleFactor")
    device_width: float | None = Field(default=None, alias="deviceWidth")
    device_height: float | None = Field(default=None, alias="deviceHeight")
    scroll_offset_x: float | None = Field(default=None, alias="scrollOffsetX")
    scroll_offset_y: float | None = Field(default=None, alias="scrollOffsetY")
    timestamp: float | None = None


class ScreencastFrameParams(_Payload):
    session_id: int = Field(alias="sessionId")
    data: str
    metadata: ScreencastFrameMetadata = Field(default_factory=ScreencastFrameMetadata)


class WindowOpenParams(_Payload):
    url: str


class AppSettings(_Payload):
    start_url: str | None = Field(default=None, alias="startUrl")
    verbose: bool | None = None


class AppConfigurationParams(_Payload):
    settings: AppSettings | None = None


# =============================================================================
# Command payloads and results
# =============================================================================


class NavigationEntry(_Payload):
    id: int | None = None
    url: str = ""
    title: str = ""


class NavigationHistory(_Payload):
    current_index: int = Field(alias="currentIndex")
    entries: list[NavigationEntry]

    @property
    def current_entry(self) -> NavigationEntry | None:
        if 0 <= self.current_index < len(self.entries):
            return self.entries[self.current_index]
        return None


class DeviceMetrics(_Payload):
    width: int
    height: int
    device_scale_factor: float = Field(default=2, alias="deviceScaleFactor")
    mobile: bool = False


class ScreencastOptions(_Payload):
    format: str = "jpeg"
    max_width: int | None = Field(default=None, alias="maxWidth")
    max_height: int | None = Field(default=None, alias="maxHeight")


def to_params(payload: BaseModel) -> dict[str, Any]:
    """Dump a payload model as wire params (camelCase, no unset optionals)."""
    return payload.model_dump(by_alias=True, exclude_none=True)


EVENT_PAYLOADS: dict[str, type[BaseModel]] = {
    EventMethod.PAGE_FRAME_NAVIGATED.value: FrameNavigatedParams,
    EventMethod.PAGE_LOAD_EVENT_FIRED.value: LoadEventFiredParams,
    EventMethod.PAGE_SCREENCAST_FRAME.value: ScreencastFrameParams,
    EventMethod.PAGE_WINDOW_OPEN.value: WindowOpenParams,
    EventMethod.EXTENSION_APP_CONFIGURATION.value: AppConfigurationParams,
}


def parse_event_params(method: str | EventMethod, params: Any) -> BaseModel | Any:
    """Return a typed payload for known events, the raw payload otherwise.

    A known event whose payload fails validation also falls back to the raw
    payload; the mismatch is logged.
    """
    model = EVENT_PAYLOADS.get(method_name(method))
    if model is None:
        return params
    try:
        return model.model_validate(params if params is not None else {})
    except ValidationError as e:
        logger.warning(f"Unexpected payload for {method_name(method)}: {e}")
        return params

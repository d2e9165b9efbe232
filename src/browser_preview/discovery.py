"""Target discovery over the DevTools HTTP endpoint.

A browser started with ``--remote-debugging-port`` serves a small JSON API:
- GET /json/version - browser info and the browser-level WebSocket URL
- GET /json/list - open targets (pages, workers, ...)
- PUT /json/new?<url> - open a new page target
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import TransportError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TargetInfo(BaseModel):
    """One debuggable target as reported by ``/json/list``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    type: str = "page"
    title: str = ""
    url: str = ""
    web_socket_debugger_url: str | None = Field(default=None, alias="webSocketDebuggerUrl")

    @property
    def is_page(self) -> bool:
        return self.type == "page"


class BrowserVersion(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    browser: str = Field(default="", alias="Browser")
    protocol_version: str = Field(default="", alias="Protocol-Version")
    web_socket_debugger_url: str | None = Field(default=None, alias="webSocketDebuggerUrl")


class TargetDiscovery:
    """Client for the DevTools HTTP endpoint.

    Args:
        endpoint: Base URL, e.g. ``http://localhost:9222``
        timeout: Request timeout in seconds
        transport: Optional httpx transport (used by tests)
    """

    def __init__(
        self,
        endpoint: str = "http://localhost:9222",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.endpoint,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> TargetDiscovery:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _request(self, method: str, path: str) -> Any:
        try:
            response = await self._client.request(method, path)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise TransportError(f"DevTools endpoint {self.endpoint} failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"DevTools endpoint returned invalid JSON: {e}") from e

    def _parse(self, model: type[ModelT], data: Any, path: str) -> ModelT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise TransportError(f"Unexpected {path} payload from {self.endpoint}: {e}") from e

    async def version(self) -> BrowserVersion:
        data = await self._request("GET", "/json/version")
        return self._parse(BrowserVersion, data, "/json/version")

    async def list_targets(self, pages_only: bool = True) -> list[TargetInfo]:
        """List debuggable targets.

        Args:
            pages_only: Skip service workers, iframes and other non-page targets
        """
        data = await self._request("GET", "/json/list")
        if not isinstance(data, list):
            raise TransportError(f"Expected a list from /json/list, got {type(data).__name__}")
        targets = [self._parse(TargetInfo, item, "/json/list") for item in data]
        if pages_only:
            targets = [t for t in targets if t.is_page]
        return targets

    async def new_page(self, url: str = "about:blank") -> TargetInfo:
        """Open a new page target."""
        data = await self._request("PUT", f"/json/new?{url}")
        return self._parse(TargetInfo, data, "/json/new")

    async def find_page(self, url: str | None = None) -> TargetInfo:
        """Pick a page target to attach to.

        Returns the first page whose URL starts with ``url`` when given,
        otherwise the first page. Opens a new page when none exists.

        Raises:
            TransportError: If the endpoint is unreachable or the target has
                no WebSocket URL (another client may be attached)
        """
        pages = await self.list_targets()
        if url:
            pages = [p for p in pages if p.url.startswith(url)] or pages

        target = pages[0] if pages else await self.new_page(url or "about:blank")
        if not target.web_socket_debugger_url:
            raise TransportError(f"Target {target.id} has no webSocketDebuggerUrl")

        logger.info(f"Selected target {target.id} ({target.url})")
        return target

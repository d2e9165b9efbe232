"""Browser Preview CLI.

Talks to a browser started with ``--remote-debugging-port``.

Usage:
    browser-preview targets                       # List page targets
    browser-preview targets -f json               # ... as JSON
    browser-preview open https://example.com      # Navigate and wait for load
    browser-preview send Page.getNavigationHistory
    browser-preview send Page.navigate '{"url": "https://example.com"}'

    browser-preview --endpoint http://localhost:9333 targets
    browser-preview --verbose open about:blank    # Trace protocol traffic
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .config import ConnectionConfig, PreviewSettings
from .connection import Connection
from .controller import PreviewController
from .discovery import TargetDiscovery
from .errors import BrowserPreviewError
from .protocol.methods import EventMethod
from .transport.websocket import create_websocket_transport

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _configure_logging(verbose: bool) -> None:
    """Send logs to stderr; protocol output goes to stdout."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(logging.INFO if verbose else logging.WARNING)

    for noisy in ("httpx", "httpcore", "websockets"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@click.group()
@click.option(
    "--endpoint",
    envvar="BROWSER_PREVIEW_ENDPOINT",
    default=None,
    help="DevTools HTTP endpoint (default: http://localhost:9222)",
)
@click.option("--verbose", "-v", is_flag=True, help="Trace protocol traffic to stderr")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds before a pending command is rejected (default: no timeout)",
)
@click.pass_context
def main(ctx: click.Context, endpoint: str | None, verbose: bool, timeout: float | None) -> None:
    """Browser Preview - drive a browser tab over the DevTools protocol."""
    settings = PreviewSettings.from_env()
    if endpoint:
        settings.endpoint = endpoint
    settings.verbose = settings.verbose or verbose

    connection_config = ConnectionConfig.from_env()
    if timeout is not None:
        connection_config.call_timeout = timeout if timeout > 0 else None

    _configure_logging(settings.verbose)
    Connection.set_logging_mode(settings.verbose)

    ctx.obj = {"settings": settings, "connection_config": connection_config}


# =============================================================================
# Target Commands
# =============================================================================


@main.command("targets")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.option("--all", "show_all", is_flag=True, help="Include non-page targets")
@click.pass_context
def targets(ctx: click.Context, output_format: str, show_all: bool) -> None:
    """List debuggable targets."""
    settings: PreviewSettings = ctx.obj["settings"]

    async def _list() -> list[Any]:
        async with TargetDiscovery(settings.endpoint) as discovery:
            return await discovery.list_targets(pages_only=not show_all)

    try:
        found = asyncio.run(_list())
    except BrowserPreviewError as e:
        raise click.ClickException(str(e)) from e

    if output_format == FORMAT_JSON:
        click.echo(json.dumps([t.model_dump(by_alias=True) for t in found], indent=2))
        return

    if not found:
        click.echo("No targets found")
        return

    click.echo(f"{'ID':<34} {'TYPE':<10} {'TITLE':<30} URL")
    click.echo("-" * 100)
    for target in found:
        click.echo(
            f"{truncate(target.id, 34):<34} {target.type:<10} "
            f"{truncate(target.title, 30):<30} {truncate(target.url, 40)}"
        )


# =============================================================================
# Session Commands
# =============================================================================


async def _attach(settings: PreviewSettings, connection_config: ConnectionConfig) -> Connection:
    async with TargetDiscovery(settings.endpoint) as discovery:
        target = await discovery.find_page()

    transport = create_websocket_transport(target.web_socket_debugger_url or "")
    connection = Connection(transport, connection_config)
    await connection.start()
    return connection


@main.command("open")
@click.argument("url")
@click.option("--wait/--no-wait", default=True, help="Wait for the load event")
@click.option("--load-timeout", default=30.0, help="Seconds to wait for the load event")
@click.pass_context
def open_url(ctx: click.Context, url: str, wait: bool, load_timeout: float) -> None:
    """Navigate the first page target to URL."""
    settings: PreviewSettings = ctx.obj["settings"]
    connection_config: ConnectionConfig = ctx.obj["connection_config"]

    async def _open() -> dict[str, Any]:
        connection = await _attach(settings, connection_config)
        controller = PreviewController(connection, settings)
        loaded = asyncio.Event()
        connection.on(EventMethod.PAGE_LOAD_EVENT_FIRED, lambda _: loaded.set())

        try:
            controller.start()
            controller.navigate(url)
            if wait:
                await asyncio.wait_for(loaded.wait(), timeout=load_timeout)
            history = await controller.request_navigation_history()
            entry = history.current_entry if history else None
            return {
                "url": entry.url if entry else url,
                "title": entry.title if entry else "",
                "can_go_back": controller.state.history.can_go_back,
                "can_go_forward": controller.state.history.can_go_forward,
            }
        finally:
            await controller.stop()
            await connection.close()

    try:
        info = asyncio.run(_open())
    except TimeoutError as e:
        raise click.ClickException(f"Timed out waiting for {url} to load") from e
    except BrowserPreviewError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"URL:     {info['url']}")
    click.echo(f"Title:   {info['title'] or '(untitled)'}")
    click.echo(f"Back:    {'yes' if info['can_go_back'] else 'no'}")
    click.echo(f"Forward: {'yes' if info['can_go_forward'] else 'no'}")


@main.command("send")
@click.argument("method")
@click.argument("params", required=False)
@click.pass_context
def send_command(ctx: click.Context, method: str, params: str | None) -> None:
    """Send one raw command and print its result as JSON."""
    settings: PreviewSettings = ctx.obj["settings"]
    connection_config: ConnectionConfig = ctx.obj["connection_config"]

    parsed: dict[str, Any] | None = None
    if params:
        try:
            parsed = json.loads(params)
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"PARAMS is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise click.BadParameter("PARAMS must be a JSON object")

    async def _send() -> Any:
        connection = await _attach(settings, connection_config)
        try:
            return await connection.send(method, parsed)
        finally:
            await connection.close()

    try:
        result = asyncio.run(_send())
    except BrowserPreviewError as e:
        raise click.ClickException(str(e)) from e

    click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()

"""Transport over subprocess stdin/stdout.

Launches a bridge process (for example an editor extension host helper) and
communicates via newline-delimited JSON.

Wire format:
- Outbound: JSON object + newline to subprocess stdin
- Inbound: JSON object + newline from subprocess stdout
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from collections.abc import AsyncIterator

from .base import BaseTransport, TransportConfig

logger = logging.getLogger(__name__)

# Screencast frames arrive as single base64 lines well above asyncio's 64 KiB default
DEFAULT_LINE_LIMIT = 16 * 1024 * 1024


class StdioTransport(BaseTransport):
    """JSON-lines transport to a child process."""

    def __init__(self, config: TransportConfig | None = None):
        super().__init__(config or TransportConfig())
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._line_limit = self.config.max_message_size or DEFAULT_LINE_LIMIT

    async def _do_connect(self) -> None:
        """Launch subprocess and establish communication."""
        cmd = self.config.command
        if not cmd:
            raise ValueError("No bridge command configured")

        env = None
        if self.config.env:
            env = {**os.environ, **self.config.env}

        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.config.working_directory,
            env=env,
            limit=self._line_limit,
        )

        self._stderr_task = asyncio.create_task(self._read_stderr())

        logger.info(f"Launched subprocess: {' '.join(cmd)} (pid={self._process.pid})")

    async def _do_disconnect(self) -> None:
        """Terminate subprocess."""
        if self._stderr_task:
            self._stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stderr_task
            self._stderr_task = None

        if self._process:
            if self._process.returncode is None:
                self._process.terminate()
                try:
                    await asyncio.wait_for(self._process.wait(), timeout=5.0)
                except TimeoutError:
                    self._process.kill()
                    await self._process.wait()
            logger.info(f"Subprocess terminated (pid={self._process.pid})")
            self._process = None

    async def _do_write(self, frame: str) -> None:
        if not self._process or not self._process.stdin:
            raise ConnectionError("Process not running")

        self._process.stdin.write((frame + "\n").encode("utf-8"))
        await self._process.stdin.drain()

    async def _receive_frames(self) -> AsyncIterator[str | bytes]:
        if not self._process or not self._process.stdout:
            raise ConnectionError("Process not running")

        stdout = self._process.stdout
        while True:
            try:
                line = await stdout.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                # Process exited; a final unterminated line is still a frame
                line = e.partial
                if line.strip():
                    yield line.strip()
                break
            except asyncio.LimitOverrunError as e:
                skipped = await self._skip_line(stdout, e.consumed)
                logger.warning(f"Dropping inbound line over {self._line_limit} bytes ({skipped} bytes)")
                continue

            frame = line.strip()
            if not frame:
                continue

            # Bridges sometimes leak log output to stdout
            if not frame.startswith(b"{"):
                logger.debug(f"Skipping non-JSON line: {frame[:50]!r}")
                continue

            # Decoding happens in messages(), which drops frames it cannot read
            yield frame

    @staticmethod
    async def _skip_line(stdout: asyncio.StreamReader, consumed: int) -> int:
        """Discard the rest of an oversized line. Returns the bytes skipped."""
        skipped = 0
        while True:
            skipped += len(await stdout.readexactly(consumed))
            try:
                skipped += len(await stdout.readuntil(b"\n"))
                return skipped
            except asyncio.LimitOverrunError as e:
                consumed = e.consumed
            except asyncio.IncompleteReadError as e:
                return skipped + len(e.partial)

    async def _read_stderr(self) -> None:
        """Read and log stderr output."""
        if not self._process or not self._process.stderr:
            return

        while True:
            try:
                line = await self._process.stderr.readline()
            except ValueError:
                logger.debug("[bridge stderr] (oversized line dropped)")
                continue
            if not line:
                break
            logger.debug(f"[bridge stderr] {line.decode('utf-8', errors='replace').strip()}")


def create_stdio_transport(
    command: list[str],
    working_directory: str | None = None,
    env: dict[str, str] | None = None,
    max_message_size: int | None = None,
) -> StdioTransport:
    """Create a stdio transport for a bridge subprocess.

    Args:
        command: Command line of the bridge process
        working_directory: CWD for subprocess
        env: Additional environment variables
        max_message_size: Longest accepted inbound line in bytes
    """
    config = TransportConfig(
        command=command,
        working_directory=working_directory,
        env=env,
        max_message_size=max_message_size,
    )
    return StdioTransport(config)

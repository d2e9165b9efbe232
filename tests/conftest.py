"""Pytest configuration and shared fixtures."""

import asyncio
from collections.abc import AsyncIterator

import pytest
import pytest_asyncio

from browser_preview.config import ConnectionConfig
from browser_preview.connection import Connection
from browser_preview.transport.memory import MemoryTransport


@pytest.fixture(autouse=True)
def reset_logging_mode():
    """Logging mode is process-wide; keep tests independent."""
    Connection.set_logging_mode(False)
    yield
    Connection.set_logging_mode(False)


@pytest.fixture
def transport() -> MemoryTransport:
    return MemoryTransport()


@pytest_asyncio.fixture
async def connection(transport: MemoryTransport) -> AsyncIterator[Connection]:
    """A started Connection over a memory transport."""
    conn = Connection(transport, ConnectionConfig())
    await conn.start()
    yield conn
    await conn.close()


async def _settle() -> None:
    """Let the connection's reader task process injected messages."""
    for _ in range(10):
        await asyncio.sleep(0)


@pytest.fixture
def settle():
    """Awaitable helper that runs pending loop callbacks."""
    return _settle

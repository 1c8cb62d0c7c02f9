"""
Shared test fixtures.

MockDevice is a loopback TCP server standing in for a battery's monitor
service. It sends its canned response, then records everything the client
writes until the client closes the connection.
"""

from __future__ import annotations

import asyncio
import socket
from typing import Sequence

import pytest

from pyfelicity import DeviceTarget


class MockDevice:
    """Loopback stand-in for one battery.

    Args:
        chunks: Response pieces, written in order with ``gap`` seconds between.
        eof: Half-close the connection after the response.
        delay: Seconds to wait before responding.
    """

    def __init__(
        self,
        chunks: Sequence[bytes] = (),
        eof: bool = False,
        delay: float = 0.0,
        gap: float = 0.05,
    ) -> None:
        self.chunks = list(chunks)
        self.eof = eof
        self.delay = delay
        self.gap = gap
        self.received = b""
        self.connections = 0
        self.done = asyncio.Event()
        self.port = 0
        self._server: asyncio.AbstractServer | None = None

    @property
    def target(self) -> DeviceTarget:
        return DeviceTarget("127.0.0.1", self.port)

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.connections += 1
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            for i, chunk in enumerate(self.chunks):
                if i:
                    await asyncio.sleep(self.gap)
                writer.write(chunk)
                await writer.drain()
            if self.eof:
                writer.write_eof()
            self.received = await reader.read()
        except ConnectionError:
            pass
        finally:
            writer.close()
            self.done.set()

    async def wait_done(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self.done.wait(), timeout)

    async def __aenter__(self) -> MockDevice:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._server.close()
        await self._server.wait_closed()


class RecordingPublisher:
    """Publisher double that keeps every message in order."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    async def publish(self, topic: str, payload: str) -> bool:
        self.messages.append((topic, payload))
        return True

    def as_dict(self) -> dict[str, str]:
        return dict(self.messages)


@pytest.fixture()
def closed_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()

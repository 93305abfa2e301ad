import asyncio
import socket
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

import pytest

from portscope.core.models import PortState
from portscope.scanner.port_probe import PortProbe


class FakeReader:
    """Stream reader stand-in returning scripted chunks."""

    def __init__(self, chunks: Optional[List[bytes]] = None, exc: Optional[BaseException] = None, hang: bool = False):
        self.chunks = list(chunks or [])
        self.exc = exc
        self.hang = hang

    async def read(self, n: int = -1) -> bytes:
        if self.hang:
            await asyncio.sleep(3600)
        if self.exc is not None:
            raise self.exc
        if self.chunks:
            return self.chunks.pop(0)
        return b""


class FakeWriter:
    """Stream writer stand-in that counts close() calls."""

    def __init__(self):
        self.close_calls = 0
        self.written: List[bytes] = []

    def write(self, data: bytes) -> None:
        self.written.append(data)

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.close_calls += 1

    async def wait_closed(self) -> None:
        pass


class RecordingProbe(PortProbe):
    """Probe double that records concurrency and returns scripted states."""

    name = "fake"

    def __init__(self, states: Optional[Dict[int, PortState]] = None,
                 delays: Optional[Dict[int, float]] = None,
                 banners: Optional[Dict[int, str]] = None,
                 default_delay: float = 0.01):
        self.states = states or {}
        self.delays = delays or {}
        self.banners = banners or {}
        self.default_delay = default_delay
        self.active = 0
        self.peak = 0
        self.events: List[Tuple[str, int]] = []
        self.cancelled: List[int] = []

    async def probe(self, host, port, timeout_ms, server_name=None):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.events.append(("start", port))
        try:
            await asyncio.sleep(self.delays.get(port, self.default_delay))
        except asyncio.CancelledError:
            self.cancelled.append(port)
            raise
        finally:
            self.active -= 1
        self.events.append(("end", port))
        state = self.states.get(port, PortState.CLOSED)
        reason = {"open": "connected", "closed": "refused", "filtered": "timeout"}[state.value]
        return self._outcome(port, state, reason, banner=self.banners.get(port))


@pytest.fixture
def recording_probe():
    return RecordingProbe


@pytest.fixture
def closed_port():
    """A localhost port with nothing listening on it"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


@pytest.fixture
def tcp_server():
    """Factory for a localhost listener, used inside a running event loop.

    ``banner`` is sent on connect; ``reply`` is sent back if the client
    writes anything.
    """

    @asynccontextmanager
    async def start(banner: Optional[bytes] = None, reply: Optional[bytes] = None):
        async def handle(reader, writer):
            try:
                if banner:
                    writer.write(banner)
                    await writer.drain()
                try:
                    data = await asyncio.wait_for(reader.read(1024), timeout=1.0)
                except asyncio.TimeoutError:
                    data = b""
                if data and reply:
                    writer.write(reply)
                    await writer.drain()
            except ConnectionError:
                pass
            finally:
                writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            yield port
        finally:
            server.close()
            await server.wait_closed()

    return start


@pytest.fixture
def scan_env(monkeypatch):
    """Set PORTSCOPE_* environment variables for a fresh ScanConfig"""

    def apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(f"PORTSCOPE_{key.upper()}", str(value))

    return apply

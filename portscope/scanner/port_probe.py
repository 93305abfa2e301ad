import asyncio
import errno
import logging
import re
import socket
from typing import Awaitable, Callable, Optional, Tuple

from ..core.models import PortOutcome, PortState
from . import service_catalog

logger = logging.getLogger(__name__)

DEFAULT_BANNER_TIMEOUT_MS = 500
MAX_BANNER_LENGTH = 256
READ_CHUNK = 1024

# Ports where an HTTP request is the most likely way to get a reply
HTTP_PORTS = {80, 3000, 5000, 8000, 8008, 8080, 8081, 8888, 9000, 9090, 9200}

UNREACHABLE_ERRNOS = {errno.ENETUNREACH, errno.EHOSTUNREACH}

_NON_PRINTABLE = re.compile(r"[^\x09\x0a\x0d\x20-\x7e]")

Connector = Callable[[str, int], Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]]


def clean_banner(data: bytes, max_len: int = MAX_BANNER_LENGTH) -> Optional[str]:
    """Printable, single-line summary of what a service sent back."""
    if not data:
        return None
    text = _NON_PRINTABLE.sub("", data.decode("utf-8", errors="ignore")).strip()
    if not text:
        return None

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if lines[0].startswith("HTTP/"):
        for line in lines[1:]:
            if line.lower().startswith("server:"):
                text = f"{lines[0]} ({line.split(':', 1)[1].strip()})"
                break
        else:
            text = lines[0]
    else:
        text = lines[0]

    if len(text) > max_len:
        return text[:max_len] + "..."
    return text


def probe_payload(host: str, port: int) -> bytes:
    """Minimal request used to elicit a reply from a silent service."""
    if port in HTTP_PORTS:
        return f"HEAD / HTTP/1.0\r\nHost: {host}\r\n\r\n".encode()
    return b"\r\n"


class PortProbe:
    """One connect-and-classify attempt against a single (host, port).

    Implementations must never raise for transport problems; every failure
    is folded into the returned outcome's state.
    """

    name = "base"

    async def probe(self, host: str, port: int, timeout_ms: int,
                    server_name: Optional[str] = None) -> PortOutcome:
        """Probe ``host:port``. ``server_name`` is the name the caller asked for
        when ``host`` is its resolved address."""
        raise NotImplementedError

    def max_duration_ms(self, timeout_ms: int) -> int:
        """Longest a single probe may take with the given connect timeout"""
        return timeout_ms

    def _outcome(self, port: int, state: PortState, reason: str, banner: Optional[str] = None) -> PortOutcome:
        return PortOutcome(
            port=port,
            state=state,
            service=service_catalog.lookup(port),
            banner=banner,
            reason=reason,
        )


class ConnectProbe(PortProbe):
    """TCP connect probe with best-effort banner capture."""

    name = "connect"

    def __init__(self, banner_timeout_ms: int = DEFAULT_BANNER_TIMEOUT_MS, connector: Optional[Connector] = None):
        self.banner_timeout_ms = banner_timeout_ms
        self._connect = connector or asyncio.open_connection

    def max_duration_ms(self, timeout_ms: int) -> int:
        return timeout_ms + min(self.banner_timeout_ms, timeout_ms)

    async def probe(self, host: str, port: int, timeout_ms: int,
                    server_name: Optional[str] = None) -> PortOutcome:
        timeout = timeout_ms / 1000.0
        writer = None
        try:
            try:
                reader, writer = await asyncio.wait_for(self._connect(host, port), timeout=timeout)
            except asyncio.TimeoutError:
                logger.debug(f"{host}:{port} timed out after {timeout_ms}ms")
                return self._outcome(port, PortState.FILTERED, "timeout")
            except ConnectionRefusedError:
                return self._outcome(port, PortState.CLOSED, "refused")
            except socket.gaierror as e:
                logger.debug(f"{host}:{port} DNS resolution failed: {e}")
                return self._outcome(port, PortState.FILTERED, "dns-failure")
            except OSError as e:
                if e.errno in UNREACHABLE_ERRNOS:
                    logger.debug(f"{host}:{port} unreachable: {e}")
                    return self._outcome(port, PortState.FILTERED, "unreachable")
                logger.debug(f"{host}:{port} connect failed: {e}")
                return self._outcome(port, PortState.FILTERED, "error")

            banner_timeout = min(self.banner_timeout_ms, timeout_ms) / 1000.0
            banner = await self._grab_banner(reader, writer, server_name or host, port, banner_timeout)
            return self._outcome(port, PortState.OPEN, "connected", banner=banner)
        except Exception as e:
            logger.debug(f"{host}:{port} unexpected probe failure: {e}")
            if writer is not None:
                # The handshake did complete
                return self._outcome(port, PortState.OPEN, "connected")
            return self._outcome(port, PortState.FILTERED, "error")
        finally:
            if writer is not None:
                await self._close(writer)

    async def _grab_banner(self, reader, writer, host: str, port: int, timeout: float) -> Optional[str]:
        """Read an unsolicited banner, else send a probe line and read the reply."""
        if timeout <= 0:
            return None

        # Split the budget between the passive read and the elicited one
        step = timeout / 2
        data = await self._read(reader, step)
        if not data:
            try:
                writer.write(probe_payload(host, port))
                await asyncio.wait_for(writer.drain(), timeout=step)
            except (asyncio.TimeoutError, OSError) as e:
                logger.debug(f"{host}:{port} banner probe write failed: {e}")
                return None
            data = await self._read(reader, step)
        return clean_banner(data)

    async def _read(self, reader, timeout: float) -> bytes:
        try:
            return await asyncio.wait_for(reader.read(READ_CHUNK), timeout=timeout)
        except (asyncio.TimeoutError, OSError):
            return b""

    async def _close(self, writer) -> None:
        writer.close()
        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
        except (asyncio.TimeoutError, OSError):
            pass

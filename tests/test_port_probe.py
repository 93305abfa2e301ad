import asyncio
import errno
import socket
import time

import pytest

from portscope.core.models import PortState
from portscope.scanner import service_catalog
from portscope.scanner.port_probe import ConnectProbe, clean_banner, probe_payload
from conftest import FakeReader, FakeWriter


def fake_connector(reader=None, writer=None, exc=None, hang=False):
    async def connect(host, port):
        if hang:
            await asyncio.sleep(3600)
        if exc is not None:
            raise exc
        return reader, writer
    return connect


def test_open_port_with_unsolicited_banner(tcp_server):
    async def run():
        async with tcp_server(banner=b"SSH-2.0-OpenSSH_9.6\r\n") as port:
            return port, await ConnectProbe(banner_timeout_ms=500).probe("127.0.0.1", port, 1000)

    port, outcome = asyncio.run(run())
    assert outcome.port == port
    assert outcome.state is PortState.OPEN
    assert outcome.banner == "SSH-2.0-OpenSSH_9.6"
    assert outcome.service == service_catalog.lookup(port)
    assert outcome.reason == "connected"


def test_open_port_banner_elicited_by_probe_line(tcp_server):
    reply = b"HTTP/1.0 200 OK\r\nServer: demo/1.0\r\n\r\n"

    async def run():
        async with tcp_server(reply=reply) as port:
            return await ConnectProbe(banner_timeout_ms=1000).probe("127.0.0.1", port, 1000)

    outcome = asyncio.run(run())
    assert outcome.state is PortState.OPEN
    assert outcome.banner == "HTTP/1.0 200 OK (demo/1.0)"


def test_open_port_without_banner(tcp_server):
    async def run():
        async with tcp_server() as port:
            return await ConnectProbe(banner_timeout_ms=200).probe("127.0.0.1", port, 1000)

    outcome = asyncio.run(run())
    assert outcome.state is PortState.OPEN
    assert outcome.banner is None


def test_refused_connection_is_closed(closed_port):
    outcome = asyncio.run(ConnectProbe().probe("127.0.0.1", closed_port, 1000))
    assert outcome.state is PortState.CLOSED
    assert outcome.reason == "refused"


def test_timeout_is_filtered_no_earlier_than_timeout():
    probe = ConnectProbe(connector=fake_connector(hang=True))
    start = time.perf_counter()
    outcome = asyncio.run(probe.probe("192.0.2.1", 81, 300))
    elapsed = time.perf_counter() - start

    assert outcome.state is PortState.FILTERED
    assert outcome.reason == "timeout"
    assert 0.29 <= elapsed < 1.0


@pytest.mark.parametrize("exc, reason", [
    (socket.gaierror(socket.EAI_NONAME, "Name or service not known"), "dns-failure"),
    (OSError(errno.ENETUNREACH, "Network is unreachable"), "unreachable"),
    (OSError(errno.EHOSTUNREACH, "No route to host"), "unreachable"),
    (OSError(errno.EACCES, "Permission denied"), "error"),
    (RuntimeError("boom"), "error"),
])
def test_transport_failures_fold_to_filtered(exc, reason):
    outcome = asyncio.run(ConnectProbe(connector=fake_connector(exc=exc)).probe("192.0.2.1", 22, 500))
    assert outcome.state is PortState.FILTERED
    assert outcome.reason == reason
    assert outcome.service == "SSH"


@pytest.mark.parametrize("reader", [
    FakeReader([b"220 mail.example.com ESMTP\r\n"]),
    FakeReader(exc=ConnectionResetError()),
    FakeReader(hang=True),
    FakeReader(),
])
def test_writer_closed_exactly_once_on_open_paths(reader):
    writer = FakeWriter()
    probe = ConnectProbe(banner_timeout_ms=100, connector=fake_connector(reader, writer))
    outcome = asyncio.run(probe.probe("192.0.2.1", 25, 500))

    assert outcome.state is PortState.OPEN
    assert writer.close_calls == 1


def test_writer_closed_when_probe_is_cancelled():
    writer = FakeWriter()
    probe = ConnectProbe(banner_timeout_ms=5000, connector=fake_connector(FakeReader(hang=True), writer))

    async def run():
        task = asyncio.create_task(probe.probe("192.0.2.1", 25, 10000))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(run())
    assert writer.close_calls == 1


def test_silent_service_receives_probe_line():
    writer = FakeWriter()
    probe = ConnectProbe(banner_timeout_ms=100, connector=fake_connector(FakeReader(), writer))
    asyncio.run(probe.probe("192.0.2.1", 8080, 500))
    assert writer.written == [b"HEAD / HTTP/1.0\r\nHost: 192.0.2.1\r\n\r\n"]


def test_http_request_line_names_the_requested_host_not_its_address():
    writer = FakeWriter()
    probe = ConnectProbe(banner_timeout_ms=100, connector=fake_connector(FakeReader(), writer))
    asyncio.run(probe.probe("192.0.2.1", 8080, 500, server_name="shop.example.org"))
    assert writer.written == [b"HEAD / HTTP/1.0\r\nHost: shop.example.org\r\n\r\n"]


def test_connect_max_duration_includes_banner_window():
    assert ConnectProbe(banner_timeout_ms=500).max_duration_ms(1000) == 1500
    assert ConnectProbe(banner_timeout_ms=500).max_duration_ms(200) == 400


def test_clean_banner():
    assert clean_banner(b"") is None
    assert clean_banner(b"\x00\x01\x02") is None
    assert clean_banner(b"\x00SSH-2.0-dropbear\r\nextra\r\n") == "SSH-2.0-dropbear"
    assert clean_banner(b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\n\r\n") == "HTTP/1.1 404 Not Found"
    long = clean_banner(b"A" * 1000)
    assert long == "A" * 256 + "..."


def test_probe_payload():
    assert probe_payload("example.com", 80).startswith(b"HEAD / HTTP/1.0\r\nHost: example.com")
    assert probe_payload("example.com", 6379) == b"\r\n"

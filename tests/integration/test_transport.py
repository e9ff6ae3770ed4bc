"""
Integration tests for the UDP transports on 127.0.0.1
"""

import socket
import time

import pytest

from mtrip.probes.protocol import TransportError
from mtrip.probes.transport import UDPClientTransport, UDPServerTransport


@pytest.fixture
def server():
    with UDPServerTransport(0, host='127.0.0.1') as transport:
        transport.set_timeout(2.0)
        yield transport


def test_client_reaches_server(server):
    with UDPClientTransport('127.0.0.1', server.port) as client:
        assert client.send(b'hello') == 5
        assert server.receive(64) == b'hello'


def test_pin_connects_to_sender(server):
    with UDPClientTransport('127.0.0.1', server.port) as client:
        client.set_timeout(2.0)
        client.send(b'first')

        assert server.receive(64, pin=True) == b'first'
        assert server.pinned

        server.send(b'reply')
        assert client.receive(64) == b'reply'


def test_reset_unpins_and_keeps_port(server):
    port = server.port
    with UDPClientTransport('127.0.0.1', port) as client:
        client.send(b'x')
        server.receive(64, pin=True)

    server.reset()
    server.set_timeout(2.0)
    assert not server.pinned
    assert server.port == port

    with UDPClientTransport('127.0.0.1', port) as other:
        other.send(b'from another sender')
        assert server.receive(64) == b'from another sender'


def test_drain_discards_queued(server):
    with UDPClientTransport('127.0.0.1', server.port) as client:
        for _ in range(3):
            client.send(b'late')
        time.sleep(0.05)

        assert server.drain(64) == 3
        assert server.drain(64) == 0


def test_timeout_armed(server):
    server.set_timeout(0.05)
    with pytest.raises(socket.timeout):
        server.receive(64)


def test_unknown_host():
    with pytest.raises(TransportError):
        UDPClientTransport('no-such-host.invalid', 5201)


def test_port_in_use():
    # A second bind without SO_REUSEPORT on the same address must fail
    blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    blocker.bind(('127.0.0.1', 0))
    try:
        with pytest.raises(TransportError):
            UDPServerTransport(blocker.getsockname()[1], host='127.0.0.1')
    finally:
        blocker.close()

import os
import socket

import pytest

from metricsd.metrics import Client
from metricsd.transport import UDPTransport

live = pytest.mark.skipif(not os.environ.get("LIVE"), reason="set LIVE=1 to use real UDP sockets")


def _receiver(family: int, host: str) -> socket.socket:
    sock = socket.socket(family, socket.SOCK_DGRAM)
    sock.settimeout(2)
    sock.bind((host, 0))
    return sock


def test_unresolvable_host_raises_oserror():
    transport = UDPTransport("nonexistent.invalid", 8125)
    with pytest.raises(OSError):
        transport.send(b"foobar:1|c")


def test_client_swallows_resolution_errors():
    client = Client("nonexistent.invalid", 8125)
    assert client.increment("foobar") is None


def test_client_swallows_overlong_host_labels():
    client = Client("a" * 64 + ".example.com", 8125)
    assert client.increment("foobar") is None


def test_sends_over_loopback_and_reuses_socket():
    receiver = _receiver(socket.AF_INET, "127.0.0.1")
    transport = UDPTransport("127.0.0.1", receiver.getsockname()[1])
    try:
        transport.send(b"foobar:1|c")
        sock = transport.sock
        transport.send(b"foobar:2|g")
        assert transport.sock is sock
        assert receiver.recvfrom(16)[0] == b"foobar:1|c"
        assert receiver.recvfrom(16)[0] == b"foobar:2|g"
    finally:
        transport.close()
        receiver.close()
    assert transport.sock is None


def test_replaces_socket_when_address_family_changes(monkeypatch):
    families = iter([socket.AF_INET, socket.AF_INET6])
    sent = []

    class RecordingSocket:
        def __init__(self, family, socktype, proto):
            self.family = family
            self.closed = False

        def sendto(self, data, address):
            sent.append((self.family, data))

        def close(self):
            self.closed = True

    def getaddrinfo(host, port, family, socktype):
        return [(next(families), socket.SOCK_DGRAM, 0, "", (host, port))]

    monkeypatch.setattr(socket, "getaddrinfo", getaddrinfo)
    monkeypatch.setattr(socket, "socket", RecordingSocket)
    transport = UDPTransport("localhost", 8125)
    transport.send(b"a:1|c")
    first = transport.sock
    transport.send(b"b:1|c")
    assert first.closed
    assert transport.sock.family == socket.AF_INET6
    assert sent == [(socket.AF_INET, b"a:1|c"), (socket.AF_INET6, b"b:1|c")]


@live
@pytest.mark.parametrize("family, host", [(socket.AF_INET, "127.0.0.1"), (socket.AF_INET6, "::1")])
def test_sends_over_real_socket(family, host):
    receiver = _receiver(family, host)
    try:
        client = Client(host, receiver.getsockname()[1])
        client.increment("foobar")
        assert receiver.recvfrom(16)[0] == b"foobar:1|c"
    finally:
        receiver.close()


@live
def test_batch_over_real_socket():
    receiver = _receiver(socket.AF_INET, "127.0.0.1")
    try:
        client = Client("127.0.0.1", receiver.getsockname()[1])
        with client.batch() as batch:
            batch.increment("a")
            batch.gauge("b", 2)
        assert receiver.recvfrom(64)[0] == b"a:1|c\nb:2|g"
    finally:
        receiver.close()

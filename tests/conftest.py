from types import SimpleNamespace
from typing import List, Optional

import pytest

from metricsd import metrics, timer
from metricsd.metrics import Client


class FakeUDPTransport:
    def __init__(self, host: str = "127.0.0.1", port: int = 8125) -> None:
        self.host = host
        self.port = port
        self.buffer: List[str] = []
        self.closed = False

    def send(self, data: bytes) -> None:
        self.buffer.append(data.decode())

    def close(self) -> None:
        self.closed = True

    def recv(self) -> Optional[List[str]]:
        if not self.buffer:
            return None
        received, self.buffer = self.buffer, []
        return received


@pytest.fixture(autouse=True)
def reset_transports():
    metrics._local.__dict__.clear()
    yield
    metrics._local.__dict__.clear()


@pytest.fixture
def fake_socket(monkeypatch) -> FakeUDPTransport:
    sock = FakeUDPTransport()
    monkeypatch.setattr(Client, "transport_class", staticmethod(lambda host, port: sock))
    return sock


@pytest.fixture
def client(fake_socket) -> Client:
    return Client("localhost", 1234)


def always_send(client: Client) -> None:
    client._rand = lambda: 0


def never_send(client: Client) -> None:
    client._rand = lambda: 1


@pytest.fixture
def clock(monkeypatch):
    """Pins the timer clock; append timestamps to the returned list."""
    ticks: List[float] = []
    monkeypatch.setattr(timer, "time", SimpleNamespace(monotonic=lambda: ticks.pop(0)))
    return ticks

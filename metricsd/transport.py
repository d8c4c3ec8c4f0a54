# Copyright 2024, William Bradley, All rights reserved.
import socket
from typing import Optional


class UDPTransport:
    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.sock: Optional[socket.socket] = None

    def send(self, data: bytes) -> None:
        # Resolved on every send so that DNS changes and IPv6 literals are
        # picked up without rebuilding the transport.
        family, socktype, proto, _, address = socket.getaddrinfo(
            self.host, self.port, 0, socket.SOCK_DGRAM
        )[0]
        if self.sock is None or self.sock.family != family:
            if self.sock is not None:
                self.sock.close()
            self.sock = socket.socket(family, socktype, proto)
        self.sock.sendto(data, address)

    def close(self) -> None:
        if self.sock is not None:
            self.sock.close()
            self.sock = None

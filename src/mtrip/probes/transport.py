#!/usr/bin/env python3
"""
UDP datagram transports for both roles

Server side binds a port and accepts datagrams from anyone until it is
pinned to a peer. Client side resolves the remote host once and only
talks to it.
"""

import socket
import logging
from typing import Optional, Tuple

from mtrip.probes.protocol import TransportError

logger = logging.getLogger(__name__)


class _DatagramTransport:
    """Shared send/receive plumbing over a single UDP socket"""

    def __init__(self):
        self.sock = None

    def send(self, data: bytes) -> int:
        return self.sock.send(data)

    def receive(self, bufsize: int) -> bytes:
        """Receive one datagram; raises socket.timeout when a timeout is armed"""
        return self.sock.recv(bufsize)

    def set_timeout(self, timeout: Optional[float]):
        """None blocks indefinitely"""
        self.sock.settimeout(timeout)

    def drain(self, bufsize: int) -> int:
        """Discard datagrams already queued on the socket, return how many"""
        drained = 0
        self.sock.setblocking(False)
        try:
            while True:
                try:
                    self.sock.recv(bufsize)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as e:
                    logger.debug(f"Drain stopped on receive error: {e}")
                    break
                drained += 1
        finally:
            self.sock.setblocking(True)
        return drained

    def close(self):
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class UDPServerTransport(_DatagramTransport):
    """Bound socket that can pin itself to the most recent sender"""

    def __init__(self, port: int, host: str = '0.0.0.0'):
        super().__init__()
        self.host = host
        self.port = port
        self.peer: Optional[Tuple[str, int]] = None
        self._open()

    def _open(self):
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise TransportError(f"Socket creation failed: {e}") from e

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            sock.close()
            raise TransportError(f"Binding {self.host}:{self.port} failed: {e}") from e

        self.sock = sock
        # Port 0 asks the OS for a free port
        self.port = sock.getsockname()[1]
        logger.debug(f"Server socket bound to {self.host}:{self.port}")

    def receive(self, bufsize: int, pin: bool = False) -> bytes:
        """Receive one datagram; with pin=True the sender becomes the only peer"""
        if not pin:
            return super().receive(bufsize)

        data, addr = self.sock.recvfrom(bufsize)
        self.pin(addr)
        return data

    def pin(self, addr: Tuple[str, int]):
        self.sock.connect(addr)
        self.peer = addr
        logger.debug(f"Pinned to peer {addr[0]}:{addr[1]}")

    def reset(self):
        """Unpin by reopening the bound socket, dropping anything queued"""
        self.close()
        self.peer = None
        self._open()

    @property
    def pinned(self) -> bool:
        return self.peer is not None


class UDPClientTransport(_DatagramTransport):
    """Socket connected to a single resolved remote host"""

    def __init__(self, host: str, port: int):
        super().__init__()
        self.host = host
        self.port = port

        try:
            self.remote_ip = socket.gethostbyname(host)
            logger.info(f"Resolved {host} -> {self.remote_ip}")
        except OSError as e:
            raise TransportError(f"No such host as {host}: {e}") from e

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise TransportError(f"Socket creation failed: {e}") from e

        try:
            sock.connect((self.remote_ip, port))
        except OSError as e:
            sock.close()
            raise TransportError(f"Cannot address {self.remote_ip}:{port}: {e}") from e
        self.sock = sock

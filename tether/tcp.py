"""
TCP transport for Tether.

Each service variant maps to its own port. Peer addresses are ``host`` (the
variant's port is used) or ``host:port``.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Optional, Tuple

from .config import LinkConfig, ServiceVariant, TCP_ACCEPT_POLL
from .exceptions import (
    AcceptFailed,
    DialFailed,
    EndpointCreationFailed,
    ReadFailed,
    WriteFailed,
)
from .transport import Transport, Listener, Connector, Stream

logger = logging.getLogger(__name__)


def parse_address(address: str, default_port: int) -> Tuple[str, int]:
    """Split ``host[:port]``; IPv6 literals go in brackets."""
    address = address.strip()
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port = address.partition(":")
    else:
        host, port = address, ""

    if not host:
        raise DialFailed(address, "missing host")
    try:
        return host, int(port) if port else default_port
    except ValueError:
        raise DialFailed(address, f"invalid port '{port}'") from None


class TcpStream(Stream):
    """A connected TCP socket."""

    def __init__(self, sock: socket.socket, peer_name: str = "", variant: str = ""):
        self._sock = sock
        self.peer_name = peer_name
        self.variant = variant
        self._closed = False

    def read(self, size: int) -> bytes:
        if self._closed:
            raise ReadFailed("stream closed")
        try:
            return self._sock.recv(size)
        except OSError as e:
            raise ReadFailed(str(e)) from e

    def write(self, data: bytes) -> None:
        if self._closed:
            raise WriteFailed("stream closed")
        try:
            self._sock.sendall(data)
        except OSError as e:
            raise WriteFailed(str(e)) from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # shutdown() wakes a recv() blocked in another thread
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected
        self._sock.close()


class TcpListener(Listener):
    """
    Listening TCP socket.

    accept() polls with a short timeout so close() from another thread is
    noticed promptly.
    """

    def __init__(self, host: str, port: int, variant: str, poll_interval: float = TCP_ACCEPT_POLL):
        self.variant = variant
        self._closed = threading.Event()
        try:
            self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._sock.bind((host, port))
            self._sock.listen(1)
            self._sock.settimeout(poll_interval)
        except OSError as e:
            raise EndpointCreationFailed(variant, f"bind {host}:{port}: {e}") from e

    @property
    def address(self) -> Tuple[str, int]:
        return self._sock.getsockname()[:2]

    def accept(self) -> Stream:
        while not self._closed.is_set():
            try:
                conn, addr = self._sock.accept()
            except socket.timeout:
                continue
            except OSError as e:
                raise AcceptFailed(str(e)) from e
            conn.settimeout(None)
            return TcpStream(conn, peer_name=f"{addr[0]}:{addr[1]}", variant=self.variant)
        raise AcceptFailed("listener closed")

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self._sock.close()


class TcpConnector(Connector):
    """Outbound TCP connection attempt."""

    def __init__(self, host: str, port: int, variant: str, timeout: float):
        self.host = host
        self.port = port
        self.variant = variant
        self._timeout = timeout
        self._aborted = False
        self._connected = False
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

    def connect(self) -> Stream:
        target = f"{self.host}:{self.port}"
        if self._aborted:
            raise DialFailed(target, "connect aborted")
        try:
            self._sock.settimeout(self._timeout)
            self._sock.connect((self.host, self.port))
            self._sock.settimeout(None)
        except OSError as e:
            raise DialFailed(target, str(e)) from e
        if self._aborted:
            raise DialFailed(target, "connect aborted")
        self._connected = True
        return TcpStream(self._sock, peer_name=target, variant=self.variant)

    def close(self) -> None:
        if self._connected:
            return
        self._aborted = True
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected yet
        self._sock.close()


class TcpTransport(Transport):
    """TCP transport configured from a LinkConfig."""

    def __init__(self, config: Optional[LinkConfig] = None, host: Optional[str] = None):
        self.config = config or LinkConfig()
        self.host = host or self.config.tcp_host

    def listen(self, variant: ServiceVariant) -> Listener:
        listener = TcpListener(self.host, variant.port, variant.name)
        logger.debug(f"[TCP] {variant.service_name} listening on {self.host}:{variant.port}")
        return listener

    def connector(self, address: str, variant: ServiceVariant) -> Connector:
        host, port = parse_address(address, variant.port)
        return TcpConnector(host, port, variant.name, self.config.connect_timeout)

"""
In-process transport for Tether.

Endpoints register on a shared MemoryNetwork keyed by (address, service id).
Streams come in connected pairs backed by queues, so two ConnectionManagers
in one process can talk to each other without sockets. Used by the tests
and for simulation.
"""

from __future__ import annotations

import logging
import threading
from queue import Queue, Empty
from typing import Dict, Optional, Tuple

from .config import ServiceVariant
from .exceptions import (
    AcceptFailed,
    DialFailed,
    EndpointCreationFailed,
    ReadFailed,
    WriteFailed,
)
from .transport import Transport, Listener, Connector, Stream

logger = logging.getLogger(__name__)

_EOF = object()


class _Channel:
    """One direction of a stream pair."""

    def __init__(self):
        self._queue: "Queue[object]" = Queue()
        self.closed = False

    def put(self, data: bytes) -> None:
        if self.closed:
            raise WriteFailed("channel closed")
        self._queue.put(data)

    def get(self) -> object:
        return self._queue.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put(_EOF)


class MemoryStream(Stream):
    """One end of an in-memory duplex stream."""

    def __init__(self, peer_name: str, inbound: _Channel, outbound: _Channel, variant: str = ""):
        self.peer_name = peer_name
        self.variant = variant
        self._inbound = inbound
        self._outbound = outbound
        self._pending = b""
        self._eof = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, size: int) -> bytes:
        if self._closed:
            raise ReadFailed("stream closed")
        if not self._pending and not self._eof:
            item = self._inbound.get()
            if item is _EOF:
                self._eof = True
            else:
                self._pending = item
        if self._closed:
            raise ReadFailed("stream closed")
        if self._eof and not self._pending:
            return b""
        chunk, self._pending = self._pending[:size], self._pending[size:]
        return chunk

    def write(self, data: bytes) -> None:
        if self._closed:
            raise WriteFailed("stream closed")
        self._outbound.put(bytes(data))

    def close(self) -> None:
        self._closed = True
        self._inbound.close()
        self._outbound.close()


def stream_pair(name_a: str, name_b: str, variant: str = "") -> Tuple[MemoryStream, MemoryStream]:
    """
    Create two connected streams.

    ``name_a`` is the peer name seen by the first stream, i.e. the name of
    the second endpoint, and vice versa.
    """
    a_to_b = _Channel()
    b_to_a = _Channel()
    first = MemoryStream(name_a, inbound=b_to_a, outbound=a_to_b, variant=variant)
    second = MemoryStream(name_b, inbound=a_to_b, outbound=b_to_a, variant=variant)
    return first, second


class MemoryListener(Listener):
    """Passive endpoint registered on a MemoryNetwork."""

    def __init__(self, network: "MemoryNetwork", address: str, service_id: str):
        self._network = network
        self.address = address
        self.service_id = service_id
        self._incoming: "Queue[object]" = Queue()
        self._lock = threading.Lock()
        self._closed = False

    def _deliver(self, stream: MemoryStream) -> None:
        with self._lock:
            if self._closed:
                raise DialFailed(self.address, "listener closed")
            self._incoming.put(stream)

    def accept(self) -> Stream:
        if self._closed:
            raise AcceptFailed("listener closed")
        item = self._incoming.get()
        if item is _EOF:
            raise AcceptFailed("listener closed")
        return item

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._network.unregister(self)

        # Streams never accepted: close them so the dialing side sees EOF
        while True:
            try:
                pending = self._incoming.get_nowait()
            except Empty:
                break
            if pending is not _EOF:
                pending.close()
        self._incoming.put(_EOF)


class MemoryNetwork:
    """Registry of listening endpoints shared by MemoryTransports."""

    def __init__(self):
        self._lock = threading.Lock()
        self._endpoints: Dict[Tuple[str, str], MemoryListener] = {}

    def register(self, listener: MemoryListener) -> None:
        key = (listener.address, listener.service_id)
        with self._lock:
            if key in self._endpoints:
                raise EndpointCreationFailed(
                    listener.service_id, f"{listener.address} already listening"
                )
            self._endpoints[key] = listener

    def unregister(self, listener: MemoryListener) -> None:
        key = (listener.address, listener.service_id)
        with self._lock:
            if self._endpoints.get(key) is listener:
                del self._endpoints[key]

    def lookup(self, address: str, service_id: str) -> Optional[MemoryListener]:
        with self._lock:
            return self._endpoints.get((address, service_id))

    def is_listening(self, address: str, service_id: str) -> bool:
        return self.lookup(address, service_id) is not None


class MemoryConnector(Connector):
    """Outbound attempt on a MemoryNetwork, optionally delayed."""

    def __init__(self, transport: "MemoryTransport", address: str, variant: ServiceVariant):
        self._transport = transport
        self.address = address
        self.variant = variant
        self._aborted = threading.Event()

    def connect(self) -> Stream:
        delay = self._transport.dial_delay
        if delay and self._aborted.wait(delay):
            raise DialFailed(self.address, "connect aborted")
        if self._aborted.is_set():
            raise DialFailed(self.address, "connect aborted")

        listener = self._transport.network.lookup(self.address, self.variant.service_id)
        if listener is None:
            raise DialFailed(self.address, f"no {self.variant.name} service")

        local, remote = stream_pair(self.address, self._transport.address, self.variant.name)
        listener._deliver(remote)
        return local

    def close(self) -> None:
        self._aborted.set()


class MemoryTransport(Transport):
    """
    Transport for one node on a MemoryNetwork.

    Args:
        network: Shared registry
        address: This node's address, reported as peer name to others
        dial_delay: Seconds every connect() waits before resolving
    """

    def __init__(self, network: MemoryNetwork, address: str, dial_delay: float = 0.0):
        self.network = network
        self.address = address
        self.dial_delay = dial_delay

    def listen(self, variant: ServiceVariant) -> Listener:
        listener = MemoryListener(self.network, self.address, variant.service_id)
        self.network.register(listener)
        logger.debug(f"[MEMORY] {self.address} listening for {variant.service_name}")
        return listener

    def connector(self, address: str, variant: ServiceVariant) -> Connector:
        return MemoryConnector(self, address, variant)

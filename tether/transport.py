"""
Transport capability interfaces for Tether.

A transport supplies passive endpoints (listeners), outbound connectors and
the duplex streams both produce. The connection manager treats all of them
as opaque; any blocking call must be unblocked by ``close()`` from another
thread, raising a TransportError (or OSError) in the blocked caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .config import ServiceVariant


class Stream(ABC):
    """
    An established duplex byte stream to a peer.

    Attributes:
        peer_name: Opaque remote identity used for reporting
        variant: Name of the service variant the stream came from
    """

    peer_name: str = ""
    variant: str = ""

    @abstractmethod
    def read(self, size: int) -> bytes:
        """
        Block until data is available.

        Returns at most ``size`` bytes; ``b""`` means the peer closed.

        Raises:
            ReadFailed: On I/O error or if the stream was closed locally
        """

    @abstractmethod
    def write(self, data: bytes) -> None:
        """
        Write all of ``data``.

        Raises:
            WriteFailed: On I/O error or if the stream is closed
        """

    @abstractmethod
    def close(self) -> None:
        """Close the stream. Idempotent; unblocks a pending read."""


class Listener(ABC):
    """A passive endpoint accepting inbound streams for one variant."""

    @abstractmethod
    def accept(self) -> Stream:
        """
        Block until a peer connects.

        Raises:
            AcceptFailed: On error or once the listener is closed
        """

    @abstractmethod
    def close(self) -> None:
        """Close the endpoint. Idempotent; unblocks a pending accept."""


class Connector(ABC):
    """An outbound connection attempt that can be aborted from another thread."""

    @abstractmethod
    def connect(self) -> Stream:
        """
        Block until the stream is established.

        Raises:
            DialFailed: If the peer is unreachable or close() was called
        """

    @abstractmethod
    def close(self) -> None:
        """Abort the attempt. Idempotent; no effect on a returned stream."""


class Transport(ABC):
    """Factory for listeners and connectors."""

    @abstractmethod
    def listen(self, variant: ServiceVariant) -> Listener:
        """
        Open a passive endpoint for ``variant``.

        Raises:
            EndpointCreationFailed: If the endpoint cannot be provisioned
        """

    @abstractmethod
    def connector(self, address: str, variant: ServiceVariant) -> Connector:
        """Prepare an outbound attempt to ``address``; does not block."""

    def dial(self, address: str, variant: ServiceVariant) -> Stream:
        """Connect to ``address`` and return the established stream."""
        return self.connector(address, variant).connect()

"""
Link workers for Tether.

Each worker runs on its own daemon thread and talks back to the
ConnectionManager only through its handoff methods:

- ListenerWorker: accepts inbound streams for one service variant
- DialerWorker: makes one outbound attempt to a peer
- DataPump: owns the live stream, reads lines and performs writes

Cancellation closes the worker's endpoint or stream; the blocked call fails
and the thread exits on its own. cancel() never joins.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, TYPE_CHECKING

from .buffer import LineBuffer
from .config import LinkConfig, ServiceVariant
from .events import EventSink, InboundFrame, OutboundAck, Notice
from .exceptions import TransportError, ConnectionLost
from .role import Role
from .stats import StatsCollector
from .transport import Transport, Listener, Connector, Stream

if TYPE_CHECKING:
    from .manager import ConnectionManager

logger = logging.getLogger(__name__)


class _Worker:
    """Thread plumbing shared by all workers."""

    thread_prefix = "Worker"

    def __init__(self, label: str):
        self.label = label
        self._cancelled = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def running(self) -> bool:
        """True while the worker thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            name=f"{self.thread_prefix}{self.label}",
            daemon=True,
        )
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the worker thread to exit."""
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        raise NotImplementedError


# =============================================================================
# Listener
# =============================================================================

class ListenerWorker(_Worker):
    """
    Accepts inbound streams for one service variant.

    The passive endpoint is opened at construction. If that fails the worker
    is inert: start() logs and does nothing until the manager provisions a
    fresh listener.
    """

    thread_prefix = "Accept"

    def __init__(self, manager: "ConnectionManager", transport: Transport, variant: ServiceVariant):
        super().__init__(variant.label)
        self.variant = variant
        self._manager = manager
        self._endpoint: Optional[Listener] = None

        try:
            self._endpoint = transport.listen(variant)
        except (TransportError, OSError) as e:
            logger.error(f"[LISTEN] Socket Type: {self.label} listen() failed: {e}")

    @property
    def inert(self) -> bool:
        return self._endpoint is None

    def start(self) -> None:
        if self.inert:
            logger.warning(f"[LISTEN] {self.label} listener has no endpoint, not started")
            return
        super().start()

    def _run(self) -> None:
        logger.debug(f"[LISTEN] BEGIN {self.label} listener")

        while not self.cancelled and self._manager.role != Role.CONNECTED:
            try:
                stream = self._endpoint.accept()
            except (TransportError, OSError) as e:
                if not self.cancelled:
                    logger.error(f"[LISTEN] {self.label} accept() failed: {e}")
                break
            stream.variant = self.variant.name
            self._manager.on_accepted(self, stream)

        logger.info(f"[LISTEN] EXIT {self.label} listener")

    def cancel(self) -> None:
        """Close the endpoint, unblocking accept()."""
        logger.debug(f"[LISTEN] cancel {self.label}")
        self._cancelled.set()
        if self._endpoint is None:
            return
        try:
            self._endpoint.close()
        except (TransportError, OSError) as e:
            logger.error(f"[LISTEN] Failed to close {self.label} endpoint: {e}")


# =============================================================================
# Dialer
# =============================================================================

class DialerWorker(_Worker):
    """
    One outbound connection attempt to a fixed peer and variant.

    A dialer cancelled before its attempt resolves never reports: a stream
    obtained after cancel() is closed, and a failure caused by cancel() is
    only logged.
    """

    thread_prefix = "Connect"

    def __init__(
        self,
        manager: "ConnectionManager",
        transport: Transport,
        address: str,
        variant: ServiceVariant,
    ):
        super().__init__(variant.label)
        self.address = address
        self.variant = variant
        self._manager = manager
        self._transport = transport
        self._lock = threading.Lock()
        self._connector: Optional[Connector] = None

    def _run(self) -> None:
        logger.info(f"[DIAL] BEGIN {self.label} connect to {self.address}")

        try:
            with self._lock:
                if self.cancelled:
                    return
                self._connector = self._transport.connector(self.address, self.variant)
            stream = self._connector.connect()
        except (TransportError, OSError) as e:
            self._close_connector()
            if self.cancelled:
                logger.debug(f"[DIAL] {self.label} attempt aborted: {e}")
                return
            logger.warning(f"[DIAL] {self.label} connect to {self.address} failed: {e}")
            self._manager.on_dial_failed(self, e)
            return

        if self.cancelled:
            logger.debug(f"[DIAL] {self.label} connected after cancel, closing")
            _close_quietly(stream)
            return

        stream.variant = self.variant.name
        if not stream.peer_name:
            stream.peer_name = self.address
        self._manager.on_dialed(self, stream)

    def _close_connector(self) -> None:
        with self._lock:
            connector = self._connector
        if connector is None:
            return
        try:
            connector.close()
        except (TransportError, OSError) as e:
            logger.error(f"[DIAL] Failed close(): {e}")

    def cancel(self) -> None:
        """Abort the attempt. No effect once the stream was handed off."""
        self._cancelled.set()
        self._close_connector()


# =============================================================================
# Data pump
# =============================================================================

class DataPump(_Worker):
    """
    Owns an established stream.

    Reads are paced by ``config.pacing_delay`` and fed through a LineBuffer;
    every completed line is emitted as an InboundFrame. write() may be called
    from any thread and is serialized by a lock private to the pump.
    """

    thread_prefix = "Connected"

    def __init__(
        self,
        manager: "ConnectionManager",
        stream: Stream,
        sink: EventSink,
        stats: StatsCollector,
        config: LinkConfig,
    ):
        super().__init__(stream.variant.capitalize())
        self.stream = stream
        self._manager = manager
        self._sink = sink
        self._stats = stats
        self._pacing = config.pacing_delay
        self._buffer = LineBuffer(read_cap=config.read_cap, max_size=config.max_frame_size)
        self._write_lock = threading.Lock()

    def _run(self) -> None:
        logger.info(f"[PUMP] BEGIN {self.label} stream with {self.stream.peer_name}")

        while not self.cancelled:
            if self._pacing and self._cancelled.wait(self._pacing):
                break

            try:
                chunk = self.stream.read(self._buffer.read_cap)
                if not chunk:
                    raise ConnectionLost("peer closed the stream")
            except (TransportError, OSError) as e:
                if self.cancelled:
                    logger.debug(f"[PUMP] read aborted by cancel: {e}")
                else:
                    logger.error(f"[PUMP] disconnected: {e}")
                    self._manager.on_connection_lost(self, e)
                break

            if self.cancelled:
                break
            self._deliver(chunk)

        logger.info(f"[PUMP] EXIT {self.label} stream")

    def _deliver(self, chunk: bytes) -> None:
        truncated = self._buffer.truncated_reads
        frame = self._buffer.feed(chunk)
        if self._buffer.truncated_reads != truncated:
            self._stats.increment("truncated_reads")
        if frame is not None:
            self._stats.record_received(len(frame))
            self._sink.emit(InboundFrame(frame))

    def write(self, data: bytes) -> bool:
        """
        Write ``data`` to the stream.

        Emits OutboundAck on success and a Notice on failure; never retries.

        Returns:
            True if the write completed
        """
        data = bytes(data)
        try:
            with self._write_lock:
                self.stream.write(data)
        except (TransportError, OSError) as e:
            if self.cancelled:
                logger.debug(f"[PUMP] write after cancel dropped: {e}")
                return False
            logger.error(f"[PUMP] Exception during write: {e}")
            self._stats.increment("write_failures")
            self._sink.emit(Notice("Write failed"))
            return False

        self._stats.record_sent(len(data))
        self._sink.emit(OutboundAck(data))
        return True

    def cancel(self) -> None:
        """Close the stream, unblocking a pending read."""
        self._cancelled.set()
        _close_quietly(self.stream)


def _close_quietly(stream: Stream) -> None:
    try:
        stream.close()
    except (TransportError, OSError) as e:
        logger.error(f"[LINK] close() of stream failed: {e}")

"""
Pytest configuration and fixtures for Tether tests.
"""

import pytest
import os
import sys
import threading
import time

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tether.config import LinkConfig
from tether.events import EventSink
from tether.exceptions import ReadFailed, WriteFailed
from tether.manager import ConnectionManager
from tether.memory import MemoryNetwork, MemoryTransport
from tether.role import Role
from tether.transport import Stream


def _wait_until(predicate, timeout=2.0, interval=0.01):
    """Poll ``predicate`` until it is truthy or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


class RecordingSink(EventSink):
    """Thread-safe sink that keeps every event."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events = []

    def emit(self, event):
        with self._lock:
            self._events.append(event)

    @property
    def events(self):
        with self._lock:
            return list(self._events)

    def of_type(self, cls):
        return [e for e in self.events if isinstance(e, cls)]

    def wait_for(self, cls, count=1, timeout=2.0):
        return _wait_until(lambda: len(self.of_type(cls)) >= count, timeout)

    def clear(self):
        with self._lock:
            self._events.clear()


class ScriptedStream(Stream):
    """
    Stream returning scripted chunks.

    After the script runs out it either raises (end="error"), returns EOF
    (end="eof"), or blocks until closed (end="block").
    """

    def __init__(self, chunks=(), end="block", peer_name="scripted", variant="secure",
                 fail_writes=False, block_writes=False):
        self.peer_name = peer_name
        self.variant = variant
        self._chunks = list(chunks)
        self._end = end
        self._closed = threading.Event()
        self._fail_writes = fail_writes
        self._block_writes = block_writes
        self.writes = []
        self.write_started = threading.Event()
        self.reads = 0

    @property
    def closed(self):
        return self._closed.is_set()

    def read(self, size):
        if self.closed:
            raise ReadFailed("stream closed")
        self.reads += 1
        if self._chunks:
            return self._chunks.pop(0)
        if self._end == "error":
            raise ReadFailed("link dropped")
        if self._end == "eof":
            return b""
        self._closed.wait()
        raise ReadFailed("stream closed")

    def write(self, data):
        self.write_started.set()
        if self._block_writes:
            self._closed.wait()
        if self.closed or self._fail_writes:
            raise WriteFailed("write refused")
        self.writes.append(bytes(data))

    def close(self):
        self._closed.set()


class FakeManager:
    """Records worker handoffs instead of acting on them."""

    def __init__(self, role=Role.LISTENING):
        self.role = role
        self.accepted = []
        self.dialed = []
        self.dial_failures = []
        self.lost = []

    def on_accepted(self, listener, stream):
        self.accepted.append((listener, stream))

    def on_dialed(self, dialer, stream):
        self.dialed.append((dialer, stream))

    def on_dial_failed(self, dialer, error):
        self.dial_failures.append((dialer, error))

    def on_connection_lost(self, pump, error):
        self.lost.append((pump, error))


@pytest.fixture
def wait_until():
    """Polling helper for conditions reached on worker threads."""
    return _wait_until


@pytest.fixture
def network():
    """A fresh in-memory network."""
    return MemoryNetwork()


@pytest.fixture
def sink():
    """Event sink recording everything."""
    return RecordingSink()


@pytest.fixture
def fast_config():
    """Link config without read pacing."""
    return LinkConfig(pacing_delay=0.0)


@pytest.fixture
def manager(network, sink, fast_config):
    """Manager at address 'local' on the memory network."""
    mgr = ConnectionManager(MemoryTransport(network, "local"), sink, fast_config)
    yield mgr
    mgr.stop()


@pytest.fixture
def peer_sink():
    return RecordingSink()


@pytest.fixture
def peer(network, peer_sink, fast_config):
    """Second manager at address 'remote' on the same network."""
    mgr = ConnectionManager(MemoryTransport(network, "remote"), peer_sink, fast_config)
    yield mgr
    mgr.stop()

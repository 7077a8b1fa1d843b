"""
Link events and event sinks for Tether.

The connection manager and its workers push typed events into an EventSink.
Delivery is fire-and-forget: a sink must never block the caller.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from queue import Queue, Empty, Full
from threading import Lock
from typing import Callable, List, Optional

from .config import EVENT_QUEUE_SIZE
from .role import Role

logger = logging.getLogger(__name__)


# =============================================================================
# Events
# =============================================================================

@dataclass(frozen=True)
class LinkEvent:
    """Base class for all link events."""
    pass


@dataclass(frozen=True)
class RoleChanged(LinkEvent):
    """The manager committed a transition to ``role``."""
    role: Role


@dataclass(frozen=True)
class PeerIdentified(LinkEvent):
    """A stream was installed; ``name`` identifies the remote peer."""
    name: str
    variant: str = ""


@dataclass(frozen=True)
class InboundFrame(LinkEvent):
    """One complete inbound line, terminator included."""
    data: bytes


@dataclass(frozen=True)
class OutboundAck(LinkEvent):
    """``data`` was written to the stream."""
    data: bytes


@dataclass(frozen=True)
class Notice(LinkEvent):
    """Human-readable failure notice (dial failed, connection lost, ...)."""
    message: str


# =============================================================================
# Sinks
# =============================================================================

class EventSink(ABC):
    """Single-consumer channel for link events."""

    @abstractmethod
    def emit(self, event: LinkEvent) -> None:
        """Deliver ``event`` without blocking."""


class NullEventSink(EventSink):
    """Discards every event."""

    def emit(self, event: LinkEvent) -> None:
        pass


class QueueEventSink(EventSink):
    """
    Bounded queue of events for a consumer thread.

    Non-blocking: drops events if the queue is full.
    """

    def __init__(self, maxsize: int = EVENT_QUEUE_SIZE):
        self.queue: "Queue[LinkEvent]" = Queue(maxsize=maxsize)
        self.dropped = 0
        self._dropped_lock = Lock()

    def emit(self, event: LinkEvent) -> None:
        try:
            self.queue.put_nowait(event)
        except Full:
            with self._dropped_lock:
                self.dropped += 1
            logger.warning(f"[EVENTS] Queue full, dropped {type(event).__name__}")

    def get(self, timeout: Optional[float] = None) -> Optional[LinkEvent]:
        """Next event, or None if nothing arrived within ``timeout``."""
        try:
            return self.queue.get(timeout=timeout)
        except Empty:
            return None

    def drain(self) -> List[LinkEvent]:
        """Remove and return every queued event."""
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except Empty:
                return events


class CallbackEventSink(EventSink):
    """
    Invokes a callable for each event on the emitting thread.

    Callback errors are logged and never reach the link.
    """

    def __init__(self, callback: Callable[[LinkEvent], None]):
        self._callback = callback

    def emit(self, event: LinkEvent) -> None:
        try:
            self._callback(event)
        except Exception as e:
            logger.error(f"[EVENTS] Callback error on {type(event).__name__}: {e}")

"""
Connection state machine for Tether.

The ConnectionManager owns the link role and the worker slots. start(),
connect(), on_connected() and stop() run under one transition lock, so role
changes and worker swaps are atomic with respect to each other. Stream I/O
never happens under that lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional, Union

from .config import LinkConfig, ServiceVariant, VARIANT_SECURE
from .events import EventSink, NullEventSink, RoleChanged, PeerIdentified, Notice
from .logging_setup import format_block
from .role import Role
from .stats import StatsCollector
from .transport import Transport, Stream
from .workers import ListenerWorker, DialerWorker, DataPump, _close_quietly

logger = logging.getLogger(__name__)

MSG_DIAL_FAILED = "Unable to connect device"
MSG_CONNECTION_LOST = "Device connection was lost"


class ConnectionManager:
    """
    Manages the lifecycle of a single duplex link.

    Role edges:
        IDLE -> LISTENING          start()
        any -> CONNECTING          connect()
        LISTENING|CONNECTING -> CONNECTED   on_connected()
        CONNECTING -> LISTENING    dial failure
        CONNECTED -> LISTENING     connection lost, or start()
        any -> IDLE                stop()
    """

    def __init__(
        self,
        transport: Transport,
        sink: Optional[EventSink] = None,
        config: Optional[LinkConfig] = None,
    ):
        self._transport = transport
        self._sink = sink or NullEventSink()
        self.config = config or LinkConfig()
        self.stats = StatsCollector()

        self._lock = threading.RLock()
        self._role_changed = threading.Condition(self._lock)
        self._role = Role.IDLE

        self._listeners: Dict[str, ListenerWorker] = {}
        self._dialer: Optional[DialerWorker] = None
        self._pump: Optional[DataPump] = None
        self._peer_name: Optional[str] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def role(self) -> Role:
        with self._lock:
            return self._role

    @property
    def peer_name(self) -> Optional[str]:
        """Name of the connected peer, None unless CONNECTED."""
        with self._lock:
            return self._peer_name

    def _set_role(self, role: Role) -> None:
        """Commit a transition, then announce it. Caller holds the lock."""
        logger.debug(f"[LINK] setState {self._role.name} -> {role.name}")
        if role != self._role:
            logger.info(f"[LINK] {self._role.name} -> {role.name}")
        self._role = role
        self._role_changed.notify_all()
        self._sink.emit(RoleChanged(role))

    def wait_for_role(self, role: Role, timeout: Optional[float] = None) -> bool:
        """
        Block until the manager reaches ``role``.

        Returns:
            True if the role was reached within ``timeout``
        """
        with self._role_changed:
            return self._role_changed.wait_for(lambda: self._role == role, timeout)

    # ------------------------------------------------------------------
    # Worker slots (caller holds the lock)
    # ------------------------------------------------------------------

    def _cancel_dialer(self) -> None:
        if self._dialer is not None:
            self._dialer.cancel()
            self._dialer = None

    def _cancel_pump(self) -> None:
        if self._pump is not None:
            self._pump.cancel()
            self._pump = None
            self._peer_name = None

    def _cancel_listeners(self) -> None:
        for listener in self._listeners.values():
            listener.cancel()
        self._listeners.clear()

    def _resolve_variant(self, variant: Union[str, ServiceVariant, None]) -> ServiceVariant:
        if isinstance(variant, ServiceVariant):
            return variant
        return self.config.variant(variant or VARIANT_SECURE)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Enter LISTENING.

        Cancels any dialer and data pump, then makes sure one listener per
        enabled variant is running. A running listener is kept; an inert or
        exited one is replaced.
        """
        with self._lock:
            logger.debug("[LINK] start")
            self._cancel_dialer()
            self._cancel_pump()

            self._set_role(Role.LISTENING)

            for variant in self.config.variants():
                listener = self._listeners.get(variant.name)
                if listener is not None and listener.running:
                    continue
                if listener is not None:
                    listener.cancel()
                listener = ListenerWorker(self, self._transport, variant)
                self._listeners[variant.name] = listener
                listener.start()

    def connect(self, address: str, variant: Union[str, ServiceVariant, None] = None) -> None:
        """
        Start dialing ``address`` and enter CONNECTING.

        An in-flight dial is superseded. Listeners keep running, so an inbound
        connection can still win the race.
        """
        target = self._resolve_variant(variant)
        with self._lock:
            logger.debug(f"[LINK] connect to {address} ({target.label})")

            if self._role == Role.CONNECTING:
                self._cancel_dialer()
            self._cancel_pump()

            self._dialer = DialerWorker(self, self._transport, address, target)
            self._dialer.start()
            self._set_role(Role.CONNECTING)

    def on_connected(self, stream: Stream, peer_name: str, variant: str = "") -> bool:
        """
        Install ``stream`` as the live link and enter CONNECTED.

        Only valid while LISTENING or CONNECTING. When two workers race, the
        first to take the lock wins; the other's stream is closed.

        Returns:
            True if the stream was installed
        """
        with self._lock:
            if self._role not in (Role.LISTENING, Role.CONNECTING):
                logger.info(f"[LINK] Rejecting stream from {peer_name}: role is {self._role.name}")
                self.stats.increment("streams_rejected")
                _close_quietly(stream)
                return False

            logger.debug(f"[LINK] connected, Socket Type: {variant or stream.variant}")
            self._cancel_dialer()
            self._cancel_pump()
            self._cancel_listeners()

            if variant:
                stream.variant = variant
            stream.peer_name = peer_name
            self._pump = DataPump(self, stream, self._sink, self.stats, self.config)
            self._peer_name = peer_name
            self.stats.increment("connections_established")

            self._set_role(Role.CONNECTED)
            self._sink.emit(PeerIdentified(peer_name, stream.variant))
            self._pump.start()
            return True

    def stop(self) -> None:
        """Cancel every worker and enter IDLE. Safe to call repeatedly."""
        with self._lock:
            logger.debug("[LINK] stop")
            self._cancel_dialer()
            self._cancel_pump()
            self._cancel_listeners()
            self._set_role(Role.IDLE)

    def send(self, data: bytes) -> bool:
        """
        Write ``data`` over the live stream.

        Silently dropped unless CONNECTED. The write itself runs outside the
        transition lock.

        Returns:
            True if the write completed
        """
        with self._lock:
            if self._role != Role.CONNECTED or self._pump is None:
                return False
            pump = self._pump
        return pump.write(data)

    def report_failure(self, message: str) -> None:
        """Emit a notice and fall back to LISTENING."""
        with self._lock:
            self._sink.emit(Notice(message))
            self.start()

    # ------------------------------------------------------------------
    # Worker handoffs
    # ------------------------------------------------------------------

    def on_accepted(self, listener: ListenerWorker, stream: Stream) -> None:
        """A listener accepted ``stream``."""
        with self._lock:
            current = self._listeners.get(listener.variant.name) is listener
            if current and self._role in (Role.LISTENING, Role.CONNECTING):
                self.on_connected(stream, stream.peer_name, listener.variant.name)
                return
            logger.debug(f"[LINK] {listener.label} stream arrived while {self._role.name}, closing")
            self.stats.increment("streams_rejected")
            _close_quietly(stream)

    def on_dialed(self, dialer: DialerWorker, stream: Stream) -> None:
        """A dialer established ``stream``."""
        with self._lock:
            if self._dialer is not dialer:
                logger.debug("[LINK] superseded dialer connected, closing stream")
                self.stats.increment("streams_rejected")
                _close_quietly(stream)
                return
            self._dialer = None
            self.on_connected(stream, stream.peer_name, dialer.variant.name)

    def on_dial_failed(self, dialer: DialerWorker, error: Exception) -> None:
        """A dialer's attempt failed."""
        with self._lock:
            if self._dialer is not dialer:
                return
            self._dialer = None
            self.stats.increment("dial_failures")
            self.report_failure(MSG_DIAL_FAILED)

    def on_connection_lost(self, pump: DataPump, error: Exception) -> None:
        """The data pump's stream failed."""
        with self._lock:
            if self._pump is not pump:
                return
            self.stats.increment("connections_lost")
            self.report_failure(MSG_CONNECTION_LOST)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def workers(self) -> Dict[str, object]:
        """Snapshot of the worker slots (for diagnostics and tests)."""
        with self._lock:
            return {
                "listeners": dict(self._listeners),
                "dialer": self._dialer,
                "pump": self._pump,
            }

    def format_summary(self) -> str:
        """Format link summary for display."""
        with self._lock:
            lines = [f"Role: {self._role.name}"]
            if self._peer_name:
                lines.append(f"Peer: {self._peer_name} ({self._pump.label if self._pump else '-'})")
            if self._listeners:
                names = ", ".join(
                    f"{name}{'' if l.running else ' (down)'}"
                    for name, l in self._listeners.items()
                )
                lines.append(f"Listeners: {names}")
            if self._dialer is not None:
                lines.append(f"Dialing: {self._dialer.address} ({self._dialer.label})")
        return format_block("LINK", lines + self.stats.format_lines())

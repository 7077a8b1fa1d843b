"""
Tether - connection lifecycle management for a single duplex link.

One ConnectionManager coordinates listener, dialer and data-pump workers over
a pluggable transport, so that at most one stream is live at any time.
"""

__version__ = "1.0.0"
__author__ = "Tether Contributors"

from .config import LinkConfig, ServiceVariant
from .events import (
    EventSink,
    QueueEventSink,
    CallbackEventSink,
    NullEventSink,
    LinkEvent,
    RoleChanged,
    PeerIdentified,
    InboundFrame,
    OutboundAck,
    Notice,
)
from .manager import ConnectionManager
from .role import Role

__all__ = [
    "CallbackEventSink",
    "ConnectionManager",
    "EventSink",
    "InboundFrame",
    "LinkConfig",
    "LinkEvent",
    "Notice",
    "NullEventSink",
    "OutboundAck",
    "PeerIdentified",
    "QueueEventSink",
    "Role",
    "RoleChanged",
    "ServiceVariant",
]

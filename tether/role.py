"""
Link roles for Tether.
"""

from enum import IntEnum


class Role(IntEnum):
    """The manager's current lifecycle state."""
    IDLE = 0        # Nothing running
    LISTENING = 1   # Listeners accepting inbound streams
    CONNECTING = 2  # Dialer attempting an outbound stream
    CONNECTED = 3   # Data pump owns a live stream

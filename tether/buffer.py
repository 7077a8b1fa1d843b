"""
Inbound line accumulation for Tether.

Bytes from successive reads are accumulated until the most recently appended
byte is the line terminator; the whole buffer is then emitted as one frame.
"""

from __future__ import annotations

import logging
from typing import Optional

from .config import READ_CAP, LINE_TERMINATOR, MAX_FRAME_SIZE

logger = logging.getLogger(__name__)


class LineBuffer:
    """
    Capped accumulator for line-terminated frames.

    Each feed() contributes at most ``read_cap`` bytes; anything beyond is
    truncated, keeping the terminator of a read that ended a line. The accumulated buffer never exceeds ``max_size``; overflow is
    dropped but a terminator still closes the frame.
    """

    def __init__(
        self,
        read_cap: int = READ_CAP,
        max_size: int = MAX_FRAME_SIZE,
        terminator: int = LINE_TERMINATOR,
    ):
        self.read_cap = read_cap
        self.max_size = max_size
        self.terminator = terminator
        self._buf = bytearray()
        self.truncated_reads = 0
        self.dropped_bytes = 0

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, chunk: bytes) -> Optional[bytes]:
        """
        Append one read's worth of bytes.

        Returns:
            The completed frame if the last appended byte is the terminator,
            otherwise None.
        """
        if not chunk:
            return None

        ends_line = chunk[-1] == self.terminator

        if len(chunk) > self.read_cap:
            logger.info(f"[BUFFER] Read of {len(chunk)} bytes truncated to {self.read_cap}")
            self.truncated_reads += 1
            chunk = bytearray(chunk[:self.read_cap])
            # A truncated read that ended a line still ends it
            if ends_line:
                chunk[-1] = self.terminator

        room = self.max_size - len(self._buf)

        if len(chunk) > room:
            self.dropped_bytes += len(chunk) - room
            logger.warning(
                f"[BUFFER] Line exceeds {self.max_size} bytes, "
                f"dropped {len(chunk) - room} bytes"
            )
            self._buf.extend(chunk[:room])
            if ends_line:
                self._buf[-1] = self.terminator
        else:
            self._buf.extend(chunk)

        if ends_line:
            return self.flush()
        return None

    def flush(self) -> bytes:
        """Return the accumulated bytes and reset to empty."""
        frame = bytes(self._buf)
        self._buf.clear()
        return frame

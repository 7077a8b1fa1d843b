"""
Statistics collection for Tether.

Provides thread-safe counters for one connection manager.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, asdict
from threading import RLock
from typing import Dict


@dataclass
class LinkStats:
    """Counters for one link."""

    # Lifecycle
    connections_established: int = 0
    streams_rejected: int = 0
    dial_failures: int = 0
    connections_lost: int = 0

    # Data
    frames_received: int = 0
    bytes_received: int = 0
    frames_sent: int = 0
    bytes_sent: int = 0

    # Errors
    write_failures: int = 0
    truncated_reads: int = 0


class StatsCollector:
    """
    Thread-safe statistics collector.

    Workers increment from their own threads; readers get snapshots.
    """

    def __init__(self):
        self._lock = RLock()
        self._stats = LinkStats()
        self._start_time = time.time()

    def increment(self, stat_name: str, amount: int = 1) -> None:
        """Increment a counter by name."""
        with self._lock:
            if hasattr(self._stats, stat_name):
                current = getattr(self._stats, stat_name)
                setattr(self._stats, stat_name, current + amount)

    def record_received(self, size: int) -> None:
        """Record an inbound frame."""
        with self._lock:
            self._stats.frames_received += 1
            self._stats.bytes_received += size

    def record_sent(self, size: int) -> None:
        """Record an acknowledged write."""
        with self._lock:
            self._stats.frames_sent += 1
            self._stats.bytes_sent += size

    def get_stats(self) -> Dict[str, int]:
        """Get a copy of all statistics."""
        with self._lock:
            snapshot = asdict(self._stats)
            snapshot["uptime_seconds"] = int(time.time() - self._start_time)
            return snapshot

    def reset(self) -> None:
        """Reset all statistics."""
        with self._lock:
            self._stats = LinkStats()
            self._start_time = time.time()

    def format_lines(self) -> list:
        """Statistics as indented summary lines."""
        stats = self.get_stats()
        uptime = stats["uptime_seconds"]
        hours, remainder = divmod(uptime, 3600)
        minutes, seconds = divmod(remainder, 60)

        return [
            f"Uptime: {hours}h {minutes}m {seconds}s",
            f"Links: up={stats['connections_established']} lost={stats['connections_lost']} "
            f"dial_fail={stats['dial_failures']} rejected={stats['streams_rejected']}",
            f"Frames: sent={stats['frames_sent']} recv={stats['frames_received']}",
            f"Bytes: sent={stats['bytes_sent']} recv={stats['bytes_received']}",
            f"Errors: write={stats['write_failures']} truncated={stats['truncated_reads']}",
        ]

"""Per-level compaction statistics."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class StatStaging:
    """Statistics of one compaction while it runs; durations are in seconds."""

    duration: float = 0.0
    read: int = 0
    write: int = 0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False, compare=False)
    _start: float = field(default=0.0, init=False, repr=False, compare=False)
    _on: bool = field(default=False, init=False, repr=False, compare=False)

    def start_timer(self) -> None:
        """Start timing unless the timer already runs."""
        if not self._on:
            self._start = self.clock()
            self._on = True

    def stop_timer(self) -> None:
        """Stop timing and add the elapsed time to the duration."""
        if self._on:
            self.duration += self.clock() - self._start
            self._on = False


@dataclass
class CompactionStat:
    """Cumulative statistics of one level."""

    duration: float = 0.0
    read: int = 0
    write: int = 0

    def add(self, staging: StatStaging) -> None:
        """Add the figures of a finished compaction."""
        self.duration += staging.duration
        self.read += staging.read
        self.write += staging.write

    def get(self) -> tuple[float, int, int]:
        """Return (duration, read, write)."""
        return self.duration, self.read, self.write


class CompactionStats:
    """Thread-safe statistics for every level."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: list[CompactionStat] = []

    def add_stat(self, level: int, staging: StatStaging) -> None:
        """Add ``staging`` to the statistics of ``level``."""
        with self._lock:
            missing = level + 1 - len(self._stats)
            if missing > 0:
                self._stats.extend(CompactionStat() for _ in range(missing))
            self._stats[level].add(staging)

    def get_stat(self, level: int) -> tuple[float, int, int]:
        """Return (duration, read, write) of ``level``; zeros if never recorded."""
        with self._lock:
            if level < len(self._stats):
                return self._stats[level].get()
        return 0.0, 0, 0
"""Monotonic Clock - Authoritative time source for animation ticks.

Every tick timestamp, session start timestamp and export measurement is
read from one monotonic source so the animation clock and the media clock
agree on "now". Wall-clock time is never used for synchronization.

Platform notes:
- Linux: CLOCK_MONOTONIC via time.monotonic_ns()
- Windows: QueryPerformanceCounter
- Both provide nanosecond resolution, converted to milliseconds
"""

import threading
import time
from typing import Final


class MonotonicClock:
    """Process-wide monotonic clock.

    Thread-safe singleton. Readings are float milliseconds since the clock
    was first created, the same unit a browser animation frame receives.

    Usage:
        clock = get_monotonic_clock()
        start_ms = clock.now_ms()
        ...
        elapsed_s = (clock.now_ms() - start_ms) / 1000
    """

    _instance: "MonotonicClock | None" = None
    _lock: threading.Lock = threading.Lock()

    NS_PER_MS: Final[int] = 1_000_000

    def __new__(cls) -> "MonotonicClock":
        """Ensure singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    instance = super().__new__(cls)
                    instance._init_clock()
                    cls._instance = instance
        return cls._instance

    def _init_clock(self) -> None:
        """Initialize clock state."""
        self._origin_ns = time.monotonic_ns()

    def _now_ns(self) -> int:
        return time.monotonic_ns()

    def now_ms(self) -> float:
        """Milliseconds since clock origin (sub-ms precision)."""
        return (self._now_ns() - self._origin_ns) / self.NS_PER_MS

    def measure_elapsed_ms(self, start_ms: float) -> float:
        """Elapsed milliseconds since a previous now_ms() reading."""
        return self.now_ms() - start_ms


_clock: MonotonicClock | None = None


def get_monotonic_clock() -> MonotonicClock:
    """Get the global monotonic clock instance."""
    global _clock
    if _clock is None:
        _clock = MonotonicClock()
    return _clock

"""Timing package - Monotonic clock and frame scheduling."""

from performer.timing.clock import MonotonicClock, get_monotonic_clock
from performer.timing.frame_loop import (
    FrameRequest,
    FrameScheduler,
    ManualFrameScheduler,
    Scheduler,
)

__all__ = [
    "FrameRequest",
    "FrameScheduler",
    "ManualFrameScheduler",
    "MonotonicClock",
    "Scheduler",
    "get_monotonic_clock",
]

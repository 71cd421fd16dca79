"""Frame Scheduling - One-shot per-frame callbacks.

The animation clock is a self-rescheduling callback: each tick does its
work and then requests the next frame itself. Nothing repeats on its own,
so cancelling the one outstanding request stops the loop synchronously.

Two schedulers share the same surface:
- FrameScheduler fires on the asyncio event loop at the target frame rate
- ManualFrameScheduler fires only when a test advances it
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Callable, Protocol

from performer.config.constants import ENGINE
from performer.timing.clock import get_monotonic_clock

FrameCallback = Callable[[float], None]

_request_ids = itertools.count(1)


@dataclass(eq=False)
class FrameRequest:
    """Handle for one pending frame callback."""

    callback: FrameCallback
    request_id: int = field(default_factory=lambda: next(_request_ids))
    cancelled: bool = False
    fired: bool = False
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        """Whether the callback may still fire."""
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        """Cancel the request. Safe to call repeatedly or after firing."""
        if self.cancelled:
            return
        self.cancelled = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class Scheduler(Protocol):
    """Surface shared by frame schedulers."""

    def now_ms(self) -> float:
        """Current clock reading in milliseconds."""
        ...

    def request_frame(self, callback: FrameCallback) -> FrameRequest:
        """Schedule callback(timestamp_ms) for the next frame."""
        ...

    def cancel_frame(self, request: FrameRequest | None) -> None:
        """Cancel a request. Synchronous and idempotent."""
        ...


class FrameScheduler:
    """Asyncio frame scheduler at a fixed target rate.

    Usage:
        scheduler = FrameScheduler(fps=60)

        def tick(ts_ms):
            publish(compose(ts_ms))
            nonlocal request
            request = scheduler.request_frame(tick)

        request = scheduler.request_frame(tick)
        ...
        scheduler.cancel_frame(request)
    """

    def __init__(self, fps: int = ENGINE.FRAME_RATE) -> None:
        self._fps = fps
        self._clock = get_monotonic_clock()
        self._pending: set[FrameRequest] = set()

    @property
    def fps(self) -> int:
        """Target frames per second."""
        return self._fps

    @property
    def frame_interval_s(self) -> float:
        """Seconds between frames."""
        return 1.0 / self._fps

    @property
    def pending_count(self) -> int:
        """Number of outstanding requests."""
        return len(self._pending)

    def now_ms(self) -> float:
        """Current monotonic reading in milliseconds."""
        return self._clock.now_ms()

    def request_frame(self, callback: FrameCallback) -> FrameRequest:
        """Schedule callback for the next frame.

        Must be called with a running event loop.
        """
        loop = asyncio.get_running_loop()
        request = FrameRequest(callback=callback)
        request._timer = loop.call_later(self.frame_interval_s, self._fire, request)
        self._pending.add(request)
        return request

    def cancel_frame(self, request: FrameRequest | None) -> None:
        """Cancel a pending request."""
        if request is None:
            return
        request.cancel()
        self._pending.discard(request)

    def _fire(self, request: FrameRequest) -> None:
        self._pending.discard(request)
        if not request.pending:
            return
        request.fired = True
        request._timer = None
        request.callback(self._clock.now_ms())


class ManualFrameScheduler:
    """Deterministic scheduler for tests.

    Frames fire only on advance(); callbacks requested while a frame is
    firing wait for the next advance.

    Usage:
        scheduler = ManualFrameScheduler()
        engine = PerformanceEngine(..., scheduler=scheduler)
        await engine.start_preview("text")
        scheduler.advance(16.7)
    """

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = start_ms
        self._pending: list[FrameRequest] = []
        self.fired_count = 0

    @property
    def pending_count(self) -> int:
        """Number of outstanding requests."""
        return len(self._pending)

    def now_ms(self) -> float:
        """Current manual reading in milliseconds."""
        return self._now

    def request_frame(self, callback: FrameCallback) -> FrameRequest:
        """Queue callback for the next advance."""
        request = FrameRequest(callback=callback)
        self._pending.append(request)
        return request

    def cancel_frame(self, request: FrameRequest | None) -> None:
        """Cancel a queued request."""
        if request is None:
            return
        request.cancel()
        if request in self._pending:
            self._pending.remove(request)

    def advance(self, step_ms: float = 1000 / ENGINE.FRAME_RATE) -> int:
        """Move time forward and fire every request queued before the call.

        Returns:
            Number of callbacks fired
        """
        self._now += step_ms
        due, self._pending = self._pending, []
        fired = 0
        for request in due:
            if not request.pending:
                continue
            request.fired = True
            request.callback(self._now)
            fired += 1
        self.fired_count += fired
        return fired

    def run_frames(self, count: int, step_ms: float = 1000 / ENGINE.FRAME_RATE) -> int:
        """Advance count frames, returning the total callbacks fired."""
        return sum(self.advance(step_ms) for _ in range(count))

"""Timer scheduling for the cooperative runtime.

Every delay in the supervisor (debounce windows, recovery intervals, staggered
attaches, alarm loops) goes through a :class:`TimerScheduler`. Production code
uses :class:`AsyncioTimerScheduler`, which delivers callbacks on the asyncio
event loop. Tests use :class:`SteppedTimerScheduler`, which fires callbacks in
due order only when the paired :class:`~multiview.runtime.clock.SteppedMasterClock`
is advanced through it.

Periodic timers are anchored to their start time (``origin + n * interval``)
so that ticks never drift, whichever scheduler drives them.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol, runtime_checkable

from .clock import SteppedMasterClock

TimerCallback = Callable[[], None]

# Tolerance used when comparing float due times against the stepped clock.
_EPSILON = 1e-9


@runtime_checkable
class TimerHandle(Protocol):
    """Handle returned by a scheduler; cancelling is idempotent."""

    def cancel(self) -> None:
        """Prevent any further firing of the timer."""

    def cancelled(self) -> bool:
        """Return ``True`` once :meth:`cancel` has been called."""


class TimerScheduler(Protocol):
    """Scheduler contract shared by the asyncio and stepped implementations."""

    def now(self) -> float:
        """Return the scheduler's notion of current time in seconds."""

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds."""

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        """Run ``callback`` every ``interval`` seconds, first after one interval."""


# ----------------------------------------------------------------------
# asyncio
# ----------------------------------------------------------------------


class _PeriodicHandle:
    def __init__(
        self, loop: asyncio.AbstractEventLoop, interval: float, callback: TimerCallback
    ) -> None:
        self._loop = loop
        self._interval = interval
        self._callback = callback
        self._origin = loop.time()
        self._count = 0
        self._pending: asyncio.TimerHandle | None = None
        self._cancelled = False

    def _arm(self) -> None:
        self._count += 1
        self._pending = self._loop.call_at(
            self._origin + self._count * self._interval, self._fire
        )

    def _fire(self) -> None:
        if self._cancelled:
            return
        # Re-arm first so the callback may cancel its own timer.
        self._arm()
        self._callback()

    def cancel(self) -> None:
        self._cancelled = True
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioTimerScheduler:
    """Timer scheduler delivering callbacks on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        if interval <= 0.0:
            raise ValueError("interval must be greater than zero")
        handle = _PeriodicHandle(self.loop, interval, callback)
        handle._arm()
        return handle


# ----------------------------------------------------------------------
# Stepped (tests)
# ----------------------------------------------------------------------


class _SteppedTimer:
    def __init__(
        self, callback: TimerCallback, origin: float, interval: float | None
    ) -> None:
        self.callback = callback
        self.origin = origin
        self.interval = interval
        self.count = 0
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class SteppedTimerScheduler:
    """Deterministic scheduler used for tests.

    Timers fire only from :meth:`advance` / :meth:`run_until`, in due-time
    order, with the clock set to each timer's due time while its callback
    runs. Callbacks scheduled by other callbacks are honoured within the same
    advance when they fall due inside the window.
    """

    def __init__(self, clock: SteppedMasterClock | None = None) -> None:
        self.clock = clock or SteppedMasterClock()
        self._queue: list[tuple[float, int, _SteppedTimer]] = []
        self._seq = itertools.count()

    def now(self) -> float:
        return self.clock.now()

    def _push(self, due: float, timer: _SteppedTimer) -> None:
        heapq.heappush(self._queue, (due, next(self._seq), timer))

    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        now = self.clock.now()
        timer = _SteppedTimer(callback, now, None)
        self._push(now + max(0.0, delay), timer)
        return timer

    def call_every(self, interval: float, callback: TimerCallback) -> TimerHandle:
        if interval <= 0.0:
            raise ValueError("interval must be greater than zero")
        timer = _SteppedTimer(callback, self.clock.now(), interval)
        timer.count = 1
        self._push(timer.origin + interval, timer)
        return timer

    def pending(self) -> int:
        """Number of live (not cancelled) timers."""
        return sum(1 for _, _, timer in self._queue if not timer.cancelled())

    def advance(self, seconds: float) -> float:
        """Advance the clock by ``seconds``, firing every timer that falls due."""
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        return self.run_until(self.clock.now() + seconds)

    def run_until(self, when: float) -> float:
        while self._queue and self._queue[0][0] <= when + _EPSILON:
            due, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            if due > self.clock.now():
                self.clock.advance_to(due)
            if timer.interval is not None:
                timer.count += 1
                self._push(timer.origin + timer.count * timer.interval, timer)
            timer.callback()
        if when > self.clock.now():
            self.clock.advance_to(when)
        return self.clock.now()

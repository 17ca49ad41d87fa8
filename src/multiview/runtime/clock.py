"""Master clock abstractions used by the runtime.

The master clock supplies *station time*: a monotonic timeline shared by the
pace controller, the timer schedulers and the silence detectors. Station time
never jumps backwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol, runtime_checkable

import time

MonotonicFn = Callable[[], float]


@runtime_checkable
class MasterClock(Protocol):
    """Protocol implemented by master clock providers."""

    def now(self) -> float:
        """Return the current station time in seconds."""


@dataclass
class RealTimeMasterClock:
    """Master clock backed by a monotonic timer.

    Parameters
    ----------
    start:
        Station time (seconds) to begin counting from.
    monotonic_fn:
        Injectable monotonic function, defaults to :func:`time.monotonic` so
        that station time lines up with the asyncio loop clock.
    """

    start: float = 0.0
    monotonic_fn: MonotonicFn = field(default=time.monotonic)

    def __post_init__(self) -> None:
        self._origin_station: float = self.start
        self._origin_monotonic: float = self.monotonic_fn()

    def now(self) -> float:
        """Return the current station time in seconds."""
        elapsed = self.monotonic_fn() - self._origin_monotonic
        if elapsed < 0.0:
            elapsed = 0.0
        return self._origin_station + elapsed


class SteppedMasterClock:
    """Deterministic master clock used for tests.

    Station time advances only when :meth:`advance` is called.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._current = start

    def now(self) -> float:
        return self._current

    def advance(self, seconds: float) -> float:
        """Advance the clock by ``seconds`` (must be non-negative)."""
        if seconds < 0.0:
            raise ValueError("seconds must be non-negative")
        self._current += seconds
        return self._current

    def advance_to(self, when: float) -> float:
        """Move the clock forward to the absolute station time ``when``."""
        if when < self._current:
            raise ValueError("station time never moves backwards")
        self._current = when
        return self._current

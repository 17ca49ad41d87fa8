"""
Escalating recovery loop for stalled tiles.

While a tile is STALLED the scheduler ticks on a fixed interval. Each tick
increments the attempt counter, re-issues the cheap mitigations, performs a
hard reload on every ``hard_reload_every``-th attempt and finally tries to
resume playback. There is no attempt cutoff: the loop runs until the tile
plays again or is torn down. Failures at any step are logged and retried on
the next tick.
"""

from __future__ import annotations

from typing import Callable

from multiview.infra.logging import get_logger

from .timers import TimerHandle, TimerScheduler
from .transport import StreamSourceAdapter

_log = get_logger(__name__)

DEFAULT_RECOVERY_INTERVAL = 5.0
DEFAULT_HARD_RELOAD_EVERY = 3

ResumeFn = Callable[[], None]


class RecoveryScheduler:
    def __init__(
        self,
        adapter: StreamSourceAdapter,
        resume: ResumeFn,
        scheduler: TimerScheduler,
        *,
        interval: float = DEFAULT_RECOVERY_INTERVAL,
        hard_reload_every: int = DEFAULT_HARD_RELOAD_EVERY,
        tile_index: int = -1,
    ) -> None:
        if interval <= 0.0:
            raise ValueError("interval must be greater than zero")
        if hard_reload_every < 0:
            raise ValueError("hard_reload_every must be non-negative")
        self._adapter = adapter
        self._resume = resume
        self._scheduler = scheduler
        self._interval = interval
        self._hard_reload_every = hard_reload_every
        self._tile_index = tile_index
        self._timer: TimerHandle | None = None
        self.attempts = 0
        self.hard_reloads = 0

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        # Never two live intervals for one tile.
        self.stop()
        self._timer = self._scheduler.call_every(self._interval, self.tick)
        _log.info("recovery_started", tile=self._tile_index, interval=self._interval)

    def stop(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            _log.info("recovery_stopped", tile=self._tile_index, attempts=self.attempts)

    def reset_attempts(self) -> None:
        self.attempts = 0

    def is_hard_reload_attempt(self, attempt: int) -> bool:
        return self._hard_reload_every > 0 and attempt % self._hard_reload_every == 0

    def tick(self) -> None:
        self.attempts += 1
        attempt = self.attempts
        _log.warning("recovery_attempt", tile=self._tile_index, attempt=attempt)

        self._adapter.restart_loading()
        self._adapter.recover_media()

        if self.is_hard_reload_attempt(attempt):
            self.hard_reloads += 1
            self._adapter.hard_reload()

        try:
            self._resume()
        except Exception as e:
            _log.warning("resume_failed", tile=self._tile_index, attempt=attempt, error=str(e))

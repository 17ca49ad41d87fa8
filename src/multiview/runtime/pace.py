"""Pacing controller for the render cadence.

The `PaceController` owns the render cadence that audio analysis is tied to.
It drives registered participants by emitting ticks at the requested frequency
using the station time supplied by a :class:`MasterClock`.

Key guarantees:

- Monotonic station time (supplied by the master clock) is passed to
  participants as `t_now`.
- The delta `dt` is never negative and is clamped to an upper bound to avoid
  runaway catch-up cycles. By default the clamp is three frames.
- Real-time mode (:meth:`run_forever`) awaits between ticks on the event loop.
- Stepped/test mode never sleeps; callers advance the clock manually and
  invoke :meth:`run_once`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from .clock import MasterClock


@runtime_checkable
class PaceParticipant(Protocol):
    """Participant contract for paced updates."""

    def on_paced_tick(self, t_now: float, dt: float) -> None:
        """Handle a pacing tick."""


@dataclass
class PaceController:
    """Coordinate paced ticks for registered participants.

    Parameters
    ----------
    clock:
        Master clock that provides monotonically increasing station time.
    target_hz:
        Desired cadence in hertz (frames per second). Must be positive.
    max_frame_multiplier:
        Number of frames used to cap `dt`. Defaults to three so the controller
        never tries to "catch up" more than three frames in a single tick.
    """

    clock: MasterClock
    target_hz: float = 30.0
    max_frame_multiplier: float = 3.0
    _participants: dict[int, PaceParticipant] = field(default_factory=dict, init=False)
    _stop_event: asyncio.Event | None = field(default=None, init=False)
    _last_time: float | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        if self.target_hz <= 0.0:
            raise ValueError("target_hz must be greater than zero")
        if self.max_frame_multiplier <= 0.0:
            raise ValueError("max_frame_multiplier must be greater than zero")
        self._frame_interval = 1.0 / self.target_hz
        self._max_dt = self._frame_interval * self.max_frame_multiplier

    # Participant management -------------------------------------------------
    def add_participant(self, participant: PaceParticipant) -> None:
        self._participants[id(participant)] = participant

    def remove_participant(self, participant: PaceParticipant) -> None:
        self._participants.pop(id(participant), None)

    def has_participant(self, participant: PaceParticipant) -> bool:
        return id(participant) in self._participants

    # Run loop ---------------------------------------------------------------
    async def run_forever(self) -> None:
        """Drive the pacing loop until :meth:`stop` is called."""

        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._last_time = None
        next_tick = loop.time()

        while not self._stop_event.is_set():
            self.run_once()

            # Maintain cadence against the loop clock with drift correction.
            next_tick += self._frame_interval
            remaining = next_tick - loop.time()
            if remaining <= 0:
                # We are late; reset baseline to avoid negative spirals.
                next_tick = loop.time()
                remaining = 0
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Signal the controller to stop."""

        if self._stop_event is not None:
            self._stop_event.set()

    def run_once(self) -> bool:
        """Execute a single pacing iteration.

        Returns ``True`` when participants received a tick, ``False`` otherwise.
        """

        now = self.clock.now()
        last_time = self._last_time
        if last_time is None:
            dt = self._frame_interval
        else:
            dt = max(0.0, now - last_time)
            if dt == 0.0:
                return False

        dt = min(dt, self._max_dt)
        self._last_time = now

        # Snapshot so participants may remove themselves mid-iteration.
        participants_snapshot = list(self._participants.values())
        for participant in participants_snapshot:
            participant.on_paced_tick(now, dt)
        return bool(participants_snapshot)

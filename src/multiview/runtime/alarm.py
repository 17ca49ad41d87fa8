"""
Tile health aggregation and local alarms.

``alert = stalled or silent``. The aggregator starts the tile's alarm on the
false->true edge of ``alert`` and stops it on the true->false edge; which
sub-signal changed is irrelevant, so simultaneous signals never start a
second alarm.
"""

from __future__ import annotations

import sys
from typing import Protocol, TextIO

from multiview.infra.logging import get_logger

from .health import HealthState
from .silence import SilenceState
from .timers import TimerHandle, TimerScheduler

_log = get_logger(__name__)

STALLED_MESSAGE = "Stream stalled, attempting recovery"
SILENT_MESSAGE = "No audio detected"


class AlarmSink(Protocol):
    def start(self, message: str) -> None:
        """Start alarming; called once per alert episode."""

    def stop(self) -> None:
        """Stop alarming."""


class LoggingAlarm:
    """Visual indicator: emits one structured event per alert edge."""

    def __init__(self, tile_index: int) -> None:
        self._tile_index = tile_index

    def start(self, message: str) -> None:
        _log.error("alert_raised", tile=self._tile_index, message=message)

    def stop(self) -> None:
        _log.info("alert_cleared", tile=self._tile_index)


class BellAlarm:
    """Audible alarm looping the terminal bell on the event loop."""

    def __init__(
        self,
        scheduler: TimerScheduler,
        *,
        interval: float = 1.0,
        stream: TextIO | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._interval = interval
        self._stream = stream or sys.stderr
        self._loop: TimerHandle | None = None
        self.rings = 0

    @property
    def active(self) -> bool:
        return self._loop is not None

    def _ring(self) -> None:
        self.rings += 1
        self._stream.write("\a")
        self._stream.flush()

    def start(self, message: str) -> None:
        if self._loop is not None:
            return
        self._ring()
        self._loop = self._scheduler.call_every(self._interval, self._ring)

    def stop(self) -> None:
        loop, self._loop = self._loop, None
        if loop is not None:
            loop.cancel()


class CompositeAlarm:
    def __init__(self, *sinks: AlarmSink) -> None:
        self._sinks = sinks

    def start(self, message: str) -> None:
        for sink in self._sinks:
            sink.start(message)

    def stop(self) -> None:
        for sink in self._sinks:
            sink.stop()


class TileHealthAggregator:
    def __init__(self, alarm: AlarmSink, *, tile_index: int = -1) -> None:
        self._alarm = alarm
        self._tile_index = tile_index
        self.health = HealthState.HEALTHY
        self.silence = SilenceState.SOUNDING
        self.alert = False

    @property
    def message(self) -> str | None:
        if self.health is HealthState.STALLED:
            return STALLED_MESSAGE
        if self.silence is SilenceState.SILENT:
            return SILENT_MESSAGE
        return None

    def update(
        self,
        *,
        health: HealthState | None = None,
        silence: SilenceState | None = None,
    ) -> bool:
        """Fold in new sub-signals; returns the combined alert flag."""
        if health is not None:
            self.health = health
        if silence is not None:
            self.silence = silence

        alert = self.health is HealthState.STALLED or self.silence is SilenceState.SILENT
        if alert and not self.alert:
            self.alert = True
            self._alarm.start(self.message or "")
        elif not alert and self.alert:
            self.alert = False
            self._alarm.stop()
        return self.alert

    def close(self) -> None:
        if self.alert:
            self.alert = False
            self._alarm.stop()

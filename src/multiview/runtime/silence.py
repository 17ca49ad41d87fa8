"""
Audio silence detection.

Each tile samples the decoded audio spectrum at the render cadence, throttled
to ``max_hz``. A sample averages the byte magnitudes of every frequency bin of
every channel and normalises the result to ``[0, 1]``.

Hysteresis is asymmetric: SILENT is only reported after loudness stayed below
the threshold for the whole configured duration, while a single loud sample
clears the silence start and reports SOUNDING at once. Samples taken while the
target is paused or not yet ready never count towards silence.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Protocol, Sequence

from multiview.infra.logging import get_logger

from .transport import HAVE_CURRENT_DATA, MediaTarget

_log = get_logger(__name__)

DEFAULT_SILENCE_THRESHOLD = 0.01
DEFAULT_SILENCE_DURATION = 10.0
DEFAULT_ANALYSIS_HZ = 30.0
BYTE_MAX = 255

_EPSILON = 1e-6


class SilenceState(str, Enum):
    SOUNDING = "sounding"
    SILENT = "silent"


class AudioAnalyser(Protocol):
    """Periodic frequency-magnitude source with fixed resolution per channel."""

    @property
    def channel_count(self) -> int: ...

    @property
    def frequency_bin_count(self) -> int: ...

    def get_byte_frequency_data(self, channel: int) -> Sequence[int]:
        """Return ``frequency_bin_count`` magnitudes in ``0..255``."""


def normalized_loudness(channels: Sequence[Sequence[int]]) -> float:
    """Mean bin magnitude per channel, averaged over channels, scaled to [0, 1]."""
    if not channels:
        return 0.0
    means = [sum(bins) / (len(bins) or 1) for bins in channels]
    return (sum(means) / len(means)) / BYTE_MAX


SilenceListener = Callable[[SilenceState], None]


class AudioSilenceDetector:
    def __init__(
        self,
        analyser: AudioAnalyser,
        target: MediaTarget,
        *,
        threshold: float = DEFAULT_SILENCE_THRESHOLD,
        duration: float = DEFAULT_SILENCE_DURATION,
        max_hz: float = DEFAULT_ANALYSIS_HZ,
        on_change: SilenceListener | None = None,
        tile_index: int = -1,
    ) -> None:
        if not 0.0 < threshold <= 1.0:
            raise ValueError("threshold must be within (0, 1]")
        if duration < 0.0:
            raise ValueError("duration must be non-negative")
        if max_hz <= 0.0:
            raise ValueError("max_hz must be greater than zero")
        self._analyser = analyser
        self._target = target
        self._threshold = threshold
        self._duration = duration
        self._min_interval = 1.0 / max_hz
        self._on_change = on_change
        self._tile_index = tile_index
        self._last_sample_at: float | None = None
        self.silence_started_at: float | None = None
        self.last_loudness: float | None = None
        self.state = SilenceState.SOUNDING

    def on_paced_tick(self, t_now: float, dt: float) -> None:
        last = self._last_sample_at
        if last is not None and t_now - last + _EPSILON < self._min_interval:
            return
        self._last_sample_at = t_now
        self.sample(t_now)

    def _active(self) -> bool:
        return not self._target.paused and self._target.ready_state >= HAVE_CURRENT_DATA

    def sample(self, now: float) -> SilenceState:
        if not self._active():
            self.silence_started_at = None
            self._report(SilenceState.SOUNDING)
            return self.state

        channels = [
            self._analyser.get_byte_frequency_data(channel)
            for channel in range(self._analyser.channel_count)
        ]
        loudness = normalized_loudness(channels)
        self.last_loudness = loudness

        if loudness < self._threshold:
            if self.silence_started_at is None:
                self.silence_started_at = now
            elif now - self.silence_started_at + _EPSILON >= self._duration:
                self._report(SilenceState.SILENT)
        else:
            self.silence_started_at = None
            self._report(SilenceState.SOUNDING)
        return self.state

    def reset(self) -> None:
        self._last_sample_at = None
        self.silence_started_at = None
        self._report(SilenceState.SOUNDING)

    def _report(self, state: SilenceState) -> None:
        if state is self.state:
            return
        self.state = state
        if state is SilenceState.SILENT:
            _log.warning("silence_detected", tile=self._tile_index, duration=self._duration)
        else:
            _log.info("silence_cleared", tile=self._tile_index)
        if self._on_change is not None:
            self._on_change(state)

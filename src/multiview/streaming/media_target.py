"""
Headless render target.

Stands in for a video element when feeds are monitored without a display. It
receives decoded PCM from a transport session, tracks paused/ready/muted
state like a media element, emits the playing signal, and serves the audio
analysis primitive: a Blackman-windowed DFT over the most recent ``fft_size``
samples of each channel, reported as byte magnitudes on a decibel scale.
"""

from __future__ import annotations

import array
import math
import sys
from collections import deque

from multiview.infra.exceptions import PlaybackError
from multiview.runtime.tile import TileMedia
from multiview.runtime.transport import (
    HAVE_CURRENT_DATA,
    HAVE_ENOUGH_DATA,
    HAVE_NOTHING,
    PlaybackListener,
)

DEFAULT_FFT_SIZE = 32
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0
_SAMPLE_SCALE = 32768.0


def _blackman(size: int) -> list[float]:
    alpha = 0.16
    a0 = (1 - alpha) / 2
    a1 = 0.5
    a2 = alpha / 2
    return [
        a0 - a1 * math.cos(2 * math.pi * n / size) + a2 * math.cos(4 * math.pi * n / size)
        for n in range(size)
    ]


class HeadlessMediaTarget:
    def __init__(
        self,
        *,
        channels: int = 2,
        fft_size: int = DEFAULT_FFT_SIZE,
        min_decibels: float = MIN_DECIBELS,
        max_decibels: float = MAX_DECIBELS,
    ) -> None:
        if fft_size < 2 or fft_size & (fft_size - 1):
            raise ValueError("fft_size must be a power of two >= 2")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")
        self._channels = channels
        self._fft_size = fft_size
        self._min_db = min_decibels
        self._max_db = max_decibels
        self._window = _blackman(fft_size)
        bins = fft_size // 2
        self._cos = [[math.cos(2 * math.pi * k * n / fft_size) for n in range(fft_size)] for k in range(bins)]
        self._sin = [[math.sin(2 * math.pi * k * n / fft_size) for n in range(fft_size)] for k in range(bins)]
        self._samples: list[deque[float]] = [
            deque([0.0] * fft_size, maxlen=fft_size) for _ in range(channels)
        ]
        self._remainder = b""
        self._listeners: dict[int, PlaybackListener] = {}
        self._bound = False
        self._paused = False  # autoplay
        self._ready_state = HAVE_NOTHING
        self._muted = True

    # Media element surface -------------------------------------------------

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def ready_state(self) -> int:
        return self._ready_state

    @property
    def muted(self) -> bool:
        return self._muted

    def set_muted(self, muted: bool) -> None:
        self._muted = muted

    def play(self) -> None:
        if not self._bound:
            raise PlaybackError("no transport attached")
        was_paused = self._paused
        self._paused = False
        if was_paused and self._ready_state >= HAVE_CURRENT_DATA:
            self._notify_playing()

    def pause(self) -> None:
        self._paused = True

    def add_listener(self, listener: PlaybackListener) -> None:
        self._listeners[id(listener)] = listener

    def remove_listener(self, listener: PlaybackListener) -> None:
        self._listeners.pop(id(listener), None)

    def _notify_playing(self) -> None:
        for listener in list(self._listeners.values()):
            listener.on_playing()

    # Transport side --------------------------------------------------------

    def bind(self) -> None:
        self._bound = True

    def unbind(self) -> None:
        self._bound = False
        self.source_lost()

    def source_lost(self) -> None:
        """The decoder stopped; drop buffered state until data flows again."""
        self._ready_state = HAVE_NOTHING
        self._remainder = b""
        for channel in self._samples:
            channel.extend([0.0] * self._fft_size)

    def feed_pcm(self, chunk: bytes) -> None:
        """Accept interleaved signed 16-bit little-endian PCM."""
        if not self._bound:
            return
        data = self._remainder + chunk
        frame_bytes = 2 * self._channels
        usable = len(data) - len(data) % frame_bytes
        self._remainder = data[usable:]
        if not usable:
            return

        samples = array.array("h")
        samples.frombytes(data[:usable])
        if sys.byteorder == "big":
            samples.byteswap()

        was_ready = self._ready_state >= HAVE_CURRENT_DATA
        self._ready_state = HAVE_ENOUGH_DATA
        if not self._paused:
            for offset in range(0, len(samples), self._channels):
                for channel in range(self._channels):
                    self._samples[channel].append(samples[offset + channel] / _SAMPLE_SCALE)
            if not was_ready:
                self._notify_playing()

    # Audio analysis ---------------------------------------------------------

    @property
    def channel_count(self) -> int:
        return self._channels

    @property
    def frequency_bin_count(self) -> int:
        return self._fft_size // 2

    def get_byte_frequency_data(self, channel: int) -> list[int]:
        windowed = [s * w for s, w in zip(self._samples[channel], self._window)]
        span = self._max_db - self._min_db
        out: list[int] = []
        for cos_row, sin_row in zip(self._cos, self._sin):
            re = sum(x * c for x, c in zip(windowed, cos_row))
            im = sum(x * s for x, s in zip(windowed, sin_row))
            magnitude = math.hypot(re, im) / self._fft_size
            if magnitude <= 0.0:
                out.append(0)
                continue
            db = 20.0 * math.log10(magnitude)
            scaled = int(255 * (db - self._min_db) / span)
            out.append(max(0, min(255, scaled)))
        return out

    def as_tile_media(self) -> TileMedia:
        return TileMedia(target=self, analyser=self, release=self.unbind)

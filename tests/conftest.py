"""
Global test configuration for Multiview.

Provides deterministic timing (stepped clock + stepped timer scheduler) and
in-memory fakes for the transport session, render target, audio analyser and
alarm so the supervisor can be exercised without FFmpeg or an event loop.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

import pytest

# Ensure the project src directory is importable without relying on external environment.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from multiview.infra.exceptions import TransportError
from multiview.runtime.clock import SteppedMasterClock
from multiview.runtime.config import SupervisorConfig
from multiview.runtime.pace import PaceController
from multiview.runtime.timers import SteppedTimerScheduler
from multiview.runtime.transport import (
    HAVE_ENOUGH_DATA,
    ErrorKind,
    PlaybackListener,
    TransportErrorEvent,
    TransportListener,
)


class FakeTransportSession:
    """Records every call; errors are injected with :meth:`emit`."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.listeners: list[TransportListener] = []
        self.target = None
        self.url: str | None = None
        self.fail_on: set[str] = set()

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail_on:
            raise TransportError(f"{name} failed")

    def attach(self, target) -> None:
        self._record("attach")
        self.target = target

    def detach(self) -> None:
        self._record("detach")
        self.target = None

    def load_source(self, url: str) -> None:
        self._record("load_source")
        self.url = url

    def start_load(self) -> None:
        self._record("start_load")

    def stop_load(self) -> None:
        self._record("stop_load")

    def recover_media_error(self) -> None:
        self._record("recover_media_error")

    def destroy(self) -> None:
        self._record("destroy")

    def add_listener(self, listener: TransportListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: TransportListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def emit(self, kind: ErrorKind = ErrorKind.NETWORK, fatal: bool = True) -> None:
        event = TransportErrorEvent(kind, fatal=fatal, details="injected")
        for listener in list(self.listeners):
            listener.on_transport_error(event)


class FakeMediaTarget:
    def __init__(self, ready_state: int = HAVE_ENOUGH_DATA) -> None:
        self.paused = False
        self.ready_state = ready_state
        self.muted = False
        self.play_calls = 0
        self.pause_calls = 0
        self.play_error: Exception | None = None
        self.listeners: list[PlaybackListener] = []

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def play(self) -> None:
        self.play_calls += 1
        if self.play_error is not None:
            raise self.play_error
        self.paused = False

    def pause(self) -> None:
        self.pause_calls += 1
        self.paused = True

    def add_listener(self, listener: PlaybackListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: PlaybackListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def emit_playing(self) -> None:
        for listener in list(self.listeners):
            listener.on_playing()


class FakeAnalyser:
    """Returns the same byte magnitude in every bin of every channel."""

    channel_count = 2
    frequency_bin_count = 16

    def __init__(self, level: int = 128) -> None:
        self.level = level

    def get_byte_frequency_data(self, channel: int) -> list[int]:
        return [self.level] * self.frequency_bin_count


class RecordingAlarm:
    def __init__(self) -> None:
        self.starts: list[str] = []
        self.stops = 0

    def start(self, message: str) -> None:
        self.starts.append(message)

    def stop(self) -> None:
        self.stops += 1


@pytest.fixture
def clock() -> SteppedMasterClock:
    return SteppedMasterClock()


@pytest.fixture
def scheduler(clock: SteppedMasterClock) -> SteppedTimerScheduler:
    return SteppedTimerScheduler(clock)


@pytest.fixture
def pace(clock: SteppedMasterClock) -> PaceController:
    return PaceController(clock=clock, target_hz=30.0)


@pytest.fixture
def config() -> SupervisorConfig:
    return SupervisorConfig(silence_duration=3.0)


@pytest.fixture
def sessions() -> list[FakeTransportSession]:
    return []


@pytest.fixture
def session_factory(sessions: list[FakeTransportSession]) -> Callable[[], FakeTransportSession]:
    def factory() -> FakeTransportSession:
        session = FakeTransportSession()
        sessions.append(session)
        return session

    return factory


@pytest.fixture
def fake_target() -> FakeMediaTarget:
    return FakeMediaTarget()


@pytest.fixture
def fake_analyser() -> FakeAnalyser:
    return FakeAnalyser()


@pytest.fixture
def recording_alarm() -> RecordingAlarm:
    return RecordingAlarm()


@pytest.fixture
def fakes():
    """Expose the fake classes to tests that need several instances."""

    class _Fakes:
        TransportSession = FakeTransportSession
        MediaTarget = FakeMediaTarget
        Analyser = FakeAnalyser
        Alarm = RecordingAlarm

    return _Fakes

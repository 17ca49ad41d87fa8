from __future__ import annotations

import asyncio
import shutil
import struct

import pytest

from multiview.infra.exceptions import TransportError
from multiview.runtime.command_bus import GlobalMute, PlaybackCommandBus
from multiview.runtime.config import StreamDescriptor, SupervisorConfig
from multiview.runtime.health import HealthState
from multiview.runtime.tile import Tile
from multiview.runtime.timers import AsyncioTimerScheduler
from multiview.runtime.transport import HAVE_ENOUGH_DATA, HAVE_NOTHING, ErrorKind
from multiview.streaming.ffmpeg_session import FfmpegTransportSession
from multiview.streaming.media_target import HeadlessMediaTarget

URL = "https://example.test/live.m3u8"


class _Collector:
    def __init__(self):
        self.events = []
        self.fatal = asyncio.Event()

    def on_transport_error(self, event):
        self.events.append(event)
        if event.fatal:
            self.fatal.set()


class _ExitingDecoder:
    """Decoder that exits with ``returncode`` as soon as it is read."""

    pid = 4241

    def __init__(self, returncode: int = 1):
        self.returncode = None
        self._exit_code = returncode
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.stdout.feed_eof()
        self.stderr.feed_eof()

    async def wait(self):
        self.returncode = self._exit_code
        return self.returncode

    def terminate(self):
        self.returncode = -15

    kill = terminate


class _HungDecoder:
    """Decoder that produces ``pcm`` once and then never writes again."""

    pid = 4242

    def __init__(self, pcm: bytes = b""):
        self.returncode = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self._exited = asyncio.Event()
        if pcm:
            self.stdout.feed_data(pcm)

    async def wait(self):
        await self._exited.wait()
        return self.returncode

    def terminate(self):
        self.returncode = -15
        self.stderr.feed_eof()
        self._exited.set()

    kill = terminate


@pytest.fixture
def decoders(monkeypatch):
    """Replace FFmpeg with in-process decoders built by ``decoders.make``."""

    class Decoders(list):
        make = staticmethod(lambda: _ExitingDecoder())

    spawned = Decoders()

    async def fake_exec(*cmd, **kwargs):
        decoder = spawned.make()
        spawned.append(decoder)
        return decoder

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    return spawned


def _tone(frames: int) -> bytes:
    return struct.pack(f"<{frames * 2}h", *([8000, -8000] * frames))


async def _run_until_fatal(ffmpeg_path: str) -> tuple[FfmpegTransportSession, _Collector]:
    session = FfmpegTransportSession(ffmpeg_path=ffmpeg_path)
    collector = _Collector()
    session.add_listener(collector)
    session.load_source(URL)
    session.attach(HeadlessMediaTarget())
    await asyncio.wait_for(collector.fatal.wait(), timeout=5.0)
    return session, collector


@pytest.mark.asyncio
async def test_missing_binary_is_a_fatal_unknown_error(tmp_path):
    session, collector = await _run_until_fatal(str(tmp_path / "no-such-ffmpeg"))
    event = collector.events[-1]
    assert event.kind is ErrorKind.UNKNOWN
    assert event.fatal
    assert not session.loading
    session.destroy()


@pytest.mark.asyncio
async def test_clean_exit_of_a_live_feed_is_a_network_error():
    true_bin = shutil.which("true")
    if true_bin is None:
        pytest.skip("true(1) not available")
    session, collector = await _run_until_fatal(true_bin)
    assert collector.events[-1].kind is ErrorKind.NETWORK
    assert not session.loading
    session.destroy()


@pytest.mark.asyncio
async def test_failing_decoder_exit_keeps_unknown_kind():
    false_bin = shutil.which("false")
    if false_bin is None:
        pytest.skip("false(1) not available")
    session, collector = await _run_until_fatal(false_bin)
    assert collector.events[-1].kind is ErrorKind.UNKNOWN
    assert "decoder exited" in collector.events[-1].details
    session.destroy()


@pytest.mark.asyncio
async def test_restarts_are_spaced_by_the_minimum_interval(decoders):
    session = FfmpegTransportSession(min_restart_interval=0.5)

    class _Restarter:
        def on_transport_error(self, event):
            if event.fatal:
                session.start_load()

    session.add_listener(_Restarter())
    session.load_source(URL)
    session.attach(HeadlessMediaTarget())

    await asyncio.sleep(1.2)

    assert 2 <= session.spawns <= 3
    assert len(decoders) == session.spawns
    session.destroy()
    assert not session.restart_pending


@pytest.mark.asyncio
async def test_destroy_cancels_a_delayed_restart(decoders):
    session = FfmpegTransportSession(min_restart_interval=0.3)
    collector = _Collector()
    session.add_listener(collector)
    session.load_source(URL)
    session.attach(HeadlessMediaTarget())
    await asyncio.wait_for(collector.fatal.wait(), timeout=1.0)

    session.start_load()
    assert session.restart_pending
    session.destroy()

    await asyncio.sleep(0.5)
    assert session.spawns == 1
    assert not session.restart_pending


@pytest.mark.asyncio
async def test_decoder_that_stops_producing_pcm_is_reported_lost(decoders):
    decoders.make = lambda: _HungDecoder(_tone(64))
    target = HeadlessMediaTarget()
    session = FfmpegTransportSession(stall_timeout=0.2)
    collector = _Collector()
    session.add_listener(collector)
    session.load_source(URL)
    session.attach(target)

    await asyncio.sleep(0.05)
    assert target.ready_state == HAVE_ENOUGH_DATA

    await asyncio.wait_for(collector.fatal.wait(), timeout=2.0)
    event = collector.events[-1]
    assert event.kind is ErrorKind.NETWORK
    assert "no data" in event.details
    assert target.ready_state == HAVE_NOTHING

    await asyncio.sleep(0.05)
    assert decoders[0].returncode == -15
    assert not session.loading
    session.destroy()


@pytest.mark.asyncio
async def test_dead_feed_restarts_once_per_debounce_window(decoders, pace):
    decoders.make = lambda: _ExitingDecoder(returncode=0)
    session_spawns = []

    def session_factory():
        session = FfmpegTransportSession(min_restart_interval=0.0)
        session_spawns.append(session)
        return session

    tile = Tile(
        0,
        StreamDescriptor(id="1", title="Dead", url=URL),
        media=HeadlessMediaTarget().as_tile_media(),
        session_factory=session_factory,
        scheduler=AsyncioTimerScheduler(),
        pace=pace,
        command_bus=PlaybackCommandBus(),
        mute=GlobalMute(),
        alarm=_NullAlarm(),
        config=SupervisorConfig(debounce_timeout=2.0),
    )
    tile.start()

    await asyncio.sleep(0.5)

    # Initial decoder plus the single mitigation restart of the open window.
    assert sum(session.spawns for session in session_spawns) == 2
    assert tile.health is HealthState.HEALTHY
    assert tile.debouncer.debounce_pending

    tile.close()
    await asyncio.sleep(0.05)


@pytest.mark.asyncio
async def test_destroyed_session_rejects_further_use():
    session = FfmpegTransportSession(ffmpeg_path="ffmpeg")
    session.load_source(URL)
    assert not session.loading
    session.destroy()
    session.destroy()

    with pytest.raises(TransportError):
        session.start_load()
    with pytest.raises(TransportError):
        session.attach(HeadlessMediaTarget())


def test_empty_source_is_rejected():
    with pytest.raises(TransportError):
        FfmpegTransportSession().load_source("")


class _NullAlarm:
    def start(self, message):
        pass

    def stop(self):
        pass

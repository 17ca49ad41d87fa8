"""
A grid tile: one live feed and its independent health supervision.

The tile wires its collaborators together and owns all of them:

- a :class:`StreamSourceAdapter` holding the transport session,
- a :class:`FatalErrorDebouncer` and :class:`RecoveryScheduler` for health,
- an :class:`AudioSilenceDetector` ticked by the shared pace controller,
- a :class:`TileHealthAggregator` driving the tile's alarm,
- a :class:`PlaybackCommandFollower` consuming the grid's command bus.

Every timer, registration and session is tracked by the tile's
:class:`ResourceScope`, so :meth:`Tile.close` releases all of them whichever
path triggered the teardown. Callbacks arriving after close are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from multiview.infra.logging import get_logger

from .alarm import AlarmSink, TileHealthAggregator
from .command_bus import GlobalMute, PlaybackCommand, PlaybackCommandBus, PlaybackCommandFollower
from .config import StreamDescriptor, SupervisorConfig
from .health import FatalErrorDebouncer, HealthState
from .pace import PaceController
from .recovery import RecoveryScheduler
from .scope import ResourceScope
from .silence import AudioAnalyser, AudioSilenceDetector, SilenceState
from .timers import TimerScheduler
from .transport import MediaTarget, SessionFactory, StreamSourceAdapter, TransportErrorEvent

_log = get_logger(__name__)


@dataclass
class TileMedia:
    """Render target and audio analysis handles for one tile."""

    target: MediaTarget
    analyser: AudioAnalyser
    release: Callable[[], None] | None = None


MediaFactory = Callable[[int], TileMedia]
AlarmFactory = Callable[[int], AlarmSink]


@dataclass(frozen=True)
class TileStatus:
    index: int
    stream: StreamDescriptor | None
    attached: bool
    health: HealthState
    silence: SilenceState
    paused: bool
    muted: bool
    attempts: int
    alert: bool
    message: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "stream": self.stream.to_dict() if self.stream else None,
            "attached": self.attached,
            "health": self.health.value,
            "silence": self.silence.value,
            "paused": self.paused,
            "muted": self.muted,
            "attempts": self.attempts,
            "alert": self.alert,
            "message": self.message,
        }


class Tile:
    def __init__(
        self,
        index: int,
        stream: StreamDescriptor,
        *,
        media: TileMedia,
        session_factory: SessionFactory,
        scheduler: TimerScheduler,
        pace: PaceController,
        command_bus: PlaybackCommandBus,
        mute: GlobalMute,
        alarm: AlarmSink,
        config: SupervisorConfig,
    ) -> None:
        self.index = index
        self.stream = stream
        self._media = media
        self._scheduler = scheduler
        self._pace = pace
        self._command_bus = command_bus
        self._mute = mute
        self._scope = ResourceScope(f"tile-{index}")

        target = media.target
        self.adapter = StreamSourceAdapter(
            stream.url, target, session_factory, self, tile_index=index
        )
        self.recovery = RecoveryScheduler(
            self.adapter,
            self._resume_playback,
            scheduler,
            interval=config.recovery_interval,
            hard_reload_every=config.hard_reload_every,
            tile_index=index,
        )
        self.aggregator = TileHealthAggregator(alarm, tile_index=index)
        self.debouncer = FatalErrorDebouncer(
            self.adapter,
            self.recovery,
            scheduler,
            timeout=config.debounce_timeout,
            on_state_change=self._on_health_change,
            tile_index=index,
        )
        self.silence = AudioSilenceDetector(
            media.analyser,
            target,
            threshold=config.silence_threshold,
            duration=config.silence_duration,
            max_hz=config.analysis_hz,
            on_change=self._on_silence_change,
            tile_index=index,
        )
        self.follower = PlaybackCommandFollower(target, tile_index=index)

        # Released in reverse order: timers first, audio handles last.
        if media.release is not None:
            self._scope.defer("media", media.release)
        self._scope.defer("alarm", self.aggregator.close)
        self._scope.defer("playback_listener", lambda: target.remove_listener(self))
        self._scope.defer("transport", self.adapter.detach)
        self._scope.defer("audio_sampling", lambda: pace.remove_participant(self))
        self._scope.defer("health_timers", self.debouncer.close)

    # Properties ------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._scope.closed

    @property
    def health(self) -> HealthState:
        return self.debouncer.state

    @property
    def silence_state(self) -> SilenceState:
        return self.silence.state

    @property
    def attempts(self) -> int:
        return self.recovery.attempts

    @property
    def alert(self) -> bool:
        return self.aggregator.alert

    @property
    def message(self) -> str | None:
        return self.aggregator.message

    # Lifecycle -------------------------------------------------------------

    def start(self, delay: float = 0.0) -> None:
        """Attach after ``delay`` seconds (the stagger for this slot)."""
        if delay <= 0.0:
            self.attach()
            return
        _log.debug("attach_staggered", tile=self.index, delay=delay)
        self._scope.track_timer("stagger", self._scheduler.call_later(delay, self.attach))

    def attach(self) -> None:
        if self.closed or self.adapter.attached:
            return
        target = self._media.target
        target.set_muted(self._mute.muted)
        target.add_listener(self)
        self.debouncer.reset()
        self.adapter.attach()
        self._pace.add_participant(self)
        self.observe_command(self._command_bus.current)

    def reattach(self) -> None:
        """External reattachment: fresh session, HEALTHY, attempts reset."""
        if self.closed:
            return
        _log.info("tile_reattach", tile=self.index)
        self.adapter.detach()
        self.silence.reset()
        self.attach()

    def close(self) -> None:
        if self.closed:
            return
        self._scope.close()
        _log.info("tile_closed", tile=self.index)

    # Inputs ----------------------------------------------------------------

    def on_transport_error(self, event: TransportErrorEvent) -> None:
        if self.closed:
            return
        self.debouncer.on_transport_error(event)

    def on_playing(self) -> None:
        if self.closed:
            return
        self.debouncer.on_playing()

    def observe_command(self, command: PlaybackCommand) -> bool:
        if self.closed or not self.adapter.attached:
            return False
        return self.follower.observe(command)

    def on_paced_tick(self, t_now: float, dt: float) -> None:
        if self.closed:
            return
        try:
            target = self._media.target
            muted = self._mute.muted
            if target.muted != muted:
                target.set_muted(muted)
            self.observe_command(self._command_bus.current)
            self.silence.on_paced_tick(t_now, dt)
        except Exception:
            _log.exception("tile_tick_failed", tile=self.index)

    # Internals -------------------------------------------------------------

    def _resume_playback(self) -> None:
        if self.follower.paused:
            return
        self._media.target.play()

    def _on_health_change(self, state: HealthState) -> None:
        if self.closed:
            return
        self.aggregator.update(health=state)

    def _on_silence_change(self, state: SilenceState) -> None:
        if self.closed:
            return
        self.aggregator.update(silence=state)

    def status(self) -> TileStatus:
        return TileStatus(
            index=self.index,
            stream=self.stream,
            attached=self.adapter.attached,
            health=self.health,
            silence=self.silence_state,
            paused=self.follower.paused,
            muted=self._media.target.muted,
            attempts=self.attempts,
            alert=self.alert,
            message=self.message,
        )

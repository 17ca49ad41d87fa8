"""
Grid Supervisor.

Owns the set of tiles, the global mute flag, the playback command bus and the
per-session stagger schedule. Grid composition (dimensions and the ordered
stream assignment) is supplied from outside; the supervisor reconciles its
tiles against it:

- slot ``i`` hosts ``streams[i]`` while ``i < rows * columns``;
- a slot whose descriptor changed (edited title or url, different stream) is
  torn down and rebuilt;
- a cleared slot, or one beyond the grid's capacity, is torn down;
- untouched slots keep their tile, session and health state.

Only the supervisor writes the mute flag and the command bus; each tile reads
them and acts on its own session without waiting on any other tile.
"""

from __future__ import annotations

from typing import Sequence

from multiview.infra.logging import get_logger

from .alarm import LoggingAlarm
from .command_bus import GlobalMute, PlaybackCommand, PlaybackCommandBus
from .config import GridConfig, StreamDescriptor, SupervisorConfig
from .pace import PaceController
from .stagger import StaggerSchedule
from .tile import AlarmFactory, MediaFactory, Tile, TileStatus
from .timers import TimerScheduler
from .transport import SessionFactory

_log = get_logger(__name__)


class GridSupervisor:
    def __init__(
        self,
        *,
        scheduler: TimerScheduler,
        pace: PaceController,
        session_factory: SessionFactory,
        media_factory: MediaFactory,
        alarm_factory: AlarmFactory | None = None,
        config: SupervisorConfig | None = None,
        grid: GridConfig | None = None,
        stagger: StaggerSchedule | None = None,
    ) -> None:
        self.config = config or SupervisorConfig()
        self.grid = grid or GridConfig()
        self.stagger = stagger or StaggerSchedule.random(
            self.config.stagger_spacing_ms, self.config.stagger_seed_max_ms
        )
        self.command_bus = PlaybackCommandBus()
        self.mute = GlobalMute(self.config.start_muted)
        self._scheduler = scheduler
        self._pace = pace
        self._session_factory = session_factory
        self._media_factory = media_factory
        self._alarm_factory = alarm_factory or LoggingAlarm
        self._streams: list[StreamDescriptor] = []
        self._tiles: dict[int, Tile] = {}
        self._closed = False

    # Composition -----------------------------------------------------------

    @property
    def tiles(self) -> dict[int, Tile]:
        return dict(self._tiles)

    def tile(self, index: int) -> Tile | None:
        return self._tiles.get(index)

    def apply_streams(self, streams: Sequence[StreamDescriptor]) -> None:
        """Reconcile tiles against the ordered stream assignment."""
        self._streams = list(streams)
        self._reconcile()

    def resize(self, grid: GridConfig) -> None:
        _log.info("grid_resized", rows=grid.rows, columns=grid.columns)
        self.grid = grid
        self._reconcile()

    def _reconcile(self) -> None:
        if self._closed:
            return
        capacity = self.grid.capacity
        wanted = {
            index: stream
            for index, stream in enumerate(self._streams[:capacity])
        }

        for index in sorted(self._tiles):
            tile = self._tiles[index]
            if wanted.get(index) != tile.stream:
                self._teardown(index)

        for index, stream in sorted(wanted.items()):
            if index in self._tiles:
                continue
            self._build(index, stream)

    def _build(self, index: int, stream: StreamDescriptor) -> Tile:
        media = self._media_factory(index)
        tile = Tile(
            index,
            stream,
            media=media,
            session_factory=self._session_factory,
            scheduler=self._scheduler,
            pace=self._pace,
            command_bus=self.command_bus,
            mute=self.mute,
            alarm=self._alarm_factory(index),
            config=self.config,
        )
        self._tiles[index] = tile
        delay = self.stagger.delay(index)
        _log.info("tile_created", tile=index, stream_id=stream.id, delay=delay)
        tile.start(delay)
        return tile

    def _teardown(self, index: int) -> None:
        tile = self._tiles.pop(index, None)
        if tile is not None:
            tile.close()

    def reattach(self, index: int) -> bool:
        tile = self._tiles.get(index)
        if tile is None:
            return False
        tile.reattach()
        return True

    # Shared values ---------------------------------------------------------

    def toggle_playback(self) -> PlaybackCommand:
        command = self.command_bus.toggle()
        for tile in list(self._tiles.values()):
            tile.observe_command(command)
        return command

    def set_muted(self, muted: bool) -> bool:
        return self.mute.set(muted)

    def toggle_mute(self) -> bool:
        return self.mute.toggle()

    # Introspection ---------------------------------------------------------

    def snapshot(self) -> list[TileStatus]:
        return [self._tiles[index].status() for index in sorted(self._tiles)]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for index in sorted(self._tiles):
            self._teardown(index)
        _log.info("grid_closed")

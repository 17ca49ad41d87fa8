"""
Grid-wide shared values: the playback command bus and the global mute flag.

Both are last-writer-wins values written only by the grid supervisor and read
by every tile. The bus is edge-triggered through its strictly increasing
command ``id``: a tile applies a command only when it sees an ``id`` it has
not applied before, so redundant deliveries are no-ops. Mute is level
triggered: tiles read the current value on every audio tick.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from multiview.infra.logging import get_logger

from .transport import MediaTarget

_log = get_logger(__name__)


class PlaybackAction(str, Enum):
    PLAY = "play"
    PAUSE = "pause"


@dataclass(frozen=True)
class PlaybackCommand:
    action: PlaybackAction
    id: int


class PlaybackCommandBus:
    """Holds the single current ``{action, id}`` pair."""

    def __init__(self) -> None:
        self._current = PlaybackCommand(PlaybackAction.PLAY, 0)

    @property
    def current(self) -> PlaybackCommand:
        return self._current

    @property
    def paused(self) -> bool:
        return self._current.action is PlaybackAction.PAUSE

    def toggle(self) -> PlaybackCommand:
        """Flip the global play/pause intent; ``id`` grows by exactly one."""
        action = PlaybackAction.PLAY if self.paused else PlaybackAction.PAUSE
        self._current = PlaybackCommand(action, self._current.id + 1)
        _log.info("playback_command", action=action.value, command_id=self._current.id)
        return self._current


class GlobalMute:
    def __init__(self, muted: bool = True) -> None:
        self._muted = muted

    @property
    def muted(self) -> bool:
        return self._muted

    def set(self, muted: bool) -> bool:
        self._muted = muted
        _log.info("global_mute", muted=muted)
        return muted

    def toggle(self) -> bool:
        return self.set(not self._muted)


class PlaybackCommandFollower:
    """Per-tile idempotent consumer of the command bus."""

    def __init__(self, target: MediaTarget, *, tile_index: int = -1) -> None:
        self._target = target
        self._tile_index = tile_index
        self.last_applied_id: int | None = None
        self.paused = False

    def observe(self, command: PlaybackCommand) -> bool:
        """Apply ``command`` if its id is new; returns whether it was applied."""
        if command.id == self.last_applied_id:
            return False
        self.last_applied_id = command.id
        self.paused = command.action is PlaybackAction.PAUSE
        try:
            if self.paused:
                self._target.pause()
            else:
                self._target.play()
        except Exception as e:
            _log.warning(
                "playback_command_failed",
                tile=self._tile_index,
                action=command.action.value,
                command_id=command.id,
                error=str(e),
            )
        return True

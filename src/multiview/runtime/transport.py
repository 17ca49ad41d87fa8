"""
Stream Source Adapter.

Per-tile wrapper around an external adaptive-bitrate transport session. The
adapter owns the session exclusively: it creates it on attach, forwards the
session's classified error events to a single tile listener, performs the
error-class specific mitigations and the hard reload, and destroys the session
on detach.

Every mitigation is best-effort: a session operation that raises is logged and
reported as ``False`` so that callers can carry on with the next step.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, runtime_checkable

from multiview.infra.exceptions import ResourceError
from multiview.infra.logging import get_logger

_log = get_logger(__name__)

# HTMLMediaElement-style ready states
HAVE_NOTHING = 0
HAVE_METADATA = 1
HAVE_CURRENT_DATA = 2
HAVE_FUTURE_DATA = 3
HAVE_ENOUGH_DATA = 4


class ErrorKind(str, Enum):
    """Transport error taxonomy."""

    NETWORK = "network"
    MEDIA = "media"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class TransportErrorEvent:
    """A classified error emitted by a transport session."""

    kind: ErrorKind
    fatal: bool
    details: str = ""


@runtime_checkable
class TransportListener(Protocol):
    def on_transport_error(self, event: TransportErrorEvent) -> None:
        """Handle a classified transport error."""


@runtime_checkable
class PlaybackListener(Protocol):
    def on_playing(self) -> None:
        """Handle the render target's playing signal."""


class MediaTarget(Protocol):
    """Rendering target a transport session attaches to."""

    @property
    def paused(self) -> bool: ...

    @property
    def ready_state(self) -> int: ...

    @property
    def muted(self) -> bool: ...

    def set_muted(self, muted: bool) -> None: ...

    def play(self) -> None:
        """Start or resume playback; raises PlaybackError when refused."""

    def pause(self) -> None: ...

    def add_listener(self, listener: PlaybackListener) -> None: ...

    def remove_listener(self, listener: PlaybackListener) -> None: ...


class TransportSession(Protocol):
    """Adaptive transport session (one per tile)."""

    def attach(self, target: MediaTarget) -> None: ...

    def detach(self) -> None: ...

    def load_source(self, url: str) -> None: ...

    def start_load(self) -> None: ...

    def stop_load(self) -> None: ...

    def recover_media_error(self) -> None: ...

    def destroy(self) -> None: ...

    def add_listener(self, listener: TransportListener) -> None: ...

    def remove_listener(self, listener: TransportListener) -> None: ...


SessionFactory = Callable[[], TransportSession]


class StreamSourceAdapter:
    """Owns one tile's transport session and its mitigations."""

    def __init__(
        self,
        url: str,
        target: MediaTarget,
        session_factory: SessionFactory,
        listener: TransportListener,
        *,
        tile_index: int = -1,
    ) -> None:
        self.url = url
        self.target = target
        self._session_factory = session_factory
        self._listener = listener
        self._tile_index = tile_index
        self._session: TransportSession | None = None

    @property
    def attached(self) -> bool:
        return self._session is not None

    @property
    def session(self) -> TransportSession | None:
        return self._session

    def attach(self) -> None:
        """Create the session, bind it to the target and start loading."""
        if self._session is not None:
            raise ResourceError(f"tile {self._tile_index} transport is already attached")
        session = self._session_factory()
        session.add_listener(self._listener)
        self._session = session
        session.load_source(self.url)
        session.attach(self.target)
        _log.info("transport_attached", tile=self._tile_index, url=self.url)

    def detach(self) -> None:
        """Stop loading and destroy the session; safe to call repeatedly."""
        session, self._session = self._session, None
        if session is None:
            return
        session.remove_listener(self._listener)
        for step in (session.stop_load, session.detach, session.destroy):
            try:
                step()
            except Exception:
                _log.exception("transport_release_failed", tile=self._tile_index, step=step.__name__)
        _log.info("transport_detached", tile=self._tile_index)

    # Mitigations -----------------------------------------------------------

    def _call(self, step: str) -> bool:
        if self._session is None:
            return False
        try:
            getattr(self._session, step)()
        except Exception:
            _log.warning("mitigation_failed", tile=self._tile_index, step=step, exc_info=True)
            return False
        return True

    def restart_loading(self) -> bool:
        return self._call("start_load")

    def recover_media(self) -> bool:
        return self._call("recover_media_error")

    def mitigate(self, kind: ErrorKind) -> bool:
        """Error-class specific mitigation for a fatal error."""
        if kind is ErrorKind.NETWORK:
            return self.restart_loading()
        if kind is ErrorKind.MEDIA:
            return self.recover_media()
        return False

    def hard_reload(self) -> bool:
        """Stop, detach, reattach, reload the source and resume loading.

        Recovers states the cheap mitigations cannot (e.g. a wedged decoder).
        Runs immediately, never staggered.
        """
        session = self._session
        if session is None:
            return False
        try:
            session.stop_load()
            session.detach()
            session.attach(self.target)
            session.load_source(self.url)
            session.start_load()
        except Exception:
            _log.warning("hard_reload_failed", tile=self._tile_index, exc_info=True)
            return False
        _log.info("hard_reload", tile=self._tile_index)
        return True

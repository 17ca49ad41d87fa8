"""Scoped resource ownership with guaranteed release.

A :class:`ResourceScope` tracks every timer, participant registration and
session a tile opens. :meth:`ResourceScope.close` releases them in reverse
acquisition order exactly once, whichever path (stream removed, edited, grid
resized, process shutdown) triggered the teardown. A failing release is
logged and does not prevent the remaining releases.
"""

from __future__ import annotations

from typing import Callable

from multiview.infra.exceptions import ResourceError
from multiview.infra.logging import get_logger

from .timers import TimerHandle

_log = get_logger(__name__)

Release = Callable[[], None]


class ResourceScope:
    """Owns release callbacks for the resources of one tile."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._releases: list[tuple[str, Release]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ResourceError(f"scope {self.name!r} is already closed")

    def defer(self, label: str, release: Release) -> None:
        """Register ``release`` to run when the scope closes."""
        self._ensure_open()
        self._releases.append((label, release))

    def track_timer(self, label: str, handle: TimerHandle) -> TimerHandle:
        """Cancel ``handle`` on close; returns it for convenience."""
        self.defer(label, handle.cancel)
        return handle

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while self._releases:
            label, release = self._releases.pop()
            try:
                release()
            except Exception:
                _log.exception("resource_release_failed", scope=self.name, resource=label)

    def __enter__(self) -> ResourceScope:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

"""
In-memory stream directory.

CRUD store of ``{id, title, url}`` records. The grid supervisor only reads the
ordered list; mutations happen through the HTTP API and each returns the full
updated list.
"""

from __future__ import annotations

import time
from typing import Callable

from multiview.infra.exceptions import NotFoundError, ValidationError

from .config import StreamDescriptor


def _validate(title: str, url: str) -> tuple[str, str]:
    title = title.strip()
    url = url.strip()
    if not title:
        raise ValidationError("title must not be empty")
    if not url:
        raise ValidationError("url must not be empty")
    return title, url


class StreamDirectory:
    def __init__(self, id_source: Callable[[], int] | None = None) -> None:
        self._streams: list[StreamDescriptor] = []
        self._id_source = id_source or (lambda: time.time_ns() // 1_000_000)
        self._last_id = 0

    def list(self) -> list[StreamDescriptor]:
        return list(self._streams)

    def get(self, stream_id: str) -> StreamDescriptor:
        for stream in self._streams:
            if stream.id == stream_id:
                return stream
        raise NotFoundError(f"stream {stream_id!r} not found")

    def _next_id(self) -> str:
        # Millisecond timestamps, bumped when two adds land in the same ms.
        candidate = max(self._id_source(), self._last_id + 1)
        self._last_id = candidate
        return str(candidate)

    def add(self, title: str, url: str) -> list[StreamDescriptor]:
        title, url = _validate(title, url)
        self._streams.append(StreamDescriptor(id=self._next_id(), title=title, url=url))
        return self.list()

    def update(self, stream_id: str, title: str, url: str) -> list[StreamDescriptor]:
        title, url = _validate(title, url)
        self.get(stream_id)
        self._streams = [
            StreamDescriptor(id=stream_id, title=title, url=url) if stream.id == stream_id else stream
            for stream in self._streams
        ]
        return self.list()

    def delete(self, stream_id: str) -> list[StreamDescriptor]:
        self.get(stream_id)
        self._streams = [stream for stream in self._streams if stream.id != stream_id]
        return self.list()

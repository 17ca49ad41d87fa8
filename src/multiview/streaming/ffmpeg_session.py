"""
FFmpeg-backed transport session for headless monitoring.

Implements the transport session contract on top of an asyncio FFmpeg
subprocess decoding the feed's audio to PCM. Decoded PCM is pushed into the
attached :class:`HeadlessMediaTarget`; FFmpeg stderr lines are classified into
non-fatal network/media errors, and an exiting decoder is reported as a fatal
error of the last classified kind.

A decoder that stays alive but stops producing PCM for ``stall_timeout``
seconds is treated like a lost source: it is torn down and reported as a
fatal network error. Decoder spawns are spaced at least
``min_restart_interval`` seconds apart, so a feed that fails instantly cannot
respawn FFmpeg in a tight loop.

Each (re)start of the decoder bumps a generation counter; output from a
superseded process is discarded so a restart never races its predecessor.
"""

from __future__ import annotations

import asyncio
import logging

from multiview.infra.exceptions import TransportError
from multiview.runtime.transport import ErrorKind, TransportErrorEvent, TransportListener

from .ffmpeg_cmd import DEFAULT_SAMPLE_RATE, build_cmd, classify_stderr_line
from .media_target import HeadlessMediaTarget

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096
DEFAULT_STALL_TIMEOUT = 10.0
DEFAULT_MIN_RESTART_INTERVAL = 1.0


class FfmpegTransportSession:
    """
    Transport session driving one FFmpeg decoder process.

    Loading starts automatically once both a source and a target are set,
    mirroring an adaptive player's auto-start behaviour.
    """

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        stall_timeout: float = DEFAULT_STALL_TIMEOUT,
        min_restart_interval: float = DEFAULT_MIN_RESTART_INTERVAL,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        if stall_timeout <= 0:
            raise ValueError("stall_timeout must be greater than zero")
        if min_restart_interval < 0:
            raise ValueError("min_restart_interval must be non-negative")
        self._ffmpeg_path = ffmpeg_path
        self._sample_rate = sample_rate
        self._stall_timeout = stall_timeout
        self._min_restart_interval = min_restart_interval
        self._loop = loop
        self._url: str | None = None
        self._target: HeadlessMediaTarget | None = None
        self._listeners: dict[int, TransportListener] = {}
        self._task: asyncio.Task[None] | None = None
        self._respawn: asyncio.TimerHandle | None = None
        self._last_spawn_at: float | None = None
        self._generation = 0
        self._last_kind = ErrorKind.UNKNOWN
        self._destroyed = False
        self.spawns = 0

    @property
    def loading(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def restart_pending(self) -> bool:
        return self._respawn is not None

    # Listener management ---------------------------------------------------

    def add_listener(self, listener: TransportListener) -> None:
        self._listeners[id(listener)] = listener

    def remove_listener(self, listener: TransportListener) -> None:
        self._listeners.pop(id(listener), None)

    def _emit(self, event: TransportErrorEvent) -> None:
        for listener in list(self._listeners.values()):
            listener.on_transport_error(event)

    # Session contract ------------------------------------------------------

    def _ensure_alive(self, operation: str) -> None:
        if self._destroyed:
            raise TransportError(f"cannot {operation}: session destroyed")

    def attach(self, target: HeadlessMediaTarget) -> None:
        self._ensure_alive("attach")
        self._target = target
        target.bind()
        self.start_load()

    def detach(self) -> None:
        self.stop_load()
        target, self._target = self._target, None
        if target is not None:
            target.unbind()

    def load_source(self, url: str) -> None:
        self._ensure_alive("load source")
        if not url:
            raise TransportError("source url must not be empty")
        changed = url != self._url
        self._url = url
        if changed and self.loading:
            self.stop_load()
        self.start_load()

    def start_load(self) -> None:
        self._ensure_alive("start loading")
        if self._url is None or self._target is None or self.loading or self._respawn is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        if self._last_spawn_at is not None:
            wait = self._last_spawn_at + self._min_restart_interval - loop.time()
            if wait > 0:
                logger.info(f"Delaying FFmpeg restart by {wait:.2f}s")
                self._respawn = loop.call_later(wait, self._respawn_due)
                return
        self._generation += 1
        self._last_spawn_at = loop.time()
        self.spawns += 1
        self._task = loop.create_task(self._run(self._generation))

    def _respawn_due(self) -> None:
        self._respawn = None
        if not self._destroyed:
            self.start_load()

    def stop_load(self) -> None:
        self._generation += 1
        respawn, self._respawn = self._respawn, None
        if respawn is not None:
            respawn.cancel()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def recover_media_error(self) -> None:
        # A fresh decoder is the only media recovery FFmpeg offers.
        self.stop_load()
        self.start_load()

    def destroy(self) -> None:
        self.detach()
        self._listeners.clear()
        self._destroyed = True

    # Decoder ---------------------------------------------------------------

    def _current(self, generation: int) -> bool:
        return generation == self._generation and not self._destroyed

    def _source_lost(self, kind: ErrorKind, details: str) -> None:
        if self._target is not None:
            self._target.source_lost()
        self._task = None
        self._emit(TransportErrorEvent(kind, fatal=True, details=details))

    async def _run(self, generation: int) -> None:
        assert self._url is not None
        cmd = build_cmd(
            self._url,
            ffmpeg_path=self._ffmpeg_path,
            sample_rate=self._sample_rate,
            rw_timeout=self._stall_timeout,
        )
        self._last_kind = ErrorKind.UNKNOWN

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                stdin=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.error(f"Failed to start FFmpeg: {e}")
            if self._current(generation):
                self._task = None
                self._emit(TransportErrorEvent(ErrorKind.UNKNOWN, fatal=True, details=str(e)))
            return

        logger.info(f"FFmpeg decoder started with PID: {proc.pid}")
        stderr_task = asyncio.create_task(self._monitor_stderr(proc, generation))

        try:
            while proc.stdout is not None:
                try:
                    chunk = await asyncio.wait_for(
                        proc.stdout.read(CHUNK_SIZE), timeout=self._stall_timeout
                    )
                except asyncio.TimeoutError:
                    if self._current(generation):
                        logger.warning(
                            f"No PCM from FFmpeg for {self._stall_timeout}s, treating feed as stalled"
                        )
                        self._source_lost(
                            ErrorKind.NETWORK, f"no data for {self._stall_timeout}s"
                        )
                    return
                if not chunk:
                    break
                if self._current(generation) and self._target is not None:
                    self._target.feed_pcm(chunk)

            returncode = await proc.wait()
            await stderr_task
            if self._current(generation):
                logger.warning(f"FFmpeg decoder exited with code {returncode}")
                kind = self._last_kind
                if returncode == 0 and kind is ErrorKind.UNKNOWN:
                    # A live feed reaching end-of-stream means the origin went away.
                    kind = ErrorKind.NETWORK
                self._source_lost(kind, f"decoder exited ({returncode})")
        except asyncio.CancelledError:
            logger.info("FFmpeg decoder cancelled")
            raise
        finally:
            stderr_task.cancel()
            await self._cleanup(proc)

    async def _monitor_stderr(self, proc: asyncio.subprocess.Process, generation: int) -> None:
        """Classify FFmpeg stderr lines into non-fatal transport errors."""
        if proc.stderr is None:
            return
        while True:
            line = await proc.stderr.readline()
            if not line:
                break
            message = line.decode("utf-8", errors="replace").strip()
            if not message:
                continue
            kind = classify_stderr_line(message)
            if kind is None:
                logger.debug(f"FFmpeg output: {message}")
                continue
            logger.warning(f"FFmpeg {kind.value} error: {message}")
            if self._current(generation):
                self._last_kind = kind
                self._emit(TransportErrorEvent(kind, fatal=False, details=message))

    async def _cleanup(self, proc: asyncio.subprocess.Process) -> None:
        """Terminate the FFmpeg process gracefully."""
        if proc.returncode is not None:
            return
        try:
            proc.terminate()
            try:
                await asyncio.wait_for(proc.wait(), timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("FFmpeg process didn't terminate gracefully, force killing")
                proc.kill()
                await proc.wait()
        except ProcessLookupError:
            pass

"""
HTTP API for the multiview grid.

Exposes the stream directory CRUD, per-tile health snapshots, the global
play/pause toggle, the global mute flag and the grid dimensions. Every
directory mutation re-applies the stream assignment to the grid supervisor.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import Body, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from multiview.infra.exceptions import NotFoundError, ValidationError
from multiview.infra.logging import get_logger
from multiview.infra.settings import Settings
from multiview.runtime.alarm import BellAlarm, CompositeAlarm, LoggingAlarm
from multiview.runtime.clock import RealTimeMasterClock
from multiview.runtime.config import MAX_GRID_SIDE, MIN_GRID_SIDE, GridConfig, SupervisorConfig
from multiview.runtime.directory import StreamDirectory
from multiview.runtime.grid import GridSupervisor
from multiview.runtime.pace import PaceController
from multiview.runtime.timers import AsyncioTimerScheduler
from multiview.streaming import FfmpegTransportSession, HeadlessMediaTarget

_log = get_logger(__name__)


class StreamIn(BaseModel):
    title: str
    url: str


class StreamUpdate(StreamIn):
    id: str


class StreamRef(BaseModel):
    id: str


class GridIn(BaseModel):
    rows: int = Field(ge=MIN_GRID_SIDE, le=MAX_GRID_SIDE)
    columns: int = Field(ge=MIN_GRID_SIDE, le=MAX_GRID_SIDE)


class MuteIn(BaseModel):
    muted: bool


def create_app(
    supervisor: GridSupervisor,
    directory: StreamDirectory,
    *,
    pace: PaceController | None = None,
) -> FastAPI:
    """Build the API around an existing supervisor and directory.

    When ``pace`` is given, the app lifespan drives it on the server's event
    loop; the supervisor is closed on shutdown either way.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        pace_task = asyncio.create_task(pace.run_forever()) if pace is not None else None
        _log.info("multiview_started", tiles=len(supervisor.tiles))
        try:
            yield
        finally:
            if pace is not None and pace_task is not None:
                pace.stop()
                await pace_task
            supervisor.close()
            _log.info("multiview_stopped")

    app = FastAPI(title="Multiview", lifespan=lifespan)

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    def _streams_payload() -> list[dict[str, str]]:
        streams = directory.list()
        supervisor.apply_streams(streams)
        return [stream.to_dict() for stream in streams]

    # Streams -----------------------------------------------------------------

    @app.get("/api/streams")
    async def list_streams() -> list[dict[str, str]]:
        return [stream.to_dict() for stream in directory.list()]

    @app.post("/api/streams")
    async def add_stream(body: StreamIn) -> list[dict[str, str]]:
        directory.add(body.title, body.url)
        return _streams_payload()

    @app.put("/api/streams")
    async def update_stream(body: StreamUpdate) -> list[dict[str, str]]:
        directory.update(body.id, body.title, body.url)
        return _streams_payload()

    @app.delete("/api/streams")
    async def delete_stream(body: StreamRef = Body(...)) -> list[dict[str, str]]:
        directory.delete(body.id)
        return _streams_payload()

    # Tiles -------------------------------------------------------------------

    @app.get("/api/tiles")
    async def list_tiles() -> list[dict[str, Any]]:
        return [tile.to_dict() for tile in supervisor.snapshot()]

    @app.get("/api/tiles/{index}")
    async def get_tile(index: int) -> dict[str, Any]:
        tile = supervisor.tile(index)
        if tile is None:
            raise HTTPException(status_code=404, detail=f"tile {index} has no stream")
        return tile.status().to_dict()

    @app.post("/api/tiles/{index}/reattach")
    async def reattach_tile(index: int) -> dict[str, Any]:
        if not supervisor.reattach(index):
            raise HTTPException(status_code=404, detail=f"tile {index} has no stream")
        return supervisor.tiles[index].status().to_dict()

    # Playback & mute ---------------------------------------------------------

    @app.get("/api/playback")
    async def get_playback() -> dict[str, Any]:
        command = supervisor.command_bus.current
        return {"action": command.action.value, "id": command.id}

    @app.post("/api/playback/toggle")
    async def toggle_playback() -> dict[str, Any]:
        command = supervisor.toggle_playback()
        return {"action": command.action.value, "id": command.id}

    @app.get("/api/mute")
    async def get_mute() -> dict[str, bool]:
        return {"muted": supervisor.mute.muted}

    @app.put("/api/mute")
    async def set_mute(body: MuteIn) -> dict[str, bool]:
        return {"muted": supervisor.set_muted(body.muted)}

    @app.post("/api/mute/toggle")
    async def toggle_mute() -> dict[str, bool]:
        return {"muted": supervisor.toggle_mute()}

    # Grid --------------------------------------------------------------------

    @app.get("/api/grid")
    async def get_grid() -> dict[str, int]:
        return {"rows": supervisor.grid.rows, "columns": supervisor.grid.columns}

    @app.put("/api/grid")
    async def set_grid(body: GridIn) -> dict[str, int]:
        supervisor.resize(GridConfig(rows=body.rows, columns=body.columns))
        return {"rows": supervisor.grid.rows, "columns": supervisor.grid.columns}

    return app


def create_headless_app(settings: Settings) -> FastAPI:
    """Wire a supervisor monitoring feeds through FFmpeg, without a display."""
    scheduler = AsyncioTimerScheduler()
    config = SupervisorConfig.from_settings(settings)
    pace = PaceController(clock=RealTimeMasterClock(), target_hz=config.analysis_hz)

    def session_factory() -> FfmpegTransportSession:
        return FfmpegTransportSession(
            ffmpeg_path=settings.ffmpeg_path,
            sample_rate=settings.audio_sample_rate,
            stall_timeout=settings.decoder_stall_timeout_s,
            min_restart_interval=settings.decoder_restart_min_interval_s,
        )

    def media_factory(index: int):
        return HeadlessMediaTarget().as_tile_media()

    def alarm_factory(index: int):
        if not settings.alarm_bell:
            return LoggingAlarm(index)
        return CompositeAlarm(
            LoggingAlarm(index), BellAlarm(scheduler, interval=settings.alarm_interval_s)
        )

    supervisor = GridSupervisor(
        scheduler=scheduler,
        pace=pace,
        session_factory=session_factory,
        media_factory=media_factory,
        alarm_factory=alarm_factory,
        config=config,
        grid=GridConfig(rows=settings.grid_rows, columns=settings.grid_columns),
    )
    return create_app(supervisor, StreamDirectory(), pace=pace)

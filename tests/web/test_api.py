from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from multiview.runtime.config import GridConfig
from multiview.runtime.directory import StreamDirectory
from multiview.runtime.grid import GridSupervisor
from multiview.runtime.stagger import StaggerSchedule
from multiview.runtime.tile import TileMedia
from multiview.runtime.transport import ErrorKind
from multiview.web.app import create_app


@pytest.fixture
def supervisor(fakes, scheduler, pace, session_factory, config):
    return GridSupervisor(
        scheduler=scheduler,
        pace=pace,
        session_factory=session_factory,
        media_factory=lambda index: TileMedia(fakes.MediaTarget(), fakes.Analyser()),
        alarm_factory=lambda index: fakes.Alarm(),
        config=config,
        grid=GridConfig(rows=2, columns=2),
        stagger=StaggerSchedule(seed_ms=0, spacing_ms=300),
    )


@pytest.fixture
def client(supervisor):
    app = create_app(supervisor, StreamDirectory())
    with TestClient(app) as c:
        yield c


def _add(client, title="News", url="https://example.test/news.m3u8"):
    response = client.post("/api/streams", json={"title": title, "url": url})
    assert response.status_code == 200
    return response.json()


def test_stream_crud_returns_the_full_list(client):
    assert client.get("/api/streams").json() == []

    streams = _add(client)
    assert [s["title"] for s in streams] == ["News"]
    stream_id = streams[0]["id"]

    updated = client.put(
        "/api/streams", json={"id": stream_id, "title": "World", "url": "https://example.test/w.m3u8"}
    ).json()
    assert updated == [{"id": stream_id, "title": "World", "url": "https://example.test/w.m3u8"}]

    remaining = client.request("DELETE", "/api/streams", json={"id": stream_id}).json()
    assert remaining == []


def test_invalid_and_unknown_streams(client):
    response = client.post("/api/streams", json={"title": " ", "url": "https://x"})
    assert response.status_code == 422

    response = client.put("/api/streams", json={"id": "nope", "title": "A", "url": "https://a"})
    assert response.status_code == 404


def test_directory_changes_reach_the_grid(client, sessions):
    _add(client)
    tiles = client.get("/api/tiles").json()
    assert len(tiles) == 1
    assert tiles[0]["attached"] is True
    assert tiles[0]["health"] == "healthy"
    assert len(sessions) == 1


def test_tile_status_reflects_a_stall(client, sessions, scheduler):
    _add(client)
    sessions[0].emit(ErrorKind.NETWORK)
    scheduler.advance(10.0)

    tile = client.get("/api/tiles/0").json()
    assert tile["health"] == "stalled"
    assert tile["alert"] is True
    assert tile["message"] == "Stream stalled, attempting recovery"

    reattached = client.post("/api/tiles/0/reattach").json()
    assert reattached["health"] == "healthy"
    assert reattached["alert"] is False


def test_unknown_tile(client):
    assert client.get("/api/tiles/3").status_code == 404
    assert client.post("/api/tiles/3/reattach").status_code == 404


def test_playback_toggle(client):
    assert client.get("/api/playback").json() == {"action": "play", "id": 0}
    assert client.post("/api/playback/toggle").json() == {"action": "pause", "id": 1}
    assert client.post("/api/playback/toggle").json() == {"action": "play", "id": 2}


def test_mute(client):
    assert client.get("/api/mute").json() == {"muted": True}
    assert client.post("/api/mute/toggle").json() == {"muted": False}
    assert client.put("/api/mute", json={"muted": True}).json() == {"muted": True}


def test_grid_resize(client):
    for i in range(4):
        _add(client, title=f"Feed {i}", url=f"https://example.test/{i}.m3u8")

    assert client.put("/api/grid", json={"rows": 1, "columns": 2}).json() == {"rows": 1, "columns": 2}
    assert [t["index"] for t in client.get("/api/tiles").json()] == [0, 1]
    assert client.put("/api/grid", json={"rows": 11, "columns": 2}).status_code == 422
    assert client.get("/api/grid").json() == {"rows": 1, "columns": 2}


def test_shutdown_closes_the_supervisor(supervisor, sessions):
    app = create_app(supervisor, StreamDirectory())
    with TestClient(app) as c:
        _add(c)
    assert supervisor.tiles == {}
    assert sessions[0].calls[-1] == "destroy"

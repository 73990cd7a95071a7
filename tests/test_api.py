"""
Tests for the HTTP API.
"""
import pytest
from fastapi.testclient import TestClient

from map_explorer.main import app


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("EXPLORER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("EXPLORER_AUTOSAVE_INTERVAL_S", "60")
    with TestClient(app) as test_client:
        yield test_client


def post_walk(client, n=5):
    for i in range(n):
        response = client.post("/api/v1/fixes", json={
            "longitude": 13.40,
            "latitude": 52.52 + i * 0.0005,
            "timestamp_ms": i * 2_000
        })
        assert response.status_code == 200


def test_health_and_root(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["rebuild_in_progress"] is False

    assert client.get("/").json()["message"] == "Map Explorer Engine API"
    assert client.get("/api/v1/version").json()["version"]


def test_add_fix_outcomes(client):
    first = client.post("/api/v1/fixes", json={"longitude": 13.4, "latitude": 52.52, "timestamp_ms": 0})
    second = client.post("/api/v1/fixes", json={
        "longitude": 13.4, "latitude": 52.5205, "timestamp_ms": 2_000, "speed_mps": 1.0
    })

    assert first.json() == {"outcome": "blob", "buffer_radius_m": 15.0}
    assert second.json() == {"outcome": "corridor", "buffer_radius_m": 40.0}


def test_invalid_latitude_rejected(client):
    response = client.post("/api/v1/fixes", json={"longitude": 0, "latitude": 95, "timestamp_ms": 0})

    assert response.status_code == 422
    assert response.json()["detail"]


def test_batch_and_statistics(client):
    response = client.post("/api/v1/fixes/batch", json={"fixes": [
        {"longitude": 0.0, "latitude": 0.0, "timestamp_ms": 0},
        {"longitude": 0.0, "latitude": 0.0005, "timestamp_ms": 2_000},
        {"longitude": 0.0, "latitude": 0.01, "timestamp_ms": 90_000},
    ]})

    assert response.status_code == 200
    assert response.json()["received"] == 3
    assert response.json()["outcomes"]["tunnel"] == 1

    stats = client.get("/api/v1/statistics").json()
    assert stats["component_count"] == 2
    assert stats["tunnel_segment_count"] == 1
    assert stats["area_m2"] > 0

    tunnels = client.get("/api/v1/tunnels").json()
    assert len(tunnels["features"]) == 1


def test_fog_polygon(client):
    assert len(client.get("/api/v1/fog").json()["coordinates"]) == 1

    post_walk(client)

    fog = client.get("/api/v1/fog").json()
    assert fog["type"] == "Polygon"
    assert len(fog["coordinates"]) == 2

    explored = client.get("/api/v1/explored").json()
    assert explored["type"] == "MultiPolygon"


def test_rebuild_and_reset(client):
    fixes = [
        {"longitude": 0.0, "latitude": i * 0.0005, "timestamp_ms": i * 2_000}
        for i in range(10)
    ]
    summary = client.post("/api/v1/rebuild", json={"fixes": fixes}).json()

    assert summary == {
        "fixes_received": 10,
        "fixes_replayed": 10,
        "fixes_rejected": 0,
        "downsample_step": 1
    }

    assert client.post("/api/v1/reset").status_code == 200
    assert client.get("/api/v1/statistics").json()["area_m2"] == 0.0


def test_snapshot(client, tmp_path):
    post_walk(client)

    response = client.post("/api/v1/snapshot")

    assert response.status_code == 200
    assert response.json()["saved"] is True
    assert (tmp_path / "explored.wkb").exists()


def test_export_kml(client):
    post_walk(client)

    response = client.get("/api/v1/export-kml")

    assert response.status_code == 200
    assert "kml" in response.headers["content-type"]
    assert b"Explored Area" in response.content


def test_snapshot_status_fresh_start(client, tmp_path):
    """Test a missing snapshot is reported as needing a rebuild."""
    status = client.get("/api/v1/snapshot").json()

    assert status["path"] == str(tmp_path / "explored.wkb")
    assert status["needs_rebuild"] is True
    assert status["rebuild_in_progress"] is False
    assert client.get("/health").json()["needs_rebuild"] is True


def test_corrupt_snapshot_reported_until_rebuild(tmp_path, monkeypatch):
    """Test a corrupt snapshot surfaces in /health and clears after rebuild."""
    (tmp_path / "explored.wkb").write_bytes(b"\x01\x03garbage")
    monkeypatch.setenv("EXPLORER_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("EXPLORER_AUTOSAVE_INTERVAL_S", "60")

    with TestClient(app) as client:
        status = client.get("/api/v1/snapshot").json()
        assert status["exists"] is True
        assert status["needs_rebuild"] is True
        assert status["error"]
        assert client.get("/health").json()["needs_rebuild"] is True

        fixes = [
            {"longitude": 0.0, "latitude": i * 0.0005, "timestamp_ms": i * 2_000}
            for i in range(5)
        ]
        assert client.post("/api/v1/rebuild", json={"fixes": fixes}).status_code == 200

        status = client.get("/api/v1/snapshot").json()
        assert status["needs_rebuild"] is False
        assert status["error"] is None
        assert client.get("/health").json()["needs_rebuild"] is False

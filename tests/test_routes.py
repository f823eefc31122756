"""
Focus Timer -- HTTP API Tests
Flask endpoints through app.test_client() with an injected monitor.
"""

import pytest

from focustimer import create_app
from focustimer.engine import Monitor


@pytest.fixture
def monitor(storage, clock):
    return Monitor(storage, clock=clock)


@pytest.fixture
def client(monitor):
    app = create_app(monitor=monitor)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
    monitor.shutdown()


def test_status(client):
    resp = client.get("/api/status")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["timer"]["phase"] == "idle"
    assert data["gate"]["phase"] == "idle"
    assert data["detecting"] is False
    assert data["version"]


def test_start_requires_task(client):
    resp = client.post("/api/timer/start", json={})
    assert resp.status_code == 400
    assert resp.get_json()["ok"] is False


def test_timer_round_trip(client, clock):
    resp = client.post("/api/timer/start", json={"task_id": "Study"})
    assert resp.get_json()["timer"]["phase"] == "running"

    clock.advance(3000)
    resp = client.post("/api/timer/pause")
    body = resp.get_json()
    assert body["ok"] is True
    assert body["timer"]["elapsed_ms"] == 3000
    assert body["timer"]["elapsed"] == "00:00:03"

    assert client.post("/api/timer/pause").get_json()["ok"] is False
    assert client.post("/api/timer/resume").get_json()["timer"]["phase"] == "running"

    clock.advance(1000)
    body = client.post("/api/timer/stop").get_json()
    assert body["ok"] is True
    assert body["timer"]["phase"] == "idle"

    tasks = client.get("/api/tasks").get_json()
    assert tasks["task_times"] == {"Study": 4000}

    stats = client.get("/api/stats").get_json()
    assert stats["sessions"][0]["task_id"] == "Study"


def test_reset(client, clock):
    client.post("/api/timer/start", json={"task_id": "Study"})
    clock.advance(2000)
    body = client.post("/api/timer/reset").get_json()
    assert body["timer"]["phase"] == "idle"
    assert client.get("/api/tasks").get_json()["task_times"] == {}


def test_select_task(client):
    body = client.post("/api/tasks/select", json={"task_id": "Read"}).get_json()
    assert body["timer"]["selected_task_id"] == "Read"
    assert body["timer"]["phase"] == "idle"


def test_camera_mode_toggle(client):
    body = client.post("/api/camera", json={"enabled": True}).get_json()
    assert body["detecting"] is True
    assert body["gate"]["phase"] == "waiting_for_face"

    body = client.post("/api/camera", json={"enabled": False}).get_json()
    assert body["detecting"] is False
    assert body["gate"]["phase"] == "idle"


def test_detection_endpoints(client):
    assert client.post("/api/detection/start").get_json()["detecting"] is True
    assert client.post("/api/detection/start").get_json()["detecting"] is True
    assert client.post("/api/detection/stop").get_json()["detecting"] is False


def test_pauses_and_stats(client, storage):
    storage.log_pause("FACE_LOST", task_id="Study")
    pauses = client.get("/api/pauses?limit=5").get_json()
    assert pauses[0]["reason"] == "FACE_LOST"
    stats = client.get("/api/stats").get_json()
    assert "total" in stats

import pytest
from fastapi.testclient import TestClient

from tracker.main import app
from tracker.services.context import Tracker
from tracker.services.store import FlatStore


@pytest.fixture()
def client(tmp_path, queue, remote, settings):
    app.state.tracker = Tracker(FlatStore(tmp_path / "tracker.json"), queue, remote, settings)
    with TestClient(app) as c:
        yield c
    del app.state.tracker


def _start(client, name="Maple Hill", holes=3, **extra):
    resp = client.post("/api/v1/rounds", json={"course_name": name, "hole_count": holes, **extra})
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_round_flow(client):
    data = _start(client)
    assert data["state"] == "configuring"
    assert data["hole_count"] == 3
    assert data["current"]["throws"] == 3
    assert data["current"]["editable_setup"] is True

    for throws, par in [(3, 3), (4, 3)]:
        resp = client.post("/api/v1/rounds/current/submit", json={"throws": throws, "par": par})
        assert resp.status_code == 200
        assert resp.json()["completed"] is False

    resp = client.post(
        "/api/v1/rounds/current/submit", json={"throws": "3", "putts": "1", "par": 4, "distance": 310}
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["completed"] is True
    assert body["round"]["state"] == "completed"
    assert body["round"]["current"] is None
    assert [h["throws"] for h in body["round"]["scorecard"]] == [3, 4, 3]

    summary = client.get("/api/v1/rounds/current/summary").json()
    assert summary["round"]["total_score"] == 10
    assert summary["round"]["total_par"] == 10
    assert summary["relative_to_par"] == "E"
    assert summary["synced"] is True

    rounds = client.get("/api/v1/rounds").json()
    assert len(rounds) == 1
    assert rounds[0]["completed"] is True

    course_id = data["course_id"]
    assert len(client.get("/api/v1/rounds", params={"course_id": course_id}).json()) == 1
    assert client.get("/api/v1/rounds", params={"course_id": "other"}).json() == []


def test_submit_validation_errors(client):
    _start(client)

    resp = client.post("/api/v1/rounds/current/submit", json={"throws": 3, "approaches": 2, "putts": 1})
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["ok"] is False
    assert detail["errors"][0]["field"] == "consistency"
    assert detail["round"]["current_index"] == 0

    resp = client.post("/api/v1/rounds/current/submit", json={"throws": ""})
    assert resp.status_code == 422
    assert resp.json()["detail"]["errors"] == [
        {"field": "throws", "message": "Throws must be at least 1"}
    ]


def test_create_round_validation(client):
    resp = client.post("/api/v1/rounds", json={"course_name": "Bad <name>", "hole_count": 0})
    assert resp.status_code == 422
    fields = [e["field"] for e in resp.json()["detail"]["errors"]]
    assert fields == ["course_name", "hole_count"]

    resp = client.post("/api/v1/rounds", json={})
    assert resp.status_code == 400


def test_second_round_conflict(client):
    first = _start(client)
    client.post("/api/v1/rounds/current/submit", json={"throws": 3})

    resp = client.post("/api/v1/rounds", json={"course_name": "Pine Loop", "hole_count": 9})
    assert resp.status_code == 409
    detail = resp.json()["detail"]
    assert detail["round_id"] == first["round_id"]
    assert detail["course_name"] == "Maple Hill"
    assert detail["holes_recorded"] == 1

    second = _start(client, name="Pine Loop", holes=9, discard_incomplete=True)
    assert second["round_id"] != first["round_id"]


def test_enter_and_navigate(client):
    _start(client)

    resp = client.post("/api/v1/rounds/current/enter", json={"index": 0})
    assert resp.status_code == 200
    assert resp.json()["current_index"] == 0
    assert resp.json()["state"] == "scoring"
    assert client.post("/api/v1/rounds/current/enter", json={"index": 2}).status_code == 409

    for throws in (3, 4):
        client.post("/api/v1/rounds/current/submit", json={"throws": throws})
    resp = client.post("/api/v1/rounds/current/enter", json={"index": 2})
    assert resp.json()["current_index"] == 2

    resp = client.post("/api/v1/rounds/current/navigate", json={"delta": -1})
    assert resp.json()["current_index"] == 1

    assert client.post("/api/v1/rounds/current/navigate", json={"delta": 1}).status_code == 409
    assert client.post("/api/v1/rounds/current/enter", json={"index": 5}).status_code == 409


def test_resume_and_abandon(client):
    assert client.get("/api/v1/rounds/current").status_code == 404
    assert client.post("/api/v1/rounds/current/resume").status_code == 404
    assert client.delete("/api/v1/rounds/current").status_code == 404

    started = _start(client)
    resumed = client.post("/api/v1/rounds/current/resume")
    assert resumed.status_code == 200
    assert resumed.json()["round_id"] == started["round_id"]

    assert client.delete("/api/v1/rounds/current").status_code == 204
    assert client.get("/api/v1/rounds/current").status_code == 404


def test_summary_before_completion(client):
    _start(client)
    assert client.get("/api/v1/rounds/current/summary").status_code == 409


def test_existing_course_rejects_hole_setup(client):
    data = _start(client, holes=1)
    client.post("/api/v1/rounds/current/submit", json={"throws": 3})

    resp = client.post("/api/v1/rounds", json={"course_id": data["course_id"]})
    assert resp.status_code == 201
    assert resp.json()["is_new_course"] is False

    resp = client.post("/api/v1/rounds/current/submit", json={"throws": 3, "par": 4})
    assert resp.status_code == 409

    resp = client.post("/api/v1/rounds", json={"course_id": "unknown", "discard_incomplete": True})
    assert resp.status_code == 404

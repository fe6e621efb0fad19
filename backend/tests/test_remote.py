import io
import json
import urllib.error
from datetime import datetime, timezone

import pytest

from tracker.core.errors import SyncError
from tracker.schemas import (
    COURSES,
    HOLES,
    ROUNDS,
    SCORES,
    Course,
    Hole,
    OperationKind,
    PendingOperation,
    Round,
    Score,
)
from tracker.services import remote as remote_module
from tracker.services.remote import HttpGateway, decode_row, decode_rows, encode_row, encode_value


def test_encode_value():
    assert encode_value(True) == "TRUE"
    assert encode_value(False) == "FALSE"
    assert encode_value(None) == ""
    assert encode_value(18) == "18"
    assert encode_value(datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)) == "2024-06-01T09:00:00+00:00"


def test_encode_row_uses_remote_column_order():
    rnd = Round(round_id="r1", course_id="c1", completed=True, total_score=54, total_par=54)
    row = encode_row(ROUNDS, rnd)
    assert list(row) == ["round_id", "course_id", "round_date", "completed", "total_score", "total_par"]
    assert row["completed"] == "TRUE"
    assert all(isinstance(v, str) for v in row.values())


def test_decode_restores_types():
    rnd = decode_row(
        ROUNDS,
        {
            "round_id": "r1",
            "course_id": "c1",
            "round_date": "2024-06-01T09:00:00+00:00",
            "completed": "FALSE",
            "total_score": "",
            "total_par": "54",
        },
    )
    assert rnd.completed is False
    assert rnd.total_score is None
    assert rnd.total_par == 54
    assert rnd.round_date.tzinfo is not None


def test_decode_empty_cells_fall_back_to_defaults():
    hole = decode_row(HOLES, {"hole_id": "h1", "course_id": "c1", "hole_number": "4", "par": "", "distance": ""})
    assert hole.par == 3
    assert hole.distance is None

    course = decode_row(COURSES, {"course_id": "c1", "course_name": "Maple Hill", "hole_count": ""})
    assert course.hole_count == 18


def test_decode_skips_malformed_rows():
    rows = [
        {"score_id": "s1", "round_id": "r1", "hole_id": "h1", "hole_number": "1", "throws": "3"},
        {"score_id": "s2", "round_id": "r1", "hole_id": "h2", "hole_number": "2", "throws": "lots"},
    ]
    scores = decode_rows(SCORES, rows)
    assert [s.score_id for s in scores] == ["s1"]


def test_codec_round_trips_booleans_and_empties():
    course = Course(course_id="c1", course_name="Maple Hill", hole_count=9)
    assert decode_row(COURSES, encode_row(COURSES, course)) == course

    rnd = Round(round_id="r1", course_id="c1", completed=True)
    assert decode_row(ROUNDS, encode_row(ROUNDS, rnd)) == rnd


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@pytest.fixture()
def urlopen(monkeypatch):
    calls = []
    replies = []

    def fake_urlopen(req, timeout=None):
        calls.append(req)
        reply = replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return _Response(json.dumps(reply).encode("utf-8") if reply is not None else b"")

    monkeypatch.setattr(remote_module.urllib.request, "urlopen", fake_urlopen)
    return calls, replies


def test_http_gateway_create_row(urlopen):
    calls, replies = urlopen
    replies.append({"rowIndex": 4})

    gateway = HttpGateway("http://remote.test/api/", timeout=3)
    assert gateway.create_row("Rounds", {"round_id": "r1"}) == {"rowIndex": 4}

    req = calls[0]
    assert req.get_method() == "POST"
    assert req.full_url == "http://remote.test/api/collections/Rounds/rows"
    assert json.loads(req.data) == {"fields": {"round_id": "r1"}}


def test_http_gateway_health_check(urlopen):
    _, replies = urlopen
    replies.extend([{"status": "ok"}, {"status": "degraded"}])

    gateway = HttpGateway("http://remote.test")
    assert gateway.health_check() is True
    assert gateway.health_check() is False


def test_http_gateway_errors_become_sync_errors(urlopen):
    _, replies = urlopen
    replies.append(urllib.error.URLError("connection refused"))
    replies.append(
        urllib.error.HTTPError("http://remote.test/collections", 500, "boom", {}, None)
    )

    gateway = HttpGateway("http://remote.test")
    with pytest.raises(SyncError):
        gateway.list_collections()
    with pytest.raises(SyncError, match="HTTP 500"):
        gateway.list_collections()


def test_remote_sync_wraps_gateway_failures(remote, gateway):
    gateway.online = False
    with pytest.raises(SyncError):
        remote.save_round(Round(course_id="c1"))
    assert remote.is_online() is False


def test_ensure_collections_creates_missing(remote, gateway):
    gateway.collections["Courses"] = []
    created = remote.ensure_collections()
    assert created == ["Holes", "Rounds", "Scores"]
    assert remote.ensure_collections() == []


def test_update_round_upserts(remote, gateway):
    rnd = Round(round_id="r1", course_id="c1")
    remote.update_round(rnd)
    assert len(gateway.collections["Rounds"]) == 1

    remote.update_round(rnd.model_copy(update={"completed": True, "total_score": 30}))
    rows = gateway.collections["Rounds"]
    assert len(rows) == 1
    assert rows[0]["completed"] == "TRUE"
    assert rows[0]["total_score"] == "30"


def test_update_course_last_played(remote, gateway):
    remote.save_course(Course(course_id="c1", course_name="Maple Hill"))
    played_at = datetime(2024, 6, 1, tzinfo=timezone.utc)

    remote.update_course_last_played("c1", played_at)
    assert gateway.collections["Courses"][0]["last_played"] == played_at.isoformat()

    with pytest.raises(SyncError):
        remote.update_course_last_played("missing", played_at)


def test_apply_dispatches_on_kind(remote, gateway):
    holes = [Hole(course_id="c1", hole_number=n).model_dump(mode="json") for n in (1, 2)]
    remote.apply(PendingOperation(kind=OperationKind.CREATE_HOLES, payload=holes))
    assert [r["hole_number"] for r in gateway.collections["Holes"]] == ["1", "2"]


def test_pull_replaces_local_collections(remote, gateway, flat_store):
    flat_store.put(COURSES, Course(course_name="Local Only"))
    remote.save_course(Course(course_id="c1", course_name="Maple Hill"))
    remote.save_holes([Hole(course_id="c1", hole_number=1, par=4)])

    counts = remote.pull(flat_store)

    assert counts == {COURSES: 1, HOLES: 1, ROUNDS: 0, SCORES: 0}
    assert [c.course_name for c in flat_store.get_all(COURSES)] == ["Maple Hill"]
    assert flat_store.get_all(HOLES)[0].par == 4


def test_pull_keeps_local_records_behind_bad_rows(remote, gateway, flat_store):
    kept = Score(score_id="s1", round_id="r1", hole_id="h1", hole_number=1, throws=3)
    changed = Score(score_id="s2", round_id="r1", hole_id="h2", hole_number=2, throws=4)
    flat_store.put_many(SCORES, [kept, changed])

    bad = encode_row(SCORES, kept)
    bad["throws"] = "three"
    gateway.collections["Scores"] = [
        bad,
        encode_row(SCORES, changed.model_copy(update={"throws": 5})),
        encode_row(SCORES, Score(score_id="s3", round_id="r1", hole_id="h3", hole_number=3, throws=2)),
    ]

    counts = remote.pull(flat_store)

    assert counts[SCORES] == 2
    by_id = {s.score_id: s.throws for s in flat_store.get_all(SCORES)}
    assert by_id == {"s1": 3, "s2": 5, "s3": 2}

"""Remote row store boundary.

The remote side only knows named collections of flat string rows. This module
owns the translation between typed records and those rows ("TRUE"/"FALSE" for
booleans, "" for missing values, ISO 8601 for datetimes) so string typing never
leaks into the rest of the tracker.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel
from pydantic import ValidationError as RecordValidationError

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
from tracker.services.store import RecordStore

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    def list_collections(self) -> list[dict[str, str]]: ...

    def create_collection(self, name: str) -> None: ...

    def get_rows(self, name: str) -> list[dict[str, str]]: ...

    def create_row(self, name: str, fields: dict[str, str]) -> dict[str, int]: ...

    def update_row(self, name: str, row_index: int, fields: dict[str, str]) -> None: ...

    def delete_row(self, name: str, row_index: int) -> None: ...

    def health_check(self) -> bool: ...


class HttpGateway:
    """JSON-over-HTTP gateway to the remote row service."""

    def __init__(self, base_url: str, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, body: Any = None) -> Any:
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(
            f"{self.base_url}{path}",
            data=data,
            method=method,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            raise SyncError(f"{method} {path} failed with HTTP {exc.code}") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise SyncError(f"{method} {path} failed: {exc}") from exc

        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise SyncError(f"{method} {path} returned invalid JSON") from exc

    @staticmethod
    def _collection_path(name: str) -> str:
        return f"/collections/{urllib.parse.quote(name, safe='')}"

    def list_collections(self) -> list[dict[str, str]]:
        return self._request("GET", "/collections") or []

    def create_collection(self, name: str) -> None:
        self._request("POST", "/collections", {"name": name})

    def get_rows(self, name: str) -> list[dict[str, str]]:
        return self._request("GET", f"{self._collection_path(name)}/rows") or []

    def create_row(self, name: str, fields: dict[str, str]) -> dict[str, int]:
        return self._request("POST", f"{self._collection_path(name)}/rows", {"fields": fields})

    def update_row(self, name: str, row_index: int, fields: dict[str, str]) -> None:
        self._request(
            "PUT", f"{self._collection_path(name)}/rows/{row_index}", {"fields": fields}
        )

    def delete_row(self, name: str, row_index: int) -> None:
        self._request("DELETE", f"{self._collection_path(name)}/rows/{row_index}")

    def health_check(self) -> bool:
        body = self._request("GET", "/health")
        return bool(body) and body.get("status") == "ok"


# Remote collection names and column order per local collection.
REMOTE_COLLECTIONS: dict[str, str] = {
    COURSES: "Courses",
    HOLES: "Holes",
    ROUNDS: "Rounds",
    SCORES: "Scores",
}

REMOTE_HEADERS: dict[str, list[str]] = {
    COURSES: ["course_id", "course_name", "hole_count", "created_date", "last_played"],
    HOLES: ["hole_id", "course_id", "hole_number", "par", "distance"],
    ROUNDS: ["round_id", "course_id", "round_date", "completed", "total_score", "total_par"],
    SCORES: [
        "score_id",
        "round_id",
        "hole_id",
        "hole_number",
        "throws",
        "approaches",
        "putts",
        "created_at",
    ],
}

_MODELS: dict[str, type[BaseModel]] = {COURSES: Course, HOLES: Hole, ROUNDS: Round, SCORES: Score}


def encode_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def encode_row(name: str, record: BaseModel) -> dict[str, str]:
    return {h: encode_value(getattr(record, h, None)) for h in REMOTE_HEADERS[name]}


def decode_row(name: str, row: dict[str, str]) -> BaseModel | None:
    """Typed record from a remote row, or None if the row is unusable.

    Empty cells are dropped so model defaults apply (par 3, 18 holes).
    """
    model = _MODELS[name]
    data: dict[str, Any] = {}
    for header in REMOTE_HEADERS[name]:
        raw = (row.get(header) or "").strip()
        if model.model_fields[header].annotation is bool:
            data[header] = raw == "TRUE"
        elif raw:
            data[header] = raw
    try:
        return model.model_validate(data)
    except RecordValidationError:
        logger.warning("Skipping malformed %s row: %r", REMOTE_COLLECTIONS[name], row)
        return None


def decode_rows(name: str, rows: list[dict[str, str]]) -> list[BaseModel]:
    records = (decode_row(name, r) for r in rows)
    return [r for r in records if r is not None]


class RemoteSync:
    """Collection-level writes against a gateway.

    Every gateway failure, whatever the transport raised, surfaces as
    ``SyncError``.
    """

    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    def _call(self, fn, *args):
        try:
            return fn(*args)
        except SyncError:
            raise
        except Exception as exc:
            raise SyncError(f"{getattr(fn, '__name__', fn)} failed: {exc}") from exc

    def is_online(self) -> bool:
        try:
            return bool(self._call(self.gateway.health_check))
        except SyncError as exc:
            logger.info("Remote unreachable: %s", exc)
            return False

    def ensure_collections(self) -> list[str]:
        existing = {c.get("name") for c in self._call(self.gateway.list_collections)}
        created = []
        for remote_name in REMOTE_COLLECTIONS.values():
            if remote_name not in existing:
                self._call(self.gateway.create_collection, remote_name)
                created.append(remote_name)
        if created:
            logger.info("Created remote collections: %s", ", ".join(created))
        return created

    def _append(self, name: str, records: list[BaseModel]) -> None:
        remote_name = REMOTE_COLLECTIONS[name]
        for record in records:
            self._call(self.gateway.create_row, remote_name, encode_row(name, record))

    def _find_row(self, name: str, key: str, value: str) -> int | None:
        rows = self._call(self.gateway.get_rows, REMOTE_COLLECTIONS[name])
        for index, row in enumerate(rows):
            if row.get(key) == value:
                return index
        return None

    def save_course(self, course: Course) -> None:
        self._append(COURSES, [course])

    def save_holes(self, holes: list[Hole]) -> None:
        self._append(HOLES, holes)

    def save_round(self, rnd: Round) -> None:
        self._append(ROUNDS, [rnd])

    def update_round(self, rnd: Round) -> None:
        index = self._find_row(ROUNDS, "round_id", rnd.round_id)
        if index is None:
            self._append(ROUNDS, [rnd])
            return
        self._call(self.gateway.update_row, REMOTE_COLLECTIONS[ROUNDS], index, encode_row(ROUNDS, rnd))

    def save_scores(self, scores: list[Score]) -> None:
        self._append(SCORES, scores)

    def update_course_last_played(self, course_id: str, played_at: datetime) -> None:
        remote_name = REMOTE_COLLECTIONS[COURSES]
        rows = self._call(self.gateway.get_rows, remote_name)
        for index, row in enumerate(rows):
            if row.get("course_id") == course_id:
                fields = dict(row)
                fields["last_played"] = encode_value(played_at)
                self._call(self.gateway.update_row, remote_name, index, fields)
                return
        # Retried later: the course row may still be queued behind this one.
        raise SyncError(f"Course {course_id} not found remotely")

    def apply(self, op: PendingOperation) -> None:
        payload = op.payload
        if op.kind == OperationKind.CREATE_COURSE:
            self.save_course(Course.model_validate(payload))
        elif op.kind == OperationKind.CREATE_HOLES:
            self.save_holes([Hole.model_validate(h) for h in payload])
        elif op.kind == OperationKind.CREATE_ROUND:
            self.save_round(Round.model_validate(payload))
        elif op.kind == OperationKind.UPDATE_ROUND:
            self.update_round(Round.model_validate(payload))
        elif op.kind == OperationKind.CREATE_SCORES:
            self.save_scores([Score.model_validate(s) for s in payload])
        elif op.kind == OperationKind.UPDATE_COURSE_LAST_PLAYED:
            self.update_course_last_played(
                payload["course_id"], datetime.fromisoformat(payload["played_at"])
            )
        else:
            raise ValueError(f"Unknown operation kind: {op.kind}")

    def pull(self, store: RecordStore) -> dict[str, int]:
        """Copy every remote collection into the local store.

        A collection with undecodable rows is merged record by record, so a
        flat store keeps the local copies of the rows that were skipped.
        """
        fetched = {}
        for name, remote_name in REMOTE_COLLECTIONS.items():
            rows = self._call(self.gateway.get_rows, remote_name)
            records = decode_rows(name, rows)
            fetched[name] = (records, len(records) == len(rows))

        counts = {}
        for name, (records, clean) in fetched.items():
            if clean:
                store.put_many(name, records)
            else:
                logger.warning("Merging %s instead of replacing: remote has bad rows", name)
                with store.locked():
                    for record in records:
                        store.put(name, record)
            counts[name] = len(records)
        logger.info("Pulled remote data: %s", counts)
        return counts

"""Local record storage.

Two interchangeable backends sit behind ``RecordStore``: ``IndexedStore``
(SQLAlchemy over SQLite, secondary indexes for the lookups the round flow
needs) and ``FlatStore`` (one JSON document on disk, linear scans). The
backend is picked once by ``open_store`` and never changes afterwards.

Backend failures are logged and turned into empty results. The tracker must
keep working offline and with a damaged database; callers decide whether a
missing result matters.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as RecordValidationError
from sqlalchemy import Engine, delete, select, text
from sqlalchemy.exc import SQLAlchemyError

from tracker.core.errors import StorageError
from tracker.core.settings import Settings
from tracker.db.base import Base
from tracker.db.session import create_store_engine, make_session_factory
from tracker.db.types import UTCDateTime
from tracker.models import (
    CourseRow,
    HoleRow,
    PendingOperationRow,
    RoundRow,
    RoundSnapshotRow,
    ScoreRow,
)
from tracker.schemas import (
    COURSES,
    HOLES,
    PENDING_OPERATIONS,
    ROUND_SNAPSHOTS,
    ROUNDS,
    SCORES,
    collection,
)

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    backend: str
    _lock: threading.RLock

    def locked(self) -> threading.RLock:
        """Lock to hold across a read-modify-write that spans several calls."""
        return self._lock

    @abstractmethod
    def get_all(self, name: str) -> list[BaseModel]: ...

    @abstractmethod
    def get_by_id(self, name: str, record_id: str) -> BaseModel | None: ...

    @abstractmethod
    def get_by_field(self, name: str, field: str, value: Any) -> list[BaseModel]: ...

    @abstractmethod
    def put(self, name: str, record: BaseModel) -> bool: ...

    @abstractmethod
    def put_many(self, name: str, records: Iterable[BaseModel]) -> bool: ...

    @abstractmethod
    def remove(self, name: str, record_id: str) -> bool: ...

    @abstractmethod
    def clear(self, name: str) -> bool: ...

    def close(self) -> None:
        pass


_path_locks: dict[str, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def _path_lock(path: Path) -> threading.RLock:
    """One lock per file, shared by every FlatStore over that path."""
    key = str(path.resolve())
    with _path_locks_guard:
        return _path_locks.setdefault(key, threading.RLock())


def _check_field(name: str, field: str) -> None:
    if field not in collection(name).model.model_fields:
        raise KeyError(f"{name} has no field {field!r}")


class IndexedStore(RecordStore):
    backend = "indexed"

    _ROWS: dict[str, type[Base]] = {
        COURSES: CourseRow,
        HOLES: HoleRow,
        ROUNDS: RoundRow,
        SCORES: ScoreRow,
        PENDING_OPERATIONS: PendingOperationRow,
        ROUND_SNAPSHOTS: RoundSnapshotRow,
    }

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session = make_session_factory(engine)
        self._lock = threading.RLock()

    @classmethod
    def connect(cls, database_url: str) -> "IndexedStore":
        engine = create_store_engine(database_url)
        Base.metadata.create_all(bind=engine)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return cls(engine)

    def _row_class(self, name: str) -> type[Base]:
        collection(name)
        return self._ROWS[name]

    def _to_row(self, name: str, record: BaseModel) -> Base:
        row_cls = self._row_class(name)
        python = record.model_dump()
        jsonish = record.model_dump(mode="json")
        values = {}
        for column in row_cls.__table__.columns:
            if isinstance(column.type, UTCDateTime):
                values[column.key] = python[column.key]
            else:
                values[column.key] = jsonish[column.key]
        return row_cls(**values)

    def _to_record(self, name: str, row: Base) -> BaseModel | None:
        model = collection(name).model
        data = {c.key: getattr(row, c.key) for c in row.__table__.columns}
        try:
            return model.model_validate(data)
        except RecordValidationError:
            logger.error("Skipping unreadable %s row %s", name, data.get(collection(name).key))
            return None

    def _records(self, name: str, rows: Sequence[Base]) -> list[BaseModel]:
        records = (self._to_record(name, r) for r in rows)
        return [r for r in records if r is not None]

    def get_all(self, name: str) -> list[BaseModel]:
        row_cls = self._row_class(name)
        try:
            with self._session() as db:
                rows = db.execute(select(row_cls)).scalars().all()
                return self._records(name, rows)
        except SQLAlchemyError:
            logger.exception("get_all(%s) failed", name)
            return []

    def get_by_id(self, name: str, record_id: str) -> BaseModel | None:
        row_cls = self._row_class(name)
        try:
            with self._session() as db:
                row = db.get(row_cls, record_id)
                return self._to_record(name, row) if row is not None else None
        except SQLAlchemyError:
            logger.exception("get_by_id(%s, %s) failed", name, record_id)
            return None

    def get_by_field(self, name: str, field: str, value: Any) -> list[BaseModel]:
        row_cls = self._row_class(name)
        _check_field(name, field)
        column = row_cls.__table__.columns[field]
        try:
            with self._session() as db:
                rows = db.execute(select(row_cls).where(column == value)).scalars().all()
                return self._records(name, rows)
        except SQLAlchemyError:
            logger.exception("get_by_field(%s, %s) failed", name, field)
            return []

    def put(self, name: str, record: BaseModel) -> bool:
        return self.put_many(name, [record])

    def put_many(self, name: str, records: Iterable[BaseModel]) -> bool:
        rows = [self._to_row(name, r) for r in records]
        try:
            with self._session() as db:
                for row in rows:
                    db.merge(row)
                db.commit()
            return True
        except SQLAlchemyError:
            logger.exception("put_many(%s) failed", name)
            return False

    def remove(self, name: str, record_id: str) -> bool:
        row_cls = self._row_class(name)
        try:
            with self._session() as db:
                row = db.get(row_cls, record_id)
                if row is not None:
                    db.delete(row)
                    db.commit()
            return True
        except SQLAlchemyError:
            logger.exception("remove(%s, %s) failed", name, record_id)
            return False

    def clear(self, name: str) -> bool:
        row_cls = self._row_class(name)
        try:
            with self._session() as db:
                db.execute(delete(row_cls))
                db.commit()
            return True
        except SQLAlchemyError:
            logger.exception("clear(%s) failed", name)
            return False

    def close(self) -> None:
        self.engine.dispose()


class FlatStore(RecordStore):
    """Key-value fallback: ``{collection: [record, ...]}`` in one JSON file.

    Every call re-reads the file, so several instances over the same path
    (the round store and the operation queue share it) stay consistent.
    Read-modify-write cycles hold a lock shared by every instance over the
    same path, so the sync worker and request threads cannot drop each
    other's writes.
    ``put_many`` replaces the whole collection: without per-record indexes
    the caller's list is taken as the authoritative full set.
    """

    backend = "flat"

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = _path_lock(self.path)

    def _load(self) -> dict[str, list[dict]]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text("utf-8") or "{}")
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _save(self, data: dict[str, list[dict]]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".tracker-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    def _items(self, name: str) -> list[dict]:
        collection(name)
        try:
            return list(self._load().get(name) or [])
        except StorageError:
            logger.exception("reading %s failed", name)
            return []

    def _write(self, name: str, items: list[dict]) -> bool:
        try:
            with self._lock:
                data = self._load()
                data[name] = items
                self._save(data)
            return True
        except StorageError:
            logger.exception("writing %s failed", name)
            return False

    def _parse(self, name: str, items: Iterable[dict]) -> list[BaseModel]:
        model = collection(name).model
        records = []
        for item in items:
            try:
                records.append(model.model_validate(item))
            except RecordValidationError:
                logger.error("Skipping unreadable %s entry %r", name, item)
        return records

    def get_all(self, name: str) -> list[BaseModel]:
        return self._parse(name, self._items(name))

    def get_by_id(self, name: str, record_id: str) -> BaseModel | None:
        key = collection(name).key
        found = self._parse(name, [i for i in self._items(name) if i.get(key) == record_id])
        return found[0] if found else None

    def get_by_field(self, name: str, field: str, value: Any) -> list[BaseModel]:
        _check_field(name, field)
        return [r for r in self.get_all(name) if getattr(r, field) == value]

    def put(self, name: str, record: BaseModel) -> bool:
        key = collection(name).key
        item = record.model_dump(mode="json")
        with self._lock:
            items = self._items(name)
            for i, existing in enumerate(items):
                if existing.get(key) == item[key]:
                    items[i] = item
                    break
            else:
                items.append(item)
            return self._write(name, items)

    def put_many(self, name: str, records: Iterable[BaseModel]) -> bool:
        collection(name)
        return self._write(name, [r.model_dump(mode="json") for r in records])

    def remove(self, name: str, record_id: str) -> bool:
        key = collection(name).key
        with self._lock:
            items = [i for i in self._items(name) if i.get(key) != record_id]
            return self._write(name, items)

    def clear(self, name: str) -> bool:
        collection(name)
        return self._write(name, [])


def open_store(settings: Settings) -> RecordStore:
    if settings.STORE_BACKEND == "flat":
        logger.info("Using flat store at %s", settings.FLAT_STORE_PATH)
        return FlatStore(settings.FLAT_STORE_PATH)

    try:
        store = IndexedStore.connect(settings.DATABASE_URL)
    except Exception as exc:
        logger.warning(
            "Indexed store unavailable (%s); falling back to %s", exc, settings.FLAT_STORE_PATH
        )
        return FlatStore(settings.FLAT_STORE_PATH)

    logger.info("Using indexed store at %s", settings.DATABASE_URL)
    return store

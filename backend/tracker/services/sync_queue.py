"""Pending remote mutations.

Operations are appended in order and replayed FIFO by ``drain``. Delivery is
at-least-once: an operation is only removed after the remote accepted it, and
nothing is deduplicated here.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from tracker.core.errors import StateError, SyncError
from tracker.schemas import PENDING_OPERATIONS, OperationKind, PendingOperation, utcnow
from tracker.services.remote import RemoteSync
from tracker.services.store import RecordStore

logger = logging.getLogger(__name__)


class SyncStatus(BaseModel):
    pending: int
    backed_up: bool
    online: bool | None = None
    last_drain_at: datetime | None = None
    last_drain_ok: bool | None = None
    last_error: str | None = None


class OperationQueue:
    def __init__(self, store: RecordStore, remote: RemoteSync | None = None):
        self.store = store
        self.remote = remote
        self._drain_lock = threading.Lock()
        self.last_drain_at: datetime | None = None
        self.last_drain_ok: bool | None = None
        self.last_error: str | None = None

    def list(self) -> list[PendingOperation]:
        ops = self.store.get_all(PENDING_OPERATIONS)
        return sorted(ops, key=lambda op: (op.sequence, op.enqueued_at))

    def count(self) -> int:
        return len(self.store.get_all(PENDING_OPERATIONS))

    def clear(self) -> bool:
        return self.store.clear(PENDING_OPERATIONS)

    def enqueue(self, kind: OperationKind, payload: Any) -> PendingOperation:
        with self.store.locked():
            existing = self.list()
            op = PendingOperation(
                kind=kind,
                payload=payload,
                sequence=(existing[-1].sequence + 1) if existing else 1,
                enqueued_at=utcnow(),
            )
            saved = self.store.put(PENDING_OPERATIONS, op)
        if not saved:
            logger.error("Could not persist pending %s operation %s", kind.value, op.operation_id)
        return op

    def drain(self) -> bool:
        """Replay every pending operation once, oldest first.

        Returns True only when the queue ends up empty. A failed operation
        stays queued in its original position and does not stop the pass.
        """
        if not self._drain_lock.acquire(blocking=False):
            raise StateError("A drain is already in progress")
        try:
            return self._drain()
        finally:
            self._drain_lock.release()

    def _drain(self) -> bool:
        pending = self.list()
        if not pending:
            return True
        if self.remote is None:
            self._record(False, "No remote configured")
            return False

        delivered: list[PendingOperation] = []
        failed: list[PendingOperation] = []
        last_error = None
        for op in pending:
            try:
                self.remote.apply(op)
            except SyncError as exc:
                logger.warning("Replay of %s %s failed: %s", op.kind.value, op.operation_id, exc)
                last_error = str(exc)
                failed.append(op)
            else:
                delivered.append(op)

        for op in delivered:
            self.store.remove(PENDING_OPERATIONS, op.operation_id)

        logger.info("Drained %d operation(s), %d still pending", len(delivered), len(failed))
        self._record(not failed, last_error)
        return not failed

    def _record(self, ok: bool, error: str | None) -> None:
        self.last_drain_at = utcnow()
        self.last_drain_ok = ok
        self.last_error = error

    def submit(self, operations: Iterable[tuple[OperationKind, Any]]) -> bool:
        """Send operations now if possible, queue whatever could not be sent.

        Returns True when everything reached the remote directly.
        """
        operations = list(operations)
        direct = self.remote is not None and self.count() == 0 and self.remote.is_online()

        for kind, payload in operations:
            if direct:
                try:
                    self.remote.apply(PendingOperation(kind=kind, payload=payload))
                    continue
                except SyncError as exc:
                    logger.warning("Remote %s failed, queueing for later: %s", kind.value, exc)
                    direct = False
            self.enqueue(kind, payload)

        return direct

    def status(self, check_online: bool = False) -> SyncStatus:
        pending = self.count()
        online = None
        if check_online:
            online = self.remote.is_online() if self.remote is not None else False
        return SyncStatus(
            pending=pending,
            backed_up=pending == 0,
            online=online,
            last_drain_at=self.last_drain_at,
            last_drain_ok=self.last_drain_ok,
            last_error=self.last_error,
        )

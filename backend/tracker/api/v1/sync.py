from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from tracker.api.deps import get_tracker, http_error
from tracker.core.errors import TrackerError
from tracker.schemas import PendingOperation
from tracker.services.context import SyncReport, Tracker
from tracker.services.sync_queue import SyncStatus

router = APIRouter()


class DrainOut(BaseModel):
    ok: bool
    status: SyncStatus


@router.get("/sync/status", response_model=SyncStatus)
def get_sync_status(tracker: Tracker = Depends(get_tracker)):
    return tracker.queue.status(check_online=True)


@router.get("/sync/pending", response_model=list[PendingOperation])
def list_pending(tracker: Tracker = Depends(get_tracker)):
    return tracker.queue.list()


@router.post("/sync/drain", response_model=DrainOut)
def drain(tracker: Tracker = Depends(get_tracker)):
    try:
        ok = tracker.queue.drain()
    except TrackerError as exc:
        raise http_error(exc) from exc
    return DrainOut(ok=ok, status=tracker.queue.status())


@router.post("/sync/pull", response_model=SyncReport)
def pull(tracker: Tracker = Depends(get_tracker)):
    """Replay the queue and, once it is empty, refresh from the remote."""
    try:
        report = tracker.sync(pull=True)
    except TrackerError as exc:
        raise http_error(exc) from exc
    if not report.online:
        raise HTTPException(status_code=503, detail="Remote unreachable")
    return report

from fastapi import APIRouter, Depends

from tracker.api.deps import get_tracker
from tracker.services.context import Tracker

router = APIRouter()


@router.get("/health")
def health(tracker: Tracker = Depends(get_tracker)):
    return {
        "status": "ok",
        "store": tracker.store.backend,
        "remote": tracker.remote is not None,
        "pending": tracker.queue.count(),
    }

from __future__ import annotations

from fastapi import HTTPException, Request

from tracker.core.errors import (
    IncompleteRoundError,
    NotFoundError,
    StateError,
    SyncError,
    TrackerError,
    ValidationError,
)
from tracker.services.context import Tracker


def get_tracker(request: Request) -> Tracker:
    return request.app.state.tracker


def http_error(exc: TrackerError) -> HTTPException:
    """Map a tracker error to the response the routers return for it."""
    if isinstance(exc, ValidationError):
        return HTTPException(
            status_code=422, detail={"errors": [e.model_dump() for e in exc.errors]}
        )
    if isinstance(exc, IncompleteRoundError):
        snapshot = exc.snapshot
        return HTTPException(
            status_code=409,
            detail={
                "message": str(exc),
                "round_id": snapshot.round_id,
                "course_name": snapshot.course.course_name,
                "holes_recorded": len(snapshot.scores),
            },
        )
    if isinstance(exc, StateError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SyncError):
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))

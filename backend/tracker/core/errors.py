from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel

if TYPE_CHECKING:
    from tracker.schemas import RoundSnapshot


class FieldError(BaseModel):
    field: str
    message: str


class TrackerError(Exception):
    pass


class ValidationError(TrackerError):
    """Input rejected by the entry rules; carries every failing field."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        super().__init__("; ".join(e.message for e in self.errors))


class StorageError(TrackerError):
    """A local backend operation failed. Never escapes a RecordStore."""


class SyncError(TrackerError):
    """A remote gateway call failed; the operation stays queued."""


class StateError(TrackerError):
    """An invalid transition was requested. Callers must not swallow this."""


class IncompleteRoundError(StateError):
    def __init__(self, snapshot: RoundSnapshot):
        self.snapshot = snapshot
        super().__init__(
            f"Round {snapshot.round_id} at {snapshot.course.course_name} is not finished"
        )


class NotFoundError(TrackerError):
    pass

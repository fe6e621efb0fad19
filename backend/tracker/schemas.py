from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Course(BaseModel):
    course_id: str = Field(default_factory=new_id)
    course_name: str
    hole_count: int = Field(default=18, ge=1)
    created_date: datetime = Field(default_factory=utcnow)
    last_played: datetime | None = None


class Hole(BaseModel):
    hole_id: str = Field(default_factory=new_id)
    course_id: str
    hole_number: int = Field(ge=1)
    par: int = 3
    distance: int | None = None


class Round(BaseModel):
    round_id: str = Field(default_factory=new_id)
    course_id: str
    round_date: datetime = Field(default_factory=utcnow)
    completed: bool = False
    total_score: int | None = None
    total_par: int | None = None


class Score(BaseModel):
    score_id: str = Field(default_factory=new_id)
    round_id: str
    hole_id: str
    hole_number: int = Field(ge=1)
    throws: int = Field(ge=1)
    approaches: int | None = Field(default=None, ge=0)
    putts: int | None = Field(default=None, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class OperationKind(str, Enum):
    CREATE_COURSE = "create_course"
    CREATE_HOLES = "create_holes"
    CREATE_ROUND = "create_round"
    UPDATE_ROUND = "update_round"
    CREATE_SCORES = "create_scores"
    UPDATE_COURSE_LAST_PLAYED = "update_course_last_played"


class PendingOperation(BaseModel):
    operation_id: str = Field(default_factory=new_id)
    sequence: int = 0
    kind: OperationKind
    payload: Any
    enqueued_at: datetime = Field(default_factory=utcnow)


class RoundState(str, Enum):
    CONFIGURING = "configuring"
    SCORING = "scoring"
    COMPLETED = "completed"


class RoundSnapshot(BaseModel):
    round_id: str
    course_id: str
    state: RoundState
    is_new_course: bool
    current_index: int = 0
    round_date: datetime
    course: Course
    holes: list[Hole]
    scores: list[Score] = []
    updated_at: datetime = Field(default_factory=utcnow)


COURSES = "courses"
HOLES = "holes"
ROUNDS = "rounds"
SCORES = "scores"
PENDING_OPERATIONS = "pending_operations"
ROUND_SNAPSHOTS = "round_snapshots"


@dataclass(frozen=True)
class Collection:
    name: str
    model: type[BaseModel]
    key: str


COLLECTIONS: dict[str, Collection] = {
    c.name: c
    for c in (
        Collection(COURSES, Course, "course_id"),
        Collection(HOLES, Hole, "hole_id"),
        Collection(ROUNDS, Round, "round_id"),
        Collection(SCORES, Score, "score_id"),
        Collection(PENDING_OPERATIONS, PendingOperation, "operation_id"),
        Collection(ROUND_SNAPSHOTS, RoundSnapshot, "round_id"),
    )
}


def collection(name: str) -> Collection:
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise KeyError(f"Unknown collection: {name}") from None

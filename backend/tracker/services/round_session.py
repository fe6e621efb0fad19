"""The in-progress round.

A ``RoundSession`` walks the holes of one course: ``configuring`` (brand-new
course, nothing entered yet) -> ``scoring`` -> ``completed``. After every
successful transition the whole session is written to the store as a
``RoundSnapshot`` so it can be rebuilt verbatim after an interruption.
Completed sessions are frozen; any further transition is a ``StateError``.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

from tracker.core.errors import FieldError, NotFoundError, StateError, ValidationError
from tracker.core.settings import Settings, settings as default_settings
from tracker.schemas import (
    COURSES,
    HOLES,
    ROUND_SNAPSHOTS,
    ROUNDS,
    SCORES,
    Course,
    Hole,
    OperationKind,
    Round,
    RoundSnapshot,
    RoundState,
    Score,
    new_id,
    utcnow,
)
from tracker.services import stats
from tracker.services.stats import CourseStats, HoleStats
from tracker.services.store import RecordStore
from tracker.services.sync_queue import OperationQueue
from tracker.services.validation import (
    is_blank,
    to_int,
    validate_course_name,
    validate_hole_count,
    validate_hole_setup,
    validate_score_entry,
)

logger = logging.getLogger(__name__)


class HoleDraft(BaseModel):
    index: int
    hole: Hole
    throws: int
    approaches: int | None = None
    putts: int | None = None
    recorded: bool
    editable_setup: bool
    stats: HoleStats | None = None


class SubmitResult(BaseModel):
    ok: bool
    errors: list[FieldError] = []
    completed: bool = False
    current_index: int


class RoundSummary(BaseModel):
    round: Round
    course_name: str
    totals: stats.RunningTotal
    relative_to_par: str
    comparison: stats.Comparison
    is_personal_best: bool
    highlights: stats.Highlights
    synced: bool | None = None


class RoundSession:
    def __init__(
        self,
        store: RecordStore,
        queue: OperationQueue,
        snapshot: RoundSnapshot,
        settings: Settings = default_settings,
    ):
        self.store = store
        self.queue = queue
        self.settings = settings
        self._snapshot = snapshot.model_copy(deep=True)
        # Storage iteration order says nothing about hole order.
        self._snapshot.holes.sort(key=lambda h: h.hole_number)
        self._snapshot.scores.sort(key=lambda s: s.hole_number)

        self.hole_stats: dict[str, HoleStats] = {}
        self.course_stats: CourseStats | None = None
        self.synced: bool | None = None
        if not self._snapshot.is_new_course:
            self._load_history()

    # Construction

    @classmethod
    def start_new_course(
        cls,
        store: RecordStore,
        queue: OperationQueue,
        course_name: str,
        hole_count: Any,
        settings: Settings = default_settings,
    ) -> "RoundSession":
        errors = [
            e
            for e in (
                validate_course_name(course_name, settings),
                validate_hole_count(hole_count, settings),
            )
            if e is not None
        ]
        if errors:
            raise ValidationError(errors)

        course = Course(course_name=course_name.strip(), hole_count=to_int(hole_count))
        holes = [
            Hole(course_id=course.course_id, hole_number=n, par=settings.PAR_DEFAULT)
            for n in range(1, course.hole_count + 1)
        ]
        snapshot = RoundSnapshot(
            round_id=new_id(),
            course_id=course.course_id,
            state=RoundState.CONFIGURING,
            is_new_course=True,
            round_date=utcnow(),
            course=course,
            holes=holes,
        )
        session = cls(store, queue, snapshot, settings)
        session._persist()
        logger.info("Started round %s on new course %s", session.round_id, course.course_name)
        return session

    @classmethod
    def start_existing_course(
        cls,
        store: RecordStore,
        queue: OperationQueue,
        course_id: str,
        settings: Settings = default_settings,
    ) -> "RoundSession":
        course = store.get_by_id(COURSES, course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found")
        holes = store.get_by_field(HOLES, "course_id", course_id)
        if not holes:
            raise NotFoundError(f"No holes stored for course {course_id}")

        snapshot = RoundSnapshot(
            round_id=new_id(),
            course_id=course_id,
            state=RoundState.SCORING,
            is_new_course=False,
            round_date=utcnow(),
            course=course,
            holes=holes,
        )
        session = cls(store, queue, snapshot, settings)
        session._persist()
        logger.info("Started round %s on %s", session.round_id, course.course_name)
        return session

    @classmethod
    def restore(
        cls,
        store: RecordStore,
        queue: OperationQueue,
        snapshot: RoundSnapshot,
        settings: Settings = default_settings,
    ) -> "RoundSession":
        return cls(store, queue, snapshot, settings)

    def _load_history(self) -> None:
        course_id = self._snapshot.course_id
        rounds = [
            r
            for r in self.store.get_by_field(ROUNDS, "course_id", course_id)
            if r.completed and r.round_id != self.round_id
        ]
        scores: list[Score] = []
        for rnd in rounds:
            scores.extend(self.store.get_by_field(SCORES, "round_id", rnd.round_id))

        self.hole_stats = stats.course_hole_stats(self._snapshot.holes, scores, self.settings)
        self.course_stats = stats.course_stats(rounds, scores, self._snapshot.holes)

    # State

    @property
    def round_id(self) -> str:
        return self._snapshot.round_id

    @property
    def state(self) -> RoundState:
        return self._snapshot.state

    @property
    def is_new_course(self) -> bool:
        return self._snapshot.is_new_course

    @property
    def course(self) -> Course:
        return self._snapshot.course

    @property
    def holes(self) -> list[Hole]:
        return list(self._snapshot.holes)

    @property
    def scores(self) -> list[Score]:
        return list(self._snapshot.scores)

    @property
    def hole_count(self) -> int:
        return len(self._snapshot.holes)

    @property
    def current_index(self) -> int:
        return self._snapshot.current_index

    @property
    def furthest_index(self) -> int:
        """Index of the first hole without a score; the last hole once all are in."""
        recorded = {s.hole_number for s in self._snapshot.scores}
        for index, hole in enumerate(self._snapshot.holes):
            if hole.hole_number not in recorded:
                return index
        return self.hole_count - 1

    @property
    def current_hole(self) -> Hole:
        return self._snapshot.holes[self._snapshot.current_index]

    @property
    def completed(self) -> bool:
        return self._snapshot.state == RoundState.COMPLETED

    def snapshot(self) -> RoundSnapshot:
        return self._snapshot.model_copy(deep=True)

    def score_for(self, hole_number: int) -> Score | None:
        for score in self._snapshot.scores:
            if score.hole_number == hole_number:
                return score
        return None

    def draft(self) -> HoleDraft:
        self._require_active()
        hole = self.current_hole
        score = self.score_for(hole.hole_number)
        return HoleDraft(
            index=self.current_index,
            hole=hole,
            throws=score.throws if score else hole.par,
            approaches=score.approaches if score else None,
            putts=score.putts if score else None,
            recorded=score is not None,
            editable_setup=self.is_new_course,
            stats=self.hole_stats.get(hole.hole_id),
        )

    def running_total(self) -> stats.RunningTotal:
        return stats.running_total(self._snapshot.scores, self._snapshot.holes)

    # Transitions

    def enter_hole(self, index: int) -> HoleDraft:
        self._require_active()
        if not 0 <= index < self.hole_count:
            raise StateError(f"Hole index {index} is outside 0..{self.hole_count - 1}")
        if index > self.furthest_index:
            raise StateError(
                f"Hole {self.holes[self.furthest_index].hole_number} has to be scored first"
            )
        self._snapshot.current_index = index
        self._begin_scoring()
        self._persist()
        return self.draft()

    def navigate(self, delta: int) -> HoleDraft:
        """Move back ``-delta`` holes. Forward moves go through ``submit_hole``."""
        self._require_active()
        if delta > 0:
            raise StateError("Moving forward requires submitting the current hole")
        if delta == 0:
            return self.draft()
        index = self.current_index + delta
        if index < 0:
            raise StateError(f"Cannot move before the first hole (index {index})")
        self._snapshot.current_index = index
        self._begin_scoring()
        self._persist()
        return self.draft()

    def submit_hole(
        self,
        throws: Any,
        approaches: Any = None,
        putts: Any = None,
        par: Any = None,
        distance: Any = None,
    ) -> SubmitResult:
        """Record the current hole and advance.

        Invalid input leaves the session untouched and returns the errors.
        Submitting the last hole completes the round.
        """
        self._require_active()
        if not self.is_new_course and not (is_blank(par) and is_blank(distance)):
            raise StateError("Hole setup can only be changed while defining a new course")

        errors = validate_score_entry(throws, approaches, putts, self.settings)
        errors.extend(validate_hole_setup(par, distance, self.settings))
        if errors:
            return SubmitResult(ok=False, errors=errors, current_index=self.current_index)

        hole = self.current_hole
        if not is_blank(par):
            hole.par = to_int(par)
        if not is_blank(distance):
            hole.distance = to_int(distance)

        existing = self.score_for(hole.hole_number)
        score = Score(
            score_id=existing.score_id if existing else new_id(),
            round_id=self.round_id,
            hole_id=hole.hole_id,
            hole_number=hole.hole_number,
            throws=to_int(throws),
            approaches=to_int(approaches),
            putts=to_int(putts),
        )
        if existing:
            score.created_at = existing.created_at
        scores = [s for s in self._snapshot.scores if s.hole_number != hole.hole_number]
        scores.append(score)
        scores.sort(key=lambda s: s.hole_number)
        self._snapshot.scores = scores

        if self.current_index == self.hole_count - 1:
            self._complete()
            return SubmitResult(ok=True, completed=True, current_index=self.current_index)

        self._snapshot.current_index += 1
        self._begin_scoring()
        self._persist()
        return SubmitResult(ok=True, current_index=self.current_index)

    def summary(self) -> RoundSummary:
        if not self.completed:
            raise StateError("Round is not completed yet")
        rnd = self._round_record()
        totals = self.running_total()
        return RoundSummary(
            round=rnd,
            course_name=self.course.course_name,
            totals=totals,
            relative_to_par=stats.relative_score(rnd.total_score, rnd.total_par),
            comparison=stats.compare_to_average(rnd.total_score, self.course_stats),
            is_personal_best=stats.is_personal_best(rnd.total_score, self.course_stats),
            highlights=stats.highlight_holes(
                self._snapshot.scores, self._snapshot.holes, self.hole_stats
            ),
            synced=self.synced,
        )

    # Internals

    def _require_active(self) -> None:
        if self.completed:
            raise StateError(f"Round {self.round_id} is already completed")

    def _begin_scoring(self) -> None:
        if self._snapshot.state == RoundState.CONFIGURING:
            self._snapshot.state = RoundState.SCORING

    def _persist(self) -> None:
        self._snapshot.updated_at = utcnow()
        if not self.store.put(ROUND_SNAPSHOTS, self._snapshot):
            logger.error("Could not save progress of round %s", self.round_id)

    def _round_record(self) -> Round:
        return Round(
            round_id=self.round_id,
            course_id=self._snapshot.course_id,
            round_date=self._snapshot.round_date,
            completed=self.completed,
            total_score=sum(s.throws for s in self._snapshot.scores) if self.completed else None,
            total_par=sum(h.par for h in self._snapshot.holes) if self.completed else None,
        )

    def _complete(self) -> None:
        self._snapshot.state = RoundState.COMPLETED
        rnd = self._round_record()
        played_at = rnd.round_date
        course = self._snapshot.course.model_copy(update={"last_played": played_at})
        self._snapshot.course = course

        # Local first: these writes are what guarantees nothing is lost.
        # Per-record puts, since put_many truncates on the flat backend.
        operations: list[tuple[OperationKind, Any]] = []
        if self.is_new_course:
            self.store.put(COURSES, course)
            for hole in self._snapshot.holes:
                self.store.put(HOLES, hole)
            operations.append((OperationKind.CREATE_COURSE, course.model_dump(mode="json")))
            operations.append(
                (
                    OperationKind.CREATE_HOLES,
                    [h.model_dump(mode="json") for h in self._snapshot.holes],
                )
            )
        else:
            stored = self.store.get_by_id(COURSES, course.course_id)
            if stored is not None:
                self.store.put(COURSES, stored.model_copy(update={"last_played": played_at}))

        self.store.put(ROUNDS, rnd)
        for score in self._snapshot.scores:
            self.store.put(SCORES, score)

        operations.append((OperationKind.CREATE_ROUND, rnd.model_dump(mode="json")))
        operations.append(
            (OperationKind.CREATE_SCORES, [s.model_dump(mode="json") for s in self._snapshot.scores])
        )
        operations.append(
            (
                OperationKind.UPDATE_COURSE_LAST_PLAYED,
                {"course_id": course.course_id, "played_at": played_at.isoformat()},
            )
        )
        self.synced = self.queue.submit(operations)
        self.store.remove(ROUND_SNAPSHOTS, self.round_id)

        logger.info(
            "Completed round %s: %s (par %s)%s",
            self.round_id,
            rnd.total_score,
            rnd.total_par,
            "" if self.synced else ", not yet backed up",
        )

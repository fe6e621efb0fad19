"""Wiring of store, queue, remote and the active round.

One ``Tracker`` is built at startup and shared by the API and the sync
worker. It also enforces that at most one round is in progress.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from pydantic import BaseModel

from tracker.core.errors import IncompleteRoundError, NotFoundError, StateError
from tracker.core.settings import Settings, settings as default_settings
from tracker.schemas import (
    COURSES,
    HOLES,
    ROUND_SNAPSHOTS,
    ROUNDS,
    SCORES,
    Course,
    Hole,
    Round,
    RoundSnapshot,
    RoundState,
    Score,
)
from tracker.services import stats
from tracker.services.stats import CourseStats, HoleStats
from tracker.services.remote import HttpGateway, RemoteSync
from tracker.services.round_session import RoundSession
from tracker.services.store import FlatStore, RecordStore, open_store
from tracker.services.sync_queue import OperationQueue

logger = logging.getLogger(__name__)


class SyncReport(BaseModel):
    online: bool
    drained: bool
    pending: int
    pulled: dict[str, int] | None = None


class CourseOverview(BaseModel):
    course: Course
    holes: list[Hole]
    stats: CourseStats
    hole_stats: dict[int, HoleStats]


class Tracker:
    def __init__(
        self,
        store: RecordStore,
        queue: OperationQueue,
        remote: RemoteSync | None = None,
        settings: Settings = default_settings,
    ):
        self.store = store
        self.queue = queue
        self.remote = remote
        self.settings = settings
        self.active: RoundSession | None = None
        self._lock = threading.RLock()
        self._collections_ready = False

    # Courses

    def courses(self) -> list[Course]:
        """Known courses, most recently played first."""
        courses = self.store.get_all(COURSES)
        played = sorted(
            (c for c in courses if c.last_played), key=lambda c: c.last_played, reverse=True
        )
        unplayed = sorted(
            (c for c in courses if not c.last_played), key=lambda c: c.course_name.lower()
        )
        return played + unplayed

    def course(self, course_id: str) -> Course:
        course = self.store.get_by_id(COURSES, course_id)
        if course is None:
            raise NotFoundError(f"Course {course_id} not found")
        return course

    def holes(self, course_id: str) -> list[Hole]:
        holes = self.store.get_by_field(HOLES, "course_id", course_id)
        return sorted(holes, key=lambda h: h.hole_number)

    def rounds(self, course_id: str | None = None) -> list[Round]:
        if course_id is None:
            rounds = self.store.get_all(ROUNDS)
        else:
            rounds = self.store.get_by_field(ROUNDS, "course_id", course_id)
        return sorted(rounds, key=lambda r: r.round_date, reverse=True)

    def _completed_history(self, course_id: str) -> tuple[list[Round], list[Score]]:
        rounds = [r for r in self.rounds(course_id) if r.completed]
        scores: list[Score] = []
        for rnd in rounds:
            scores.extend(self.store.get_by_field(SCORES, "round_id", rnd.round_id))
        return rounds, scores

    def course_overview(self, course_id: str) -> CourseOverview:
        course = self.course(course_id)
        holes = self.holes(course_id)
        rounds, scores = self._completed_history(course_id)
        by_id = stats.course_hole_stats(holes, scores, self.settings)
        return CourseOverview(
            course=course,
            holes=holes,
            stats=stats.course_stats(rounds, scores, holes),
            hole_stats={h.hole_number: by_id[h.hole_id] for h in holes},
        )

    def hole_trend(self, course_id: str, hole_number: int) -> list[stats.TrendPoint]:
        self.course(course_id)
        hole = next((h for h in self.holes(course_id) if h.hole_number == hole_number), None)
        if hole is None:
            raise NotFoundError(f"Hole {hole_number} not found on course {course_id}")
        rounds, scores = self._completed_history(course_id)
        return stats.hole_trend(hole.hole_id, scores, rounds)

    # Rounds

    def incomplete_round(self) -> RoundSnapshot | None:
        """The round left in progress, if any.

        The active session wins; otherwise the most recently saved snapshot.
        """
        if self.active is not None and not self.active.completed:
            return self.active.snapshot()
        snapshots = [
            s for s in self.store.get_all(ROUND_SNAPSHOTS) if s.state != RoundState.COMPLETED
        ]
        if not snapshots:
            return None
        return max(snapshots, key=lambda s: s.updated_at)

    def start_round(
        self,
        course_id: str | None = None,
        course_name: str | None = None,
        hole_count: Any = None,
        discard_incomplete: bool = False,
    ) -> RoundSession:
        """Begin a round on a stored course, or on a new one when no id is given.

        Refuses while another round is unfinished unless ``discard_incomplete``.
        """
        with self._lock:
            pending = self.incomplete_round()
            if pending is not None:
                if not discard_incomplete:
                    raise IncompleteRoundError(pending)
                self.abandon_round()

            if course_id is not None:
                session = RoundSession.start_existing_course(
                    self.store, self.queue, course_id, self.settings
                )
            else:
                if hole_count is None:
                    hole_count = self.settings.HOLE_COUNT_DEFAULT
                session = RoundSession.start_new_course(
                    self.store, self.queue, course_name, hole_count, self.settings
                )
            self.active = session
            return session

    def resume_round(self) -> RoundSession:
        with self._lock:
            if self.active is not None and not self.active.completed:
                return self.active
            snapshot = self.incomplete_round()
            if snapshot is None:
                raise NotFoundError("No round in progress")
            self.active = RoundSession.restore(self.store, self.queue, snapshot, self.settings)
            logger.info(
                "Resumed round %s at hole %d", snapshot.round_id, snapshot.current_index + 1
            )
            return self.active

    def abandon_round(self) -> bool:
        """Drop every unfinished round. Nothing of it is kept or synced."""
        with self._lock:
            removed = False
            for snapshot in self.store.get_all(ROUND_SNAPSHOTS):
                if snapshot.state != RoundState.COMPLETED:
                    removed = self.store.remove(ROUND_SNAPSHOTS, snapshot.round_id) or removed
                    logger.info("Abandoned round %s", snapshot.round_id)
            if self.active is not None and not self.active.completed:
                self.active = None
                removed = True
            return removed

    def current_round(self) -> RoundSession:
        if self.active is None:
            raise NotFoundError("No round loaded")
        return self.active

    # Sync

    def sync(self, pull: bool = True) -> SyncReport:
        """Replay pending operations, then refresh local data from the remote.

        The pull only runs once nothing is pending so local-only records are
        never overwritten by an older remote copy.
        """
        if self.remote is None:
            raise StateError("No remote configured")
        if not self.remote.is_online():
            return SyncReport(online=False, drained=False, pending=self.queue.count())

        if not self._collections_ready:
            self.remote.ensure_collections()
            self._collections_ready = True

        drained = self.queue.drain()
        pulled = None
        if drained and pull:
            pulled = self.remote.pull(self.store)
        return SyncReport(
            online=True, drained=drained, pending=self.queue.count(), pulled=pulled
        )

    def close(self) -> None:
        self.store.close()
        self.queue.store.close()


def build_tracker(settings: Settings = default_settings) -> Tracker:
    store = open_store(settings)
    # The queue lives in the flat file so it survives even without SQLite.
    queue_store = store if isinstance(store, FlatStore) else FlatStore(settings.FLAT_STORE_PATH)
    remote = None
    if settings.REMOTE_URL:
        remote = RemoteSync(HttpGateway(settings.REMOTE_URL, settings.REMOTE_TIMEOUT_SECONDS))
    else:
        logger.info("No REMOTE_URL configured; running local only")
    return Tracker(store, OperationQueue(queue_store, remote), remote, settings)

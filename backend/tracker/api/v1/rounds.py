from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from tracker.api.deps import get_tracker, http_error
from tracker.core.errors import FieldError, TrackerError
from tracker.schemas import Round, RoundState
from tracker.services.context import Tracker
from tracker.services.round_session import HoleDraft, RoundSession, RoundSummary
from tracker.services.stats import RunningTotal

router = APIRouter()

# Raw form values; range checks happen in the session so every field error
# is reported together.
FormValue = int | float | str | None


class RoundCreate(BaseModel):
    course_id: str | None = None
    course_name: str | None = None
    hole_count: FormValue = None
    discard_incomplete: bool = False


class EnterHoleIn(BaseModel):
    index: int


class NavigateIn(BaseModel):
    delta: int


class HoleScoreIn(BaseModel):
    throws: FormValue = None
    approaches: FormValue = None
    putts: FormValue = None
    par: FormValue = None
    distance: FormValue = None


class ScorecardHoleOut(BaseModel):
    hole_number: int
    par: int
    distance: int | None = None
    throws: int | None = None
    approaches: int | None = None
    putts: int | None = None


class RoundOut(BaseModel):
    round_id: str
    course_id: str
    course_name: str
    state: RoundState
    is_new_course: bool
    hole_count: int
    current_index: int
    current: HoleDraft | None = None
    scorecard: list[ScorecardHoleOut]
    totals: RunningTotal


class SubmitOut(BaseModel):
    ok: bool
    completed: bool
    errors: list[FieldError] = []
    round: RoundOut


def _round_out(session: RoundSession) -> RoundOut:
    scorecard = []
    for hole in session.holes:
        score = session.score_for(hole.hole_number)
        scorecard.append(
            ScorecardHoleOut(
                hole_number=hole.hole_number,
                par=hole.par,
                distance=hole.distance,
                throws=score.throws if score else None,
                approaches=score.approaches if score else None,
                putts=score.putts if score else None,
            )
        )
    return RoundOut(
        round_id=session.round_id,
        course_id=session.course.course_id,
        course_name=session.course.course_name,
        state=session.state,
        is_new_course=session.is_new_course,
        hole_count=session.hole_count,
        current_index=session.current_index,
        current=None if session.completed else session.draft(),
        scorecard=scorecard,
        totals=session.running_total(),
    )


@router.get("/rounds", response_model=list[Round])
def list_rounds(course_id: str | None = None, tracker: Tracker = Depends(get_tracker)):
    return tracker.rounds(course_id)


@router.post("/rounds", response_model=RoundOut, status_code=201)
def create_round(payload: RoundCreate, tracker: Tracker = Depends(get_tracker)):
    if payload.course_id is None and payload.course_name is None:
        raise HTTPException(status_code=400, detail="course_id or course_name is required")
    try:
        session = tracker.start_round(
            course_id=payload.course_id,
            course_name=payload.course_name,
            hole_count=payload.hole_count,
            discard_incomplete=payload.discard_incomplete,
        )
    except TrackerError as exc:
        raise http_error(exc) from exc
    return _round_out(session)


@router.get("/rounds/current", response_model=RoundOut)
def get_current_round(tracker: Tracker = Depends(get_tracker)):
    try:
        return _round_out(tracker.current_round())
    except TrackerError as exc:
        raise http_error(exc) from exc


@router.post("/rounds/current/resume", response_model=RoundOut)
def resume_round(tracker: Tracker = Depends(get_tracker)):
    try:
        return _round_out(tracker.resume_round())
    except TrackerError as exc:
        raise http_error(exc) from exc


@router.delete("/rounds/current", status_code=204)
def abandon_round(tracker: Tracker = Depends(get_tracker)):
    if not tracker.abandon_round():
        raise HTTPException(status_code=404, detail="No round in progress")
    return Response(status_code=204)


@router.post("/rounds/current/enter", response_model=RoundOut)
def enter_hole(payload: EnterHoleIn, tracker: Tracker = Depends(get_tracker)):
    try:
        session = tracker.current_round()
        session.enter_hole(payload.index)
    except TrackerError as exc:
        raise http_error(exc) from exc
    return _round_out(session)


@router.post("/rounds/current/navigate", response_model=RoundOut)
def navigate(payload: NavigateIn, tracker: Tracker = Depends(get_tracker)):
    try:
        session = tracker.current_round()
        session.navigate(payload.delta)
    except TrackerError as exc:
        raise http_error(exc) from exc
    return _round_out(session)


@router.post("/rounds/current/submit", response_model=SubmitOut)
def submit_hole(payload: HoleScoreIn, tracker: Tracker = Depends(get_tracker)):
    try:
        session = tracker.current_round()
        result = session.submit_hole(**payload.model_dump())
    except TrackerError as exc:
        raise http_error(exc) from exc

    out = SubmitOut(
        ok=result.ok, completed=result.completed, errors=result.errors, round=_round_out(session)
    )
    if not result.ok:
        raise HTTPException(status_code=422, detail=out.model_dump(mode="json"))
    return out


@router.get("/rounds/current/summary", response_model=RoundSummary)
def get_round_summary(tracker: Tracker = Depends(get_tracker)):
    try:
        return tracker.current_round().summary()
    except TrackerError as exc:
        raise http_error(exc) from exc

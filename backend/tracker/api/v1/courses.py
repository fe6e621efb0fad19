from fastapi import APIRouter, Depends
from pydantic import BaseModel

from tracker.api.deps import get_tracker, http_error
from tracker.core.errors import TrackerError
from tracker.schemas import Course, Hole
from tracker.services.context import CourseOverview, Tracker
from tracker.services.stats import TrendPoint

router = APIRouter()


class CourseDetailOut(BaseModel):
    course: Course
    holes: list[Hole]


@router.get("/courses", response_model=list[Course])
def list_courses(tracker: Tracker = Depends(get_tracker)):
    return tracker.courses()


@router.get("/courses/{course_id}", response_model=CourseDetailOut)
def get_course(course_id: str, tracker: Tracker = Depends(get_tracker)):
    try:
        course = tracker.course(course_id)
    except TrackerError as exc:
        raise http_error(exc) from exc
    return CourseDetailOut(course=course, holes=tracker.holes(course_id))


@router.get("/courses/{course_id}/stats", response_model=CourseOverview)
def get_course_stats(course_id: str, tracker: Tracker = Depends(get_tracker)):
    try:
        return tracker.course_overview(course_id)
    except TrackerError as exc:
        raise http_error(exc) from exc


@router.get("/courses/{course_id}/holes/{hole_number}/trend", response_model=list[TrendPoint])
def get_hole_trend(course_id: str, hole_number: int, tracker: Tracker = Depends(get_tracker)):
    try:
        return tracker.hole_trend(course_id, hole_number)
    except TrackerError as exc:
        raise http_error(exc) from exc

"""Per-hole and per-course statistics derived from stored rounds.

Everything here is a pure function of the records passed in. Averages are
rounded to one decimal, half-up.
"""

import math
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from pydantic import BaseModel

from tracker.core.settings import Settings, settings as default_settings
from tracker.schemas import Hole, Round, Score


class HoleStats(BaseModel):
    has_data: bool
    round_count: int
    avg_score: float | None = None
    avg_approaches: float | None = None
    avg_putts: float | None = None
    has_enough_approach_data: bool = False
    has_enough_putt_data: bool = False


class RoundResult(BaseModel):
    round_id: str
    date: datetime | None
    total_score: int
    relative_to_par: int


class CourseStats(BaseModel):
    has_data: bool
    round_count: int
    total_par: int = 0
    avg_total_score: float | None = None
    avg_relative_to_par: float | None = None
    best_round: RoundResult | None = None
    worst_round: RoundResult | None = None


class Comparison(BaseModel):
    has_comparison: bool
    difference: float | None = None
    is_better: bool | None = None
    message: str


class RunningTotal(BaseModel):
    total_score: int
    total_par: int
    relative_to_par: int
    total_approaches: int
    total_putts: int
    avg_approaches: float | None
    avg_putts: float | None
    holes_completed: int


class HoleHighlight(BaseModel):
    hole_number: int
    score: int
    par: int
    avg_score: float | None = None
    diff: float | None = None
    relative_to_par: int


class Highlights(BaseModel):
    best: list[HoleHighlight]
    worst: list[HoleHighlight]


class TrendPoint(BaseModel):
    date: datetime
    score: int


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    return not (isinstance(value, float) and math.isnan(value))


def average(values: Iterable[Any] | None) -> float | None:
    """Mean of the numeric values; None/NaN/non-numbers are ignored."""
    if not values:
        return None
    valid = [v for v in values if _is_number(v)]
    if not valid:
        return None
    return sum(valid) / len(valid)


def round_half_up(value: float, decimals: int = 1) -> float:
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _rounded_average(values: Sequence[Any]) -> float | None:
    avg = average(values)
    return round_half_up(avg) if avg is not None else None


def relative_score(score: int, par: int) -> str:
    diff = score - par
    if diff == 0:
        return "E"
    if diff > 0:
        return f"+{diff}"
    return str(diff)


def score_label(score: int, par: int) -> str:
    diff = score - par
    if diff <= -2:
        return "eagle"
    if diff == -1:
        return "birdie"
    if diff == 0:
        return "par"
    if diff == 1:
        return "bogey"
    return "double-bogey"


def hole_stats(
    hole_id: str, scores: Iterable[Score], settings: Settings = default_settings
) -> HoleStats:
    hole_scores = [s for s in scores if s.hole_id == hole_id]
    if not hole_scores:
        return HoleStats(has_data=False, round_count=0)

    throws = [s.throws for s in hole_scores if _is_number(s.throws)]
    approaches = [s.approaches for s in hole_scores if _is_number(s.approaches)]
    putts = [s.putts for s in hole_scores if _is_number(s.putts)]

    min_points = settings.MIN_DATA_POINTS_FOR_DETAILED_STATS
    enough_approaches = len(approaches) >= min_points
    enough_putts = len(putts) >= min_points

    return HoleStats(
        has_data=len(throws) >= settings.MIN_ROUNDS_FOR_AVERAGE,
        round_count=len(throws),
        avg_score=_rounded_average(throws),
        avg_approaches=_rounded_average(approaches) if enough_approaches else None,
        avg_putts=_rounded_average(putts) if enough_putts else None,
        has_enough_approach_data=enough_approaches,
        has_enough_putt_data=enough_putts,
    )


def course_hole_stats(
    holes: Iterable[Hole], scores: Sequence[Score], settings: Settings = default_settings
) -> dict[str, HoleStats]:
    return {h.hole_id: hole_stats(h.hole_id, scores, settings) for h in holes}


def _round_total(rnd: Round, scores: Sequence[Score]) -> int:
    if rnd.total_score is not None:
        return rnd.total_score
    return sum(s.throws or 0 for s in scores if s.round_id == rnd.round_id)


def course_stats(
    rounds: Iterable[Round], scores: Sequence[Score], holes: Iterable[Hole]
) -> CourseStats:
    completed = [r for r in rounds if r.completed]
    if not completed:
        return CourseStats(has_data=False, round_count=0)

    total_par = sum(h.par for h in holes)
    results = []
    for rnd in completed:
        total = _round_total(rnd, scores)
        results.append(
            RoundResult(
                round_id=rnd.round_id,
                date=rnd.round_date,
                total_score=total,
                relative_to_par=total - total_par,
            )
        )
    results.sort(key=lambda r: r.total_score)

    return CourseStats(
        has_data=True,
        round_count=len(completed),
        total_par=total_par,
        avg_total_score=_rounded_average([r.total_score for r in results]),
        avg_relative_to_par=_rounded_average([r.relative_to_par for r in results]),
        best_round=results[0],
        worst_round=results[-1],
    )


def compare_to_average(current_total: int, stats: CourseStats | None) -> Comparison:
    if stats is None or not stats.has_data or stats.avg_total_score is None:
        return Comparison(has_comparison=False, message="First round on this course")

    raw = current_total - stats.avg_total_score
    difference = round_half_up(raw)
    is_better = raw < 0

    if abs(raw) < 0.5:
        message = "Right on your average"
    elif is_better:
        message = f"{abs(difference)} strokes better than average"
    else:
        message = f"{difference} strokes above average"

    return Comparison(
        has_comparison=True, difference=difference, is_better=is_better, message=message
    )


def is_personal_best(current_total: int, stats: CourseStats | None) -> bool:
    if stats is None or not stats.has_data or stats.best_round is None:
        return False
    return current_total < stats.best_round.total_score


def running_total(scores: Iterable[Score], holes: Iterable[Hole]) -> RunningTotal:
    par_by_hole = {h.hole_id: h.par for h in holes}
    total_score = total_par = total_approaches = total_putts = 0
    approach_count = putt_count = holes_completed = 0

    for s in scores:
        holes_completed += 1
        total_score += s.throws or 0
        total_par += par_by_hole.get(s.hole_id, default_settings.PAR_DEFAULT)
        if s.approaches is not None:
            total_approaches += s.approaches
            approach_count += 1
        if s.putts is not None:
            total_putts += s.putts
            putt_count += 1

    return RunningTotal(
        total_score=total_score,
        total_par=total_par,
        relative_to_par=total_score - total_par,
        total_approaches=total_approaches,
        total_putts=total_putts,
        avg_approaches=round_half_up(total_approaches / approach_count) if approach_count else None,
        avg_putts=round_half_up(total_putts / putt_count) if putt_count else None,
        holes_completed=holes_completed,
    )


def highlight_holes(
    round_scores: Iterable[Score], holes: Iterable[Hole], stats_by_hole: dict[str, HoleStats]
) -> Highlights:
    """Up to three best and worst holes of a round.

    Holes are ranked against their historical average when one exists;
    without any history the ranking falls back to score relative to par.
    """
    par_by_hole = {h.hole_id: h.par for h in holes}
    items: list[HoleHighlight] = []
    for s in round_scores:
        par = par_by_hole.get(s.hole_id, default_settings.PAR_DEFAULT)
        stats = stats_by_hole.get(s.hole_id)
        item = HoleHighlight(
            hole_number=s.hole_number, score=s.throws, par=par, relative_to_par=s.throws - par
        )
        if stats is not None and stats.has_data and stats.avg_score is not None:
            item.avg_score = stats.avg_score
            item.diff = round_half_up(s.throws - stats.avg_score)
        items.append(item)

    with_history = [i for i in items if i.diff is not None]
    if not with_history:
        ranked = sorted(items, key=lambda i: i.relative_to_par)
        return Highlights(
            best=[i for i in ranked[:3] if i.relative_to_par <= 0],
            worst=[i for i in reversed(ranked[-3:]) if i.relative_to_par > 0],
        )

    ranked = sorted(with_history, key=lambda i: i.diff)
    return Highlights(
        best=[i for i in ranked[:3] if i.diff < 0],
        worst=[i for i in reversed(ranked[-3:]) if i.diff > 0],
    )


def hole_trend(hole_id: str, scores: Iterable[Score], rounds: Iterable[Round]) -> list[TrendPoint]:
    date_by_round = {r.round_id: r.round_date for r in rounds}
    points = [
        TrendPoint(date=date_by_round[s.round_id], score=s.throws)
        for s in scores
        if s.hole_id == hole_id and s.round_id in date_by_round
    ]
    points.sort(key=lambda p: p.date)
    return points

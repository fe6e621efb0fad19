from datetime import datetime, timedelta, timezone

import pytest

from tracker.core.settings import Settings
from tracker.schemas import Hole, Round, Score
from tracker.services import stats


def _hole(n, par=3):
    return Hole(hole_id=f"h{n}", course_id="c1", hole_number=n, par=par)


def _score(round_id, n, throws, approaches=None, putts=None):
    return Score(
        round_id=round_id,
        hole_id=f"h{n}",
        hole_number=n,
        throws=throws,
        approaches=approaches,
        putts=putts,
    )


def _round(round_id, total=None, days_ago=0, completed=True):
    return Round(
        round_id=round_id,
        course_id="c1",
        round_date=datetime(2024, 6, 30, tzinfo=timezone.utc) - timedelta(days=days_ago),
        completed=completed,
        total_score=total,
    )


def test_average_ignores_invalid_entries():
    assert stats.average([3, None, "x", float("nan"), 5, True]) == 4
    assert stats.average([None, "x", float("nan")]) is None
    assert stats.average([]) is None
    assert stats.average(None) is None


@pytest.mark.parametrize(
    "value,expected", [(3.25, 3.3), (3.35, 3.4), (2.45, 2.5), (-0.25, -0.3), (4.0, 4.0)]
)
def test_round_half_up(value, expected):
    assert stats.round_half_up(value) == expected


def test_relative_score_and_label():
    assert stats.relative_score(10, 10) == "E"
    assert stats.relative_score(12, 10) == "+2"
    assert stats.relative_score(8, 10) == "-2"
    assert stats.score_label(2, 4) == "eagle"
    assert stats.score_label(2, 3) == "birdie"
    assert stats.score_label(3, 3) == "par"
    assert stats.score_label(4, 3) == "bogey"
    assert stats.score_label(7, 3) == "double-bogey"


def test_hole_stats_without_data():
    result = stats.hole_stats("h1", [])
    assert result.has_data is False
    assert result.round_count == 0
    assert result.avg_score is None


def test_hole_stats_withholds_sparse_sub_values():
    scores = [_score(f"r{i}", 1, 3) for i in range(8)]
    scores += [_score("r8", 1, 4, approaches=1, putts=1), _score("r9", 1, 4, approaches=2, putts=1)]
    scores.append(_score("r10", 1, 3, putts=2))

    result = stats.hole_stats("h1", scores)
    assert result.round_count == 11
    assert result.has_enough_approach_data is False
    assert result.avg_approaches is None
    assert result.has_enough_putt_data is True
    assert result.avg_putts == 1.3


def test_hole_stats_averages():
    scores = [_score("r1", 1, 3), _score("r2", 1, 4), _score("r3", 1, 4), _score("r1", 2, 5)]
    result = stats.hole_stats("h1", scores)
    assert result.has_data is True
    assert result.avg_score == 3.7


def test_hole_stats_threshold_from_settings():
    settings = Settings(MIN_DATA_POINTS_FOR_DETAILED_STATS=1)
    result = stats.hole_stats("h1", [_score("r1", 1, 4, approaches=1)], settings)
    assert result.avg_approaches == 1.0


def test_course_stats():
    holes = [_hole(1, 3), _hole(2, 3), _hole(3, 4)]
    rounds = [
        _round("r1", total=11),
        _round("r2", total=9),
        _round("r3", days_ago=3),
        _round("r4", total=40, completed=False),
    ]
    scores = [_score("r3", 1, 3), _score("r3", 2, 3), _score("r3", 3, 4)]

    result = stats.course_stats(rounds, scores, holes)
    assert result.has_data is True
    assert result.round_count == 3
    assert result.total_par == 10
    assert result.avg_total_score == 10.0
    assert result.avg_relative_to_par == 0.0
    assert result.best_round.round_id == "r2"
    assert result.best_round.relative_to_par == -1
    assert result.worst_round.round_id == "r1"


def test_course_stats_without_completed_rounds():
    result = stats.course_stats([_round("r1", completed=False)], [], [_hole(1)])
    assert result.has_data is False
    assert result.round_count == 0


def test_compare_to_average():
    history = stats.course_stats([_round("r1", 60), _round("r2", 56)], [], [_hole(1)])

    first = stats.compare_to_average(50, None)
    assert first.has_comparison is False
    assert first.message == "First round on this course"

    better = stats.compare_to_average(55, history)
    assert better.is_better is True
    assert better.difference == -3.0
    assert better.message == "3.0 strokes better than average"

    worse = stats.compare_to_average(60, history)
    assert worse.is_better is False
    assert worse.message == "2.0 strokes above average"

    assert stats.compare_to_average(58, history).message == "Right on your average"


def test_is_personal_best_is_strict():
    history = stats.course_stats([_round("r1", 50), _round("r2", 54)], [], [_hole(1)])
    assert stats.is_personal_best(49, history) is True
    assert stats.is_personal_best(50, history) is False
    assert stats.is_personal_best(40, None) is False


def test_running_total():
    holes = [_hole(1, 3), _hole(2, 3), _hole(3, 4)]
    scores = [_score("r1", 1, 3, approaches=1, putts=1), _score("r1", 2, 4, putts=2)]

    totals = stats.running_total(scores, holes)
    assert totals.total_score == 7
    assert totals.total_par == 6
    assert totals.relative_to_par == 1
    assert totals.total_putts == 3
    assert totals.avg_putts == 1.5
    assert totals.avg_approaches == 1.0
    assert totals.holes_completed == 2


def test_highlight_holes_against_history():
    holes = [_hole(n) for n in range(1, 6)]
    history = stats.course_hole_stats(
        holes, [_score("old", n, 4) for n in range(1, 6)]
    )
    current = [
        _score("r1", 1, 2),
        _score("r1", 2, 3),
        _score("r1", 3, 4),
        _score("r1", 4, 5),
        _score("r1", 5, 7),
    ]

    result = stats.highlight_holes(current, holes, history)
    assert [h.hole_number for h in result.best] == [1, 2]
    assert [h.hole_number for h in result.worst] == [5, 4]
    assert result.best[0].diff == -2.0


def test_highlight_holes_without_history_uses_par():
    holes = [_hole(1), _hole(2), _hole(3)]
    current = [_score("r1", 1, 2), _score("r1", 2, 3), _score("r1", 3, 5)]

    result = stats.highlight_holes(current, holes, {})
    assert [h.hole_number for h in result.best] == [1, 2]
    assert [h.hole_number for h in result.worst] == [3]


def test_hole_trend_is_chronological():
    rounds = [_round("r1", days_ago=1), _round("r2", days_ago=5), _round("r3", days_ago=3)]
    scores = [_score("r1", 1, 3), _score("r2", 1, 5), _score("r3", 1, 4), _score("r1", 2, 2)]

    trend = stats.hole_trend("h1", scores, rounds)
    assert [p.score for p in trend] == [5, 4, 3]

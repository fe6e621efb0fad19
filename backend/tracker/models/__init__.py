from .course import CourseRow, HoleRow
from .round import RoundRow, ScoreRow
from .sync import PendingOperationRow, RoundSnapshotRow

__all__ = [
    "CourseRow",
    "HoleRow",
    "RoundRow",
    "ScoreRow",
    "PendingOperationRow",
    "RoundSnapshotRow",
]

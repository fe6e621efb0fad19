import math
import re
from typing import Any

from tracker.core.errors import FieldError
from tracker.core.settings import Settings, settings as default_settings

COURSE_NAME_PATTERN = re.compile(r"[a-zA-Z0-9\s\-']+")

_BLANK = object()
_NOT_A_NUMBER = object()
_FRACTION = object()


def _parse_int(value: Any):
    """Coerce raw form input to an int.

    Returns ``_BLANK`` for None/empty strings, ``_NOT_A_NUMBER`` for text that
    is not numeric and ``_FRACTION`` for numbers with a fractional part.
    """
    if value is None:
        return _BLANK
    if isinstance(value, bool):
        return _NOT_A_NUMBER
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return _NOT_A_NUMBER
        return int(value) if value.is_integer() else _FRACTION
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return _BLANK
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return _parse_int(float(value))
        except ValueError:
            return _NOT_A_NUMBER
    return _NOT_A_NUMBER


def is_blank(value: Any) -> bool:
    return _parse_int(value) is _BLANK


def to_int(value: Any) -> int | None:
    parsed = _parse_int(value)
    return parsed if isinstance(parsed, int) else None


def _check_range(field: str, label: str, value: Any, lo: int, hi: int) -> FieldError | None:
    parsed = _parse_int(value)
    if parsed is _FRACTION:
        return FieldError(field=field, message=f"{label} must be a whole number")
    if parsed is _BLANK or parsed is _NOT_A_NUMBER or parsed < lo:
        if lo == 0:
            return FieldError(field=field, message=f"{label} must be 0 or more")
        return FieldError(field=field, message=f"{label} must be at least {lo}")
    if parsed > hi:
        return FieldError(field=field, message=f"{label} cannot exceed {hi}")
    return None


def validate_score_entry(
    throws: Any,
    approaches: Any = None,
    putts: Any = None,
    settings: Settings = default_settings,
) -> list[FieldError]:
    """Check one hole's entry and return every problem found.

    ``throws`` is required; ``approaches`` and ``putts`` are optional and
    blank means absent. The consistency rule (approaches + putts leave at
    least one throw for the drive) is only checked once the three fields are
    individually valid and both optional values are present.
    """
    errors: list[FieldError] = []

    err = _check_range("throws", "Throws", throws, settings.THROWS_MIN, settings.THROWS_MAX)
    if err:
        errors.append(err)

    if not is_blank(approaches):
        err = _check_range(
            "approaches", "Approaches", approaches, settings.APPROACHES_MIN, settings.APPROACHES_MAX
        )
        if err:
            errors.append(err)

    if not is_blank(putts):
        err = _check_range("putts", "Putts", putts, settings.PUTTS_MIN, settings.PUTTS_MAX)
        if err:
            errors.append(err)

    if not errors and not is_blank(approaches) and not is_blank(putts):
        if to_int(approaches) + to_int(putts) > to_int(throws) - 1:
            errors.append(
                FieldError(
                    field="consistency",
                    message="Approaches + Putts cannot exceed throws - 1 (need at least 1 drive)",
                )
            )

    return errors


def validate_hole_setup(
    par: Any = None, distance: Any = None, settings: Settings = default_settings
) -> list[FieldError]:
    errors: list[FieldError] = []
    if not is_blank(par):
        err = _check_range("par", "Par", par, settings.PAR_MIN, settings.PAR_MAX)
        if err:
            errors.append(err)
    if not is_blank(distance):
        err = _check_range(
            "distance", "Distance", distance, settings.DISTANCE_MIN, settings.DISTANCE_MAX
        )
        if err:
            errors.append(err)
    return errors


def validate_course_name(name: str | None, settings: Settings = default_settings) -> FieldError | None:
    if not name or not name.strip():
        return FieldError(field="course_name", message="Course name is required")
    if len(name) > settings.COURSE_NAME_MAX_LENGTH:
        return FieldError(
            field="course_name",
            message=f"Course name must be {settings.COURSE_NAME_MAX_LENGTH} characters or less",
        )
    if not COURSE_NAME_PATTERN.fullmatch(name):
        return FieldError(field="course_name", message="Course name contains invalid characters")
    return None


def validate_hole_count(hole_count: Any, settings: Settings = default_settings) -> FieldError | None:
    return _check_range(
        "hole_count", "Hole count", hole_count, settings.HOLE_COUNT_MIN, settings.HOLE_COUNT_MAX
    )

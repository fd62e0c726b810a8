"""Overtime bonus points calculation.

Members who spend longer than a task's estimate earn one bonus point for
every full ``BONUS_MINUTES_PER_POINT`` minutes over. These functions are pure
and never raise: anything that is not a usable number contributes nothing.
"""

import math
from typing import Any

from fantastic_task.core.config import constants
from fantastic_task.models.service_models import BonusPoints, TotalPoints


def _as_number(value: Any) -> int | float | None:
    """Return value as a finite number, or None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, int | float) or not math.isfinite(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def format_bonus_explanation(
    bonus_points: int,
    overtime_minutes: int | float,
    estimated_minutes: int | float,
) -> str | None:
    """Build the display text for a bonus, or None when there is no bonus."""
    if bonus_points <= 0:
        return None
    unit = "point" if bonus_points == 1 else "points"
    return f"{overtime_minutes} min over estimate ({estimated_minutes} min) = {bonus_points} bonus {unit}"


def calculate_bonus_points(time_spent_minutes: Any, estimated_minutes: Any) -> BonusPoints:
    """Calculate overtime bonus points.

    Args:
        time_spent_minutes: Minutes the member reported spending
        estimated_minutes: The task's estimate in minutes

    Returns:
        BonusPoints with the bonus, an explanation when the bonus is positive,
        and the raw overtime in minutes
    """
    spent = _as_number(time_spent_minutes)
    estimated = _as_number(estimated_minutes)

    if spent is None or estimated is None or spent <= 0 or estimated <= 0:
        return BonusPoints()
    if spent <= estimated:
        return BonusPoints()

    overtime = spent - estimated
    if isinstance(overtime, float) and overtime.is_integer():
        overtime = int(overtime)
    bonus = math.floor(overtime / constants.BONUS_MINUTES_PER_POINT)

    return BonusPoints(
        bonus_points=bonus,
        explanation=format_bonus_explanation(bonus, overtime, estimated),
        overtime_minutes=overtime,
    )


def calculate_total_points(base_points: Any, time_spent_minutes: Any, estimated_minutes: Any) -> TotalPoints:
    """Add the overtime bonus to a task's base points; invalid base points count as 0."""
    base = _as_number(base_points)
    base_value = math.floor(base) if base is not None else 0
    bonus = calculate_bonus_points(time_spent_minutes, estimated_minutes)

    return TotalPoints(
        total_points=base_value + bonus.bonus_points,
        bonus_points=bonus.bonus_points,
        explanation=bonus.explanation,
    )

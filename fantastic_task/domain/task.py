"""Task domain models, recurrence policies and the weekday convention."""

import json
from enum import IntEnum, StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

from fantastic_task.core.config import constants


class Weekday(IntEnum):
    """Day of week, numbered 0=Sunday through 6=Saturday.

    Stored recurrence data and day pickers both use this numbering, which is
    not the same as ``date.weekday()`` (0=Monday).
    """

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6


class LegacyRecurringType(StrEnum):
    """Recurring types written by older task forms."""

    DAILY = "daily"
    WEEKLY_FLEXIBLE = "weekly_flexible"
    MONTHLY_FLEXIBLE = "monthly_flexible"


class OnceRecurrence(BaseModel):
    """Due until the first completion, then the task is retired."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["once"] = "once"


class FixedDaysRecurrence(BaseModel):
    """Due on the listed weekdays; an empty set means every day."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["fixed_days"] = "fixed_days"
    days: frozenset[Weekday] = Field(default_factory=frozenset, description="Weekdays the task is due on")


class FlexibleIntervalRecurrence(BaseModel):
    """Due when more than ``days`` calendar days have passed since the last completion."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["flexible_interval"] = "flexible_interval"
    days: PositiveInt = Field(..., description="Minimum gap in days between completions")


Recurrence = Annotated[
    OnceRecurrence | FixedDaysRecurrence | FlexibleIntervalRecurrence,
    Field(discriminator="kind"),
]


def _parse_legacy_days(raw: Any) -> list[int]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        stripped = raw.strip()
        if stripped.startswith("["):
            raw = json.loads(stripped)
        else:
            raw = [part for part in stripped.split(",") if part.strip()]
    return [int(day) for day in raw]


def recurrence_from_legacy(
    recurring_type: str | None,
    recurring_days: Any = None,
    flexible_interval: int | None = None,
) -> Recurrence:
    """Build a recurrence from the recurring_type/recurring_days/flexible_interval columns.

    Unknown or missing types fall back to a fixed-days policy, which with no
    days listed means the task is due every day.
    """
    if recurring_type == LegacyRecurringType.WEEKLY_FLEXIBLE:
        return FlexibleIntervalRecurrence(days=flexible_interval or constants.WEEKLY_FLEXIBLE_INTERVAL)
    if recurring_type == LegacyRecurringType.MONTHLY_FLEXIBLE:
        return FlexibleIntervalRecurrence(days=flexible_interval or constants.MONTHLY_FLEXIBLE_INTERVAL)

    return FixedDaysRecurrence(days=frozenset(Weekday(day) for day in _parse_legacy_days(recurring_days)))


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    family_id: str = Field(..., description="ID of the owning family")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Detailed task description")
    points: int = Field(default=0, ge=0, description="Base reward in points")
    estimated_minutes: int | None = Field(default=None, description="Expected duration, used for bonus points")
    recurrence: Recurrence = Field(default_factory=FixedDaysRecurrence, description="When the task is due")
    is_active: bool = Field(default=True, description="False once soft-deleted or retired")
    created_by: str | None = Field(default=None, description="ID of the member who created the task")
    created_at: str | None = Field(default=None, description="Creation timestamp (ISO format)")

    @model_validator(mode="before")
    @classmethod
    def read_recurrence(cls, data: Any) -> Any:
        """Decode stored recurrence JSON, falling back to the legacy columns."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        recurrence = data.get("recurrence")
        if isinstance(recurrence, str):
            recurrence = json.loads(recurrence) if recurrence.strip() else None
        if recurrence is None:
            recurrence = recurrence_from_legacy(
                data.get("recurring_type"),
                data.get("recurring_days"),
                data.get("flexible_interval"),
            )
        data["recurrence"] = recurrence
        return data

    @field_validator("estimated_minutes", mode="before")
    @classmethod
    def drop_non_positive_estimate(cls, v: Any) -> Any:
        """A zero or negative estimate means no estimate."""
        if v is None or v == "":
            return None
        if isinstance(v, int | float) and v <= 0:
            return None
        return v

"""Pydantic models for creating records in database."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, PositiveInt, field_validator

from fantastic_task.domain.completion import as_local_time
from fantastic_task.domain.task import FixedDaysRecurrence, Recurrence


def _lenient_minutes(v: Any) -> Any:
    """Unparseable or negative durations are treated as not reported."""
    if v is None or isinstance(v, bool):
        return None
    try:
        minutes = int(float(v))
    except (TypeError, ValueError):
        return None
    return minutes if minutes >= 0 else None


class TaskCreate(BaseModel):
    """Pydantic model for creating a task record.

    ``recurrence_text`` takes precedence over ``recurrence`` when both are
    given, so forms can submit free text such as "Mon,Wed" or "every 3 days".
    """

    title: str = Field(..., min_length=1, description="Task title")
    description: str = Field(default="", description="Detailed task description")
    points: int = Field(default=0, ge=0, description="Base reward in points")
    estimated_minutes: PositiveInt | None = Field(default=None, description="Expected duration in minutes")
    recurrence: Recurrence = Field(default_factory=FixedDaysRecurrence, description="When the task is due")
    recurrence_text: str | None = Field(default=None, description="Human or CRON recurrence to parse")

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        """Validate title is not blank."""
        v = v.strip()
        if not v:
            msg = "Title cannot be empty"
            raise ValueError(msg)
        return v


class AssignmentCreate(BaseModel):
    """Pydantic model for creating an assignment record."""

    task_id: str = Field(..., description="ID of the task being assigned")
    assigned_to: str = Field(..., description="ID of the member receiving the task")
    assigned_by: str = Field(..., description="ID of the member making the assignment")
    due_date: date | None = Field(default=None, description="Calendar date the task is due")
    is_completed: bool = Field(default=False, description="Assignments start open")


class CompletionRequest(BaseModel):
    """Input for completing a task with explicit data.

    ``completed_at`` is normally left empty: the scheduler combines
    ``completion_date`` (the day the member selected) with the current time of
    day. ``points_awarded`` overrides the task's base points when set.
    """

    task_id: str | None = Field(default=None, description="ID of the task being completed")
    completed_by: str | None = Field(default=None, description="ID of the member who did the task")
    assignment_id: str | None = Field(default=None, description="Assignment this completion fulfils")
    completion_date: date | None = Field(default=None, description="Selected calendar date, defaults to today")
    completed_at: datetime | None = Field(default=None, description="Exact timestamp, overrides completion_date")
    time_spent_minutes: int | None = Field(default=None, description="Reported time spent in minutes")
    comment: str | None = Field(default=None, description="Free-text note")
    points_awarded: int | None = Field(default=None, ge=0, description="Base points override")

    @field_validator("time_spent_minutes", mode="before")
    @classmethod
    def coerce_time_spent(cls, v: Any) -> Any:
        return _lenient_minutes(v)

    @field_validator("completed_at")
    @classmethod
    def normalize_completed_at(cls, v: datetime | None) -> datetime | None:
        return as_local_time(v) if v is not None else None

    @field_validator("comment")
    @classmethod
    def strip_comment(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel

from fantastic_task.core.errors import ErrorResponse
from fantastic_task.domain.assignment import Assignment
from fantastic_task.domain.completion import Completion
from fantastic_task.domain.task import Task


T = TypeVar("T")


class ServiceResult(BaseModel, Generic[T]):
    """Result envelope returned by scheduler operations instead of raising."""

    data: T | None = None
    error: ErrorResponse | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BonusPoints(BaseModel):
    """Overtime bonus for a single completion."""

    bonus_points: int = 0
    explanation: str | None = None
    overtime_minutes: int | float = 0


class TotalPoints(BaseModel):
    """Base points plus overtime bonus."""

    total_points: int
    bonus_points: int = 0
    explanation: str | None = None


class DayTaskStatus(StrEnum):
    """How a due task looks to one member on one calendar date."""

    AVAILABLE = "available"
    ASSIGNED = "assigned"
    OVERDUE = "overdue"
    PENDING_VERIFICATION = "pending_verification"
    COMPLETED = "completed"


class TaskDayView(BaseModel):
    """Task annotated with its completion state for a date."""

    task: Task
    status: DayTaskStatus
    completion: Completion | None = None
    assignment: Assignment | None = None


class Timeframe(StrEnum):
    """Statistics window."""

    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class MemberStatistics(BaseModel):
    """Completion statistics for one member over a timeframe."""

    member_id: str
    member_name: str
    role: str
    total_points: int
    total_tasks: int
    total_time_minutes: int
    average_time_minutes: float
    current_streak: int
    max_streak: int
    points_balance: int
    timeframe: Timeframe


class Achievement(BaseModel):
    """Badge earned by reaching a completion, streak or points threshold."""

    key: str
    title: str
    description: str


class FamilySummary(BaseModel):
    """Overall family statistics for a timeframe."""

    total_points: int
    total_tasks: int
    total_time_minutes: int
    active_members: int
    pending_verifications: int
    top_member_id: str | None = None
    timeframe: Timeframe

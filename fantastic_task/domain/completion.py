"""Completion domain models for the task ledger."""

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


def as_local_time(value: datetime) -> datetime:
    """Convert an aware timestamp to naive local time; naive values are already local."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


class VerificationStatus(StrEnum):
    """Verification status for a task completion."""

    NONE_REQUIRED = "none_required"  # Adult completion, points posted immediately
    PENDING = "pending"  # Child completion awaiting an adult
    APPROVED = "approved"
    REJECTED = "rejected"


class Completion(BaseModel):
    """Completion record data transfer object."""

    id: str = Field(..., description="Unique completion ID from database")
    task_id: str = Field(..., description="ID of the completed task")
    assignment_id: str | None = Field(default=None, description="Assignment this completion fulfils, if any")
    completed_by: str = Field(..., description="ID of the member who did the task")
    completed_at: datetime = Field(..., description="Selected calendar date combined with the time of completion")
    time_spent_minutes: int | None = Field(default=None, ge=0, description="Reported time spent")
    comment: str | None = Field(default=None, description="Free-text note from the member")
    points_awarded: int = Field(default=0, ge=0, description="Points carried by the completion, bonus included")
    bonus_points: int = Field(default=0, ge=0, description="Overtime bonus included in points_awarded")
    verification_status: VerificationStatus = Field(
        default=VerificationStatus.NONE_REQUIRED,
        description="Where the completion is in the verification flow",
    )
    verified_by: str | None = Field(default=None, description="ID of the member who approved or rejected")
    verified_at: datetime | None = Field(default=None, description="When the completion was approved or rejected")
    rejection_reason: str | None = Field(default=None, description="Reason given when rejected")

    @field_validator("completed_at", "verified_at")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        return as_local_time(v) if v is not None else None

    @property
    def completion_date(self) -> date:
        return self.completed_at.date()

    @property
    def is_live(self) -> bool:
        """Rejected completions no longer count as the task being done."""
        return self.verification_status != VerificationStatus.REJECTED

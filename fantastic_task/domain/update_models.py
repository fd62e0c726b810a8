"""Update models for database operations."""

from pydantic import BaseModel, Field, PositiveInt, ValidationInfo, field_validator

from fantastic_task.domain.task import Recurrence


class TaskUpdate(BaseModel):
    """Partial update payload for a task; only fields that are set are written.

    ``estimated_minutes`` may be cleared with an explicit null. The other
    columns always hold a value, so null is refused for them.
    """

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    points: int | None = Field(default=None, ge=0)
    estimated_minutes: PositiveInt | None = None
    recurrence: Recurrence | None = None
    recurrence_text: str | None = None
    is_active: bool | None = None

    @field_validator("title", "description", "points", "is_active")
    @classmethod
    def refuse_null(cls, v: object, info: ValidationInfo) -> object:
        if v is None:
            msg = f"{info.field_name} cannot be null"
            raise ValueError(msg)
        return v


class RejectionUpdate(BaseModel):
    """Payload for rejecting a pending completion."""

    reason: str | None = None

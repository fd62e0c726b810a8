"""Assignment domain model."""

from datetime import date

from pydantic import BaseModel, Field


class Assignment(BaseModel):
    """Link between a task and the member expected to do it on a given day.

    Assignments only drive "my tasks" views and attribution; a task can be
    completed without one.
    """

    id: str = Field(..., description="Unique assignment ID from database")
    task_id: str = Field(..., description="ID of the assigned task")
    assigned_to: str = Field(..., description="ID of the member the task is assigned to")
    assigned_by: str | None = Field(default=None, description="ID of the member who made the assignment")
    due_date: date | None = Field(default=None, description="Calendar date the task is due")
    is_completed: bool = Field(default=False, description="Whether a live completion fulfils this assignment")

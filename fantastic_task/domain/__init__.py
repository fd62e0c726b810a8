"""Domain models and DTOs."""

from fantastic_task.domain.assignment import Assignment
from fantastic_task.domain.completion import Completion, VerificationStatus
from fantastic_task.domain.create_models import AssignmentCreate, CompletionRequest, TaskCreate
from fantastic_task.domain.member import Member, MemberRole
from fantastic_task.domain.points import PointsTransaction, TransactionType
from fantastic_task.domain.task import (
    FixedDaysRecurrence,
    FlexibleIntervalRecurrence,
    OnceRecurrence,
    Recurrence,
    Task,
    Weekday,
)
from fantastic_task.domain.update_models import RejectionUpdate, TaskUpdate


__all__ = [
    "Assignment",
    "AssignmentCreate",
    "Completion",
    "CompletionRequest",
    "FixedDaysRecurrence",
    "FlexibleIntervalRecurrence",
    "Member",
    "MemberRole",
    "OnceRecurrence",
    "PointsTransaction",
    "Recurrence",
    "RejectionUpdate",
    "Task",
    "TaskCreate",
    "TaskUpdate",
    "TransactionType",
    "VerificationStatus",
    "Weekday",
]

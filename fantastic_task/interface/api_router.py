"""HTTP interface to the task scheduler for UI clients.

The acting member is taken from the ``X-Member-Id`` header. Authentication
happens in front of this service.
"""

import logging
from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel

from fantastic_task.core.db_client import Store
from fantastic_task.core.errors import ErrorCode, ErrorResponse, FantasticTaskError, to_error_response
from fantastic_task.domain.assignment import Assignment
from fantastic_task.domain.completion import Completion
from fantastic_task.domain.create_models import CompletionRequest, TaskCreate
from fantastic_task.domain.task import Task
from fantastic_task.domain.update_models import RejectionUpdate, TaskUpdate
from fantastic_task.models.service_models import (
    Achievement,
    FamilySummary,
    MemberStatistics,
    ServiceResult,
    TaskDayView,
    Timeframe,
    TotalPoints,
)
from fantastic_task.services.analytics_service import StatisticsService
from fantastic_task.services.bonus_points import calculate_total_points
from fantastic_task.services.scheduling_service import TaskScheduler


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/families/{family_id}", tags=["tasks"])

_STATUS_BY_CODE = {
    ErrorCode.ERR_VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_INVALID_STATE_TRANSITION: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_INVALID_RECURRENCE_PATTERN: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_INSUFFICIENT_POINTS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.ERR_PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.ERR_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class MemberReport(BaseModel):
    """Statistics for one member with the achievements they unlocked."""

    statistics: MemberStatistics
    achievements: list[Achievement]


def get_db(request: Request) -> Store:
    """Store created at startup."""
    return request.app.state.db


def get_scheduler(family_id: str, db: Annotated[Store, Depends(get_db)]) -> TaskScheduler:
    return TaskScheduler(db, family_id=family_id)


MemberId = Annotated[str, Header(alias="X-Member-Id")]
Scheduler = Annotated[TaskScheduler, Depends(get_scheduler)]


def _http_error(error: ErrorResponse) -> HTTPException:
    status_code = _STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=error.model_dump(mode="json"))


def unwrap(result: ServiceResult[Any]) -> Any:
    """Return the data of a result or raise the matching HTTP error."""
    if result.error is not None:
        raise _http_error(result.error)
    return result.data


@router.get("/tasks")
async def list_tasks_for_date(scheduler: Scheduler, day: date | None = None) -> list[Task]:
    """Tasks due on a date (today when omitted)."""
    return unwrap(await scheduler.tasks_for_date(day or date.today()))


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(scheduler: Scheduler, member_id: MemberId, data: TaskCreate) -> Task:
    try:
        return await scheduler.tasks.create_task(actor_id=member_id, data=data)
    except FantasticTaskError as e:
        raise _http_error(to_error_response(e)) from e


@router.patch("/tasks/{task_id}")
async def update_task(scheduler: Scheduler, member_id: MemberId, task_id: str, data: TaskUpdate) -> Task:
    try:
        return await scheduler.tasks.update_task(actor_id=member_id, task_id=task_id, data=data)
    except FantasticTaskError as e:
        raise _http_error(to_error_response(e)) from e


@router.delete("/tasks/{task_id}")
async def delete_task(scheduler: Scheduler, member_id: MemberId, task_id: str) -> Task:
    try:
        return await scheduler.tasks.delete_task(actor_id=member_id, task_id=task_id)
    except FantasticTaskError as e:
        raise _http_error(to_error_response(e)) from e


@router.post("/tasks/{task_id}/assignments", status_code=status.HTTP_201_CREATED)
async def assign_task(
    scheduler: Scheduler,
    member_id: MemberId,
    task_id: str,
    assigned_to: str,
    due_date: date | None = None,
) -> Assignment:
    try:
        return await scheduler.tasks.assign_task(
            actor_id=member_id,
            task_id=task_id,
            member_id=assigned_to,
            due_date=due_date,
        )
    except FantasticTaskError as e:
        raise _http_error(to_error_response(e)) from e


@router.get("/overview")
async def day_overview(scheduler: Scheduler, member_id: MemberId, day: date | None = None) -> list[TaskDayView]:
    """The acting member's view of a day."""
    return unwrap(await scheduler.day_overview(member_id, day or date.today()))


@router.get("/members/{target_id}/assignments")
async def member_assignments(scheduler: Scheduler, target_id: str, day: date | None = None) -> list[Assignment]:
    return unwrap(await scheduler.tasks_for_member(target_id, day))


@router.get("/members/{target_id}/completions")
async def member_completions(scheduler: Scheduler, target_id: str, day: date | None = None) -> list[Completion]:
    return unwrap(await scheduler.completions_for_member(target_id, day))


@router.get("/verifications/pending")
async def pending_verifications(scheduler: Scheduler) -> list[Completion]:
    return unwrap(await scheduler.pending_verifications())


@router.post("/completions", status_code=status.HTTP_201_CREATED)
async def complete_task(scheduler: Scheduler, member_id: MemberId, request: CompletionRequest) -> Completion:
    """Complete a task; the acting member is the completer unless the body names one."""
    if not request.completed_by:
        request = request.model_copy(update={"completed_by": member_id})
    return unwrap(await scheduler.complete_with_data(request))


@router.post("/assignments/{assignment_id}/complete", status_code=status.HTTP_201_CREATED)
async def complete_assignment(
    scheduler: Scheduler,
    member_id: MemberId,
    assignment_id: str,
    day: date | None = None,
) -> Completion:
    return unwrap(await scheduler.complete_by_assignment(assignment_id, member_id, day))


@router.delete("/completions/{completion_id}")
async def undo_completion(scheduler: Scheduler, completion_id: str) -> dict[str, str]:
    unwrap(await scheduler.undo_completion(completion_id))
    return {"status": "undone", "completion_id": completion_id}


@router.post("/completions/{completion_id}/approve")
async def approve_completion(scheduler: Scheduler, member_id: MemberId, completion_id: str) -> Completion:
    return unwrap(await scheduler.approve_completion(completion_id, member_id))


@router.post("/completions/{completion_id}/reject")
async def reject_completion(
    scheduler: Scheduler,
    member_id: MemberId,
    completion_id: str,
    body: RejectionUpdate | None = None,
) -> Completion:
    reason = body.reason if body else None
    return unwrap(await scheduler.reject_completion(completion_id, member_id, reason))


@router.get("/bonus-preview")
async def bonus_preview(
    base_points: int | None = None,
    time_spent_minutes: int | None = None,
    estimated_minutes: int | None = None,
) -> TotalPoints:
    """Points a completion would carry, for showing the bonus before submitting."""
    return calculate_total_points(base_points, time_spent_minutes, estimated_minutes)


@router.get("/statistics")
async def statistics(
    family_id: str,
    db: Annotated[Store, Depends(get_db)],
    timeframe: Timeframe = Timeframe.ALL,
) -> list[MemberReport]:
    service = StatisticsService(db)
    try:
        stats = await service.member_statistics(family_id=family_id, timeframe=timeframe)
    except FantasticTaskError as e:
        raise _http_error(to_error_response(e)) from e
    return [MemberReport(statistics=s, achievements=service.achievements(s)) for s in stats]


@router.get("/statistics/summary")
async def statistics_summary(
    family_id: str,
    db: Annotated[Store, Depends(get_db)],
    timeframe: Timeframe = Timeframe.ALL,
) -> FamilySummary:
    return await StatisticsService(db).family_summary(family_id=family_id, timeframe=timeframe)

"""Task scheduler: the family-facing entry point of the task engine.

Composes the recurrence policy, completion ledger and points service to
answer "what is due today", "what is mine", "what needs verifying", and to
process completions end to end. Every public operation returns a
ServiceResult instead of raising.

A completion is recorded before its points are posted. If posting fails the
completion stays; callers see the error and can undo or retry.
"""

import logging
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from typing import TypeVar

from fantastic_task.core.db_client import ChangeCallback, DatabaseError, Store
from fantastic_task.core.errors import FantasticTaskError, NotFoundError, ValidationError, to_error_response
from fantastic_task.core.logging import span
from fantastic_task.domain.assignment import Assignment
from fantastic_task.domain.completion import Completion, VerificationStatus
from fantastic_task.domain.create_models import CompletionRequest
from fantastic_task.domain.member import Member
from fantastic_task.domain.points import TransactionType
from fantastic_task.domain.task import OnceRecurrence, Task
from fantastic_task.models.service_models import DayTaskStatus, ServiceResult, TaskDayView
from fantastic_task.services.bonus_points import calculate_total_points
from fantastic_task.services.completion_ledger import COMPLETIONS, CompletionLedger
from fantastic_task.services.member_service import MEMBERS, MemberService
from fantastic_task.services.permissions import Permission, require_permission
from fantastic_task.services.points_service import TRANSACTIONS, PointsService
from fantastic_task.services.recurrence_policy import is_due
from fantastic_task.services.task_service import ASSIGNMENTS, TASKS, TaskService


logger = logging.getLogger(__name__)

T = TypeVar("T")

WATCHED_COLLECTIONS = (TASKS, ASSIGNMENTS, COMPLETIONS, TRANSACTIONS, MEMBERS)


class TaskScheduler:
    """Scheduling and completion operations for one family.

    Construct one per session with the shared store; nothing is cached between
    calls, so every read reflects the store's latest state.
    """

    def __init__(self, db: Store, *, family_id: str) -> None:
        self._db = db
        self.family_id = family_id
        self.members = MemberService(db)
        self.points = PointsService(db)
        self.tasks = TaskService(db, self.members)
        self.ledger = CompletionLedger(db, points=self.points, tasks=self.tasks, members=self.members)
        self._unsubscribers: list[Callable[[], None]] = []

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]]) -> ServiceResult[T]:
        """Run an operation inside a span and wrap its outcome in a ServiceResult."""
        with span(f"task_scheduler.{operation}"):
            try:
                data = await call()
            except (FantasticTaskError, DatabaseError) as e:
                logger.warning(
                    "Task scheduler operation failed",
                    extra={"operation": operation, "family_id": self.family_id, "error": str(e)},
                )
                return ServiceResult(error=to_error_response(e))
            except Exception as e:
                logger.exception(
                    "Unexpected error in task scheduler",
                    extra={"operation": operation, "family_id": self.family_id},
                )
                return ServiceResult(error=to_error_response(e))
            return ServiceResult(data=data)

    # Family scoping

    async def _family_tasks(self, *, include_inactive: bool = False) -> list[Task]:
        return await self.tasks.list_tasks(family_id=self.family_id, include_inactive=include_inactive)

    async def _family_task_ids(self) -> set[str]:
        return {task.id for task in await self._family_tasks(include_inactive=True)}

    async def _family_completion(self, completion_id: str) -> Completion:
        completion = await self.ledger.get_completion(completion_id=completion_id)
        if completion.task_id not in await self._family_task_ids():
            msg = f"Completion not found: {completion_id}"
            raise NotFoundError(msg)
        return completion

    async def _family_member(self, member_id: str) -> Member:
        member = await self.members.get_member(member_id=member_id)
        if member.family_id != self.family_id:
            msg = f"Member not found: {member_id}"
            raise NotFoundError(msg)
        return member

    async def _completions_by_task(self, task_ids: set[str]) -> dict[str, list[Completion]]:
        return await self.ledger.completions_for_tasks(task_ids=task_ids)

    # Queries

    async def _tasks_for_date(self, day: date) -> list[Task]:
        tasks = await self._family_tasks()
        history = await self._completions_by_task({task.id for task in tasks})
        return [task for task in tasks if is_due(task, day, history.get(task.id, []))]

    async def tasks_for_date(self, day: date) -> ServiceResult[list[Task]]:
        """Active family tasks that are due on a date."""
        return await self._run("tasks_for_date", lambda: self._tasks_for_date(day))

    async def _tasks_for_member(self, member_id: str, day: date | None) -> list[Assignment]:
        task_ids = await self._family_task_ids()
        assignments = await self.tasks.list_assignments(member_id=member_id)
        return [a for a in assignments if a.task_id in task_ids and (day is None or a.due_date == day)]

    async def tasks_for_member(self, member_id: str, day: date | None = None) -> ServiceResult[list[Assignment]]:
        """Assignments of a member, optionally only those due on a date."""
        return await self._run("tasks_for_member", lambda: self._tasks_for_member(member_id, day))

    async def _completions_for_member(self, member_id: str, day: date | None) -> list[Completion]:
        task_ids = await self._family_task_ids()
        completions = await self.ledger.completions_by_member(member_id=member_id)
        return [c for c in completions if c.task_id in task_ids and (day is None or c.completion_date == day)]

    async def completions_for_member(
        self, member_id: str, day: date | None = None
    ) -> ServiceResult[list[Completion]]:
        """Completions done by a member, optionally only those on a date."""
        return await self._run("completions_for_member", lambda: self._completions_for_member(member_id, day))

    async def _pending_verifications(self) -> list[Completion]:
        task_ids = await self._family_task_ids()
        return [c for c in await self.ledger.pending_verifications() if c.task_id in task_ids]

    async def pending_verifications(self) -> ServiceResult[list[Completion]]:
        """Children's completions in this family that still need an adult's decision."""
        return await self._run("pending_verifications", self._pending_verifications)

    # Completion processing

    async def _complete(self, request: CompletionRequest) -> Completion:
        if not request.task_id:
            msg = "task_id is required"
            raise ValidationError(msg)
        if not request.completed_by:
            msg = "completed_by is required"
            raise ValidationError(msg)

        try:
            task = await self.tasks.get_task(task_id=request.task_id)
            member = await self._family_member(request.completed_by)
        except NotFoundError as e:
            raise ValidationError(e.message) from e
        if task.family_id != self.family_id:
            msg = f"Task not found: {request.task_id}"
            raise ValidationError(msg)
        if not task.is_active:
            msg = f"Task {task.id} is no longer active"
            raise ValidationError(msg)

        points = request.points_awarded if request.points_awarded is not None else task.points
        bonus = 0
        if request.time_spent_minutes is not None and task.estimated_minutes:
            total = calculate_total_points(points, request.time_spent_minutes, task.estimated_minutes)
            points, bonus = total.total_points, total.bonus_points

        completed_at = request.completed_at or datetime.combine(
            request.completion_date or date.today(),
            datetime.now().time(),
        )
        status = VerificationStatus.PENDING if member.is_child else VerificationStatus.NONE_REQUIRED

        completion = await self.ledger.record_completion(
            {
                "task_id": task.id,
                "assignment_id": request.assignment_id,
                "completed_by": member.id,
                "completed_at": completed_at,
                "time_spent_minutes": request.time_spent_minutes,
                "comment": request.comment,
                "points_awarded": points,
                "bonus_points": bonus,
                "verification_status": status,
            }
        )

        if status == VerificationStatus.NONE_REQUIRED and completion.points_awarded > 0:
            await self.points.award_points(
                member_id=member.id,
                points=completion.points_awarded,
                description=f"Completed: {task.title}",
                transaction_type=TransactionType.EARNED,
                completion_id=completion.id,
                bonus_points=completion.bonus_points,
            )

        if completion.assignment_id:
            await self.tasks.set_assignment_completed(assignment_id=completion.assignment_id, is_completed=True)
        if isinstance(task.recurrence, OnceRecurrence):
            await self.tasks.set_active(task_id=task.id, is_active=False)

        logger.info(
            "Completed task",
            extra={
                "completion_id": completion.id,
                "task_id": task.id,
                "member_id": member.id,
                "points": completion.points_awarded,
                "status": status,
            },
        )
        return completion

    async def complete_with_data(self, request: CompletionRequest) -> ServiceResult[Completion]:
        """Complete a task from explicit completion data."""
        return await self._run("complete_with_data", lambda: self._complete(request))

    async def _complete_by_assignment(self, assignment_id: str, member_id: str, day: date | None) -> Completion:
        assignment = await self.tasks.get_assignment(assignment_id=assignment_id)
        request = CompletionRequest(
            task_id=assignment.task_id,
            completed_by=member_id,
            assignment_id=assignment.id,
            completion_date=day or assignment.due_date,
        )
        return await self._complete(request)

    async def complete_by_assignment(
        self,
        assignment_id: str,
        member_id: str,
        day: date | None = None,
    ) -> ServiceResult[Completion]:
        """Complete the task behind an assignment as the given member.

        The completion date defaults to the assignment's due date, then today.
        """
        return await self._run(
            "complete_by_assignment",
            lambda: self._complete_by_assignment(assignment_id, member_id, day),
        )

    async def _undo(self, completion_id: str) -> None:
        await self._family_completion(completion_id)
        await self.ledger.undo(completion_id=completion_id)

    async def undo_completion(self, completion_id: str) -> ServiceResult[None]:
        """Remove a completion and any points it awarded."""
        return await self._run("undo_completion", lambda: self._undo(completion_id))

    async def _verifier(self, verifier_id: str) -> Member:
        verifier = await self._family_member(verifier_id)
        require_permission(verifier, Permission.VERIFY_COMPLETIONS)
        return verifier

    async def _approve(self, completion_id: str, verifier_id: str) -> Completion:
        verifier = await self._verifier(verifier_id)
        await self._family_completion(completion_id)
        return await self.ledger.approve(completion_id=completion_id, verifier_id=verifier.id)

    async def approve_completion(self, completion_id: str, verifier_id: str) -> ServiceResult[Completion]:
        """Approve a child's pending completion and post its points."""
        return await self._run("approve_completion", lambda: self._approve(completion_id, verifier_id))

    async def _reject(self, completion_id: str, verifier_id: str, reason: str | None) -> Completion:
        verifier = await self._verifier(verifier_id)
        await self._family_completion(completion_id)
        return await self.ledger.reject(completion_id=completion_id, verifier_id=verifier.id, reason=reason)

    async def reject_completion(
        self,
        completion_id: str,
        verifier_id: str,
        reason: str | None = None,
    ) -> ServiceResult[Completion]:
        """Reject a child's pending completion; the task becomes available again."""
        return await self._run("reject_completion", lambda: self._reject(completion_id, verifier_id, reason))

    # Day overview

    async def _day_overview(self, member_id: str, day: date) -> list[TaskDayView]:
        all_tasks = await self._family_tasks(include_inactive=True)
        history = await self._completions_by_task({task.id for task in all_tasks})
        assignments = await self._tasks_for_member(member_id, None)

        views = []
        for task in all_tasks:
            completions = history.get(task.id, [])
            done_today = [c for c in completions if c.is_live and c.completion_date == day]
            earlier = [c for c in completions if c.completion_date < day]

            if not done_today and not (task.is_active and is_due(task, day, earlier)):
                continue

            task_assignments = [a for a in assignments if a.task_id == task.id]
            if done_today:
                latest = max(done_today, key=lambda c: c.completed_at)
                status = (
                    DayTaskStatus.PENDING_VERIFICATION
                    if latest.verification_status == VerificationStatus.PENDING
                    else DayTaskStatus.COMPLETED
                )
                assignment = next((a for a in task_assignments if a.id == latest.assignment_id), None)
                views.append(TaskDayView(task=task, status=status, completion=latest, assignment=assignment))
                continue

            due_today = next((a for a in task_assignments if a.due_date == day and not a.is_completed), None)
            overdue = next(
                (a for a in task_assignments if a.due_date is not None and a.due_date < day and not a.is_completed),
                None,
            )
            if due_today:
                views.append(TaskDayView(task=task, status=DayTaskStatus.ASSIGNED, assignment=due_today))
            elif overdue:
                views.append(TaskDayView(task=task, status=DayTaskStatus.OVERDUE, assignment=overdue))
            else:
                views.append(TaskDayView(task=task, status=DayTaskStatus.AVAILABLE))
        return views

    async def day_overview(self, member_id: str, day: date) -> ServiceResult[list[TaskDayView]]:
        """Tasks relevant to a member on a date, each annotated with its status.

        A task shows when it was completed that day or is due given the
        completions from before that day, so a day keeps its look after
        tasks are ticked off.
        """
        return await self._run("day_overview", lambda: self._day_overview(member_id, day))

    # Change notification

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Call back on any change to tasks, assignments, completions, points or members.

        Subscribers should re-fetch what they display; writes from several
        clients are not ordered and the last one wins.
        """
        handles = [self._db.subscribe(collection, callback) for collection in WATCHED_COLLECTIONS]
        self._unsubscribers.extend(handles)

        def unsubscribe() -> None:
            for handle in handles:
                handle()
                if handle in self._unsubscribers:
                    self._unsubscribers.remove(handle)

        return unsubscribe

    def close(self) -> None:
        """Drop every subscription made through this scheduler."""
        for handle in self._unsubscribers:
            handle()
        self._unsubscribers.clear()
        logger.debug("Closed task scheduler subscriptions", extra={"family_id": self.family_id})


"""Task service for creating, editing, retiring and assigning tasks."""

import logging
from datetime import date, datetime
from typing import Any

from fantastic_task.core.db_client import RecordNotFoundError, Store, list_all_records, sanitize_param
from fantastic_task.core.errors import NotFoundError, ValidationError
from fantastic_task.core.logging import span
from fantastic_task.domain.assignment import Assignment
from fantastic_task.domain.create_models import AssignmentCreate, TaskCreate
from fantastic_task.domain.member import Member
from fantastic_task.domain.task import Task
from fantastic_task.domain.update_models import TaskUpdate
from fantastic_task.services.member_service import MemberService
from fantastic_task.services.permissions import Permission, has_permission, require_permission
from fantastic_task.services.recurrence_policy import parse_recurrence


logger = logging.getLogger(__name__)

TASKS = "tasks"
ASSIGNMENTS = "task_assignments"


class TaskService:
    """Task CRUD gated by the acting member's role.

    Tasks are never hard-deleted because completions keep pointing at them;
    ``delete_task`` only clears ``is_active``.
    """

    def __init__(self, db: Store, members: MemberService | None = None) -> None:
        self._db = db
        self._members = members or MemberService(db)

    @staticmethod
    def has_permission(member: Member | None, action: str, target_member: Member | None = None) -> bool:
        return has_permission(member, action, target_member)

    async def get_task(self, *, task_id: str) -> Task:
        """Get a task by ID.

        Raises:
            NotFoundError: If the task does not exist
        """
        with span("task_service.get_task"):
            try:
                record = await self._db.get_record(collection=TASKS, record_id=task_id)
            except RecordNotFoundError as e:
                msg = f"Task not found: {task_id}"
                raise NotFoundError(msg) from e
            return Task(**record)

    async def list_tasks(self, *, family_id: str, include_inactive: bool = False) -> list[Task]:
        """List a family's tasks, active only unless include_inactive is set."""
        with span("task_service.list_tasks"):
            filter_query = f'family_id = "{sanitize_param(family_id)}"'
            if not include_inactive:
                filter_query += ' && is_active = "true"'

            records = await list_all_records(
                self._db,
                collection=TASKS,
                filter_query=filter_query,
                sort="created_at",
            )
            return [Task(**record) for record in records]

    async def _family_task(self, *, actor: Member, task_id: str) -> Task:
        task = await self.get_task(task_id=task_id)
        if task.family_id != actor.family_id:
            # Tasks of other families are reported as missing
            msg = f"Task not found: {task_id}"
            raise NotFoundError(msg)
        return task

    async def create_task(self, *, actor_id: str, data: TaskCreate) -> Task:
        """Create a task in the actor's family.

        Raises:
            PermissionDeniedError: If the actor may not edit tasks
            ValidationError: If recurrence_text cannot be parsed
        """
        with span("task_service.create_task"):
            actor = await self._members.get_member(member_id=actor_id)
            require_permission(actor, Permission.EDIT_TASKS)

            recurrence = parse_recurrence(data.recurrence_text) if data.recurrence_text else data.recurrence
            record = await self._db.create_record(
                collection=TASKS,
                data={
                    "family_id": actor.family_id,
                    "title": data.title,
                    "description": data.description,
                    "points": data.points,
                    "estimated_minutes": data.estimated_minutes,
                    "recurrence": recurrence.model_dump(mode="json"),
                    "is_active": True,
                    "created_by": actor.id,
                    "created_at": datetime.now().isoformat(),
                },
            )

            logger.info("Created task", extra={"task_id": record["id"], "member_id": actor.id})
            return Task(**record)

    async def update_task(self, *, actor_id: str, task_id: str, data: TaskUpdate) -> Task:
        """Apply a partial update to a task.

        Raises:
            PermissionDeniedError: If the actor may not edit tasks
            NotFoundError: If the task is not in the actor's family
            ValidationError: If the update is empty or recurrence_text is invalid
        """
        with span("task_service.update_task"):
            actor = await self._members.get_member(member_id=actor_id)
            require_permission(actor, Permission.EDIT_TASKS)
            await self._family_task(actor=actor, task_id=task_id)

            changes: dict[str, Any] = data.model_dump(exclude_unset=True, exclude={"recurrence", "recurrence_text"})
            if data.recurrence_text:
                changes["recurrence"] = parse_recurrence(data.recurrence_text).model_dump(mode="json")
            elif data.recurrence is not None:
                changes["recurrence"] = data.recurrence.model_dump(mode="json")

            if "title" in changes:
                changes["title"] = (changes["title"] or "").strip()
                if not changes["title"]:
                    msg = "Title cannot be empty"
                    raise ValidationError(msg)

            if not changes:
                msg = "Nothing to update"
                raise ValidationError(msg)

            record = await self._db.update_record(collection=TASKS, record_id=task_id, data=changes)
            logger.info("Updated task", extra={"task_id": task_id, "fields": sorted(changes)})
            return Task(**record)

    async def delete_task(self, *, actor_id: str, task_id: str) -> Task:
        """Soft-delete a task by marking it inactive."""
        with span("task_service.delete_task"):
            actor = await self._members.get_member(member_id=actor_id)
            require_permission(actor, Permission.EDIT_TASKS)
            await self._family_task(actor=actor, task_id=task_id)

            record = await self._db.update_record(collection=TASKS, record_id=task_id, data={"is_active": False})
            logger.info("Deactivated task", extra={"task_id": task_id, "member_id": actor.id})
            return Task(**record)

    async def set_active(self, *, task_id: str, is_active: bool) -> None:
        """Retire or restore a task without a permission check, for completion bookkeeping."""
        await self._db.update_record(collection=TASKS, record_id=task_id, data={"is_active": is_active})
        logger.info("Set task active flag", extra={"task_id": task_id, "is_active": is_active})

    async def assign_task(
        self,
        *,
        actor_id: str,
        task_id: str,
        member_id: str,
        due_date: date | None = None,
    ) -> Assignment:
        """Assign a task to a member of the same family.

        Raises:
            PermissionDeniedError: If the actor may not assign tasks
            NotFoundError: If the task or member is not in the actor's family
            ValidationError: If the task is inactive
        """
        with span("task_service.assign_task"):
            actor = await self._members.get_member(member_id=actor_id)
            require_permission(actor, Permission.ASSIGN_TASKS)
            task = await self._family_task(actor=actor, task_id=task_id)
            if not task.is_active:
                msg = f"Cannot assign inactive task {task_id}"
                raise ValidationError(msg)

            assignee = await self._members.get_member(member_id=member_id)
            if assignee.family_id != actor.family_id:
                msg = f"Member not found: {member_id}"
                raise NotFoundError(msg)

            assignment = AssignmentCreate(
                task_id=task.id,
                assigned_to=assignee.id,
                assigned_by=actor.id,
                due_date=due_date,
            )
            record = await self._db.create_record(collection=ASSIGNMENTS, data=assignment.model_dump(mode="json"))

            logger.info(
                "Assigned task",
                extra={"task_id": task.id, "assigned_to": assignee.id, "due_date": str(due_date)},
            )
            return Assignment(**record)

    async def get_assignment(self, *, assignment_id: str) -> Assignment:
        """Get an assignment by ID.

        Raises:
            NotFoundError: If the assignment does not exist
        """
        try:
            record = await self._db.get_record(collection=ASSIGNMENTS, record_id=assignment_id)
        except RecordNotFoundError as e:
            msg = f"Assignment not found: {assignment_id}"
            raise NotFoundError(msg) from e
        return Assignment(**record)

    async def list_assignments(self, *, member_id: str | None = None) -> list[Assignment]:
        filter_query = f'assigned_to = "{sanitize_param(member_id)}"' if member_id else ""
        records = await list_all_records(
            self._db,
            collection=ASSIGNMENTS,
            filter_query=filter_query,
            sort="due_date",
        )
        return [Assignment(**record) for record in records]

    async def set_assignment_completed(self, *, assignment_id: str, is_completed: bool) -> None:
        """Flip an assignment's completed flag; a missing assignment is logged and skipped."""
        try:
            await self._db.update_record(
                collection=ASSIGNMENTS,
                record_id=assignment_id,
                data={"is_completed": is_completed},
            )
        except RecordNotFoundError:
            logger.warning("Assignment no longer exists", extra={"assignment_id": assignment_id})

"""Unit tests for task_service module."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from fantastic_task.core.errors import ErrorCode, NotFoundError, PermissionDeniedError, ValidationError
from fantastic_task.domain.create_models import TaskCreate
from fantastic_task.domain.task import FixedDaysRecurrence, FlexibleIntervalRecurrence, OnceRecurrence, Weekday
from fantastic_task.domain.update_models import TaskUpdate
from fantastic_task.services.member_service import MemberService
from fantastic_task.services.task_service import TASKS, TaskService
from tests.unit.conftest import FAMILY_ID, OTHER_FAMILY_ID


@pytest.fixture
def task_service(in_memory_db):
    return TaskService(in_memory_db)


@pytest.mark.unit
class TestCreateTask:
    """Tests for TaskService.create_task."""

    async def test_admin_creates_task_in_own_family(self, task_service, family):
        task = await task_service.create_task(
            actor_id=family["admin"]["id"],
            data=TaskCreate(title="  Vacuum  ", points=15, estimated_minutes=20),
        )

        assert task.title == "Vacuum"
        assert task.family_id == FAMILY_ID
        assert task.created_by == family["admin"]["id"]
        assert task.is_active is True
        assert task.recurrence == FixedDaysRecurrence()
        assert datetime.fromisoformat(task.created_at).tzinfo is None

    async def test_recurrence_text_is_parsed(self, task_service, family):
        task = await task_service.create_task(
            actor_id=family["parent"]["id"],
            data=TaskCreate(title="Bins", recurrence_text="Mon,Thu"),
        )

        assert task.recurrence == FixedDaysRecurrence(days=frozenset({Weekday.MONDAY, Weekday.THURSDAY}))

    async def test_structured_recurrence_is_stored(self, task_service, in_memory_db, family):
        task = await task_service.create_task(
            actor_id=family["admin"]["id"],
            data=TaskCreate(title="Change sheets", recurrence={"kind": "flexible_interval", "days": 14}),
        )

        stored = await in_memory_db.get_record(TASKS, task.id)
        assert stored["recurrence"] == {"kind": "flexible_interval", "days": 14}
        assert task.recurrence == FlexibleIntervalRecurrence(days=14)

    async def test_child_cannot_create_task(self, task_service, in_memory_db, family):
        with pytest.raises(PermissionDeniedError):
            await task_service.create_task(actor_id=family["child"]["id"], data=TaskCreate(title="Candy"))

        assert await in_memory_db.list_records(TASKS) == []

    async def test_invalid_recurrence_text(self, task_service, family):
        with pytest.raises(ValidationError) as exc_info:
            await task_service.create_task(
                actor_id=family["admin"]["id"],
                data=TaskCreate(title="Odd", recurrence_text="now and then"),
            )

        assert exc_info.value.code == ErrorCode.ERR_INVALID_RECURRENCE_PATTERN

    async def test_unknown_actor(self, task_service):
        with pytest.raises(NotFoundError):
            await task_service.create_task(actor_id="9999", data=TaskCreate(title="Nobody"))

    def test_blank_title_is_invalid(self):
        with pytest.raises(ValueError, match="Title cannot be empty"):
            TaskCreate(title="   ")


@pytest.mark.unit
class TestUpdateAndDeleteTask:
    """Tests for TaskService.update_task and delete_task."""

    async def test_partial_update(self, task_service, family, task_factory):
        existing = await task_factory(title="Dishes", points=5)

        task = await task_service.update_task(
            actor_id=family["parent"]["id"],
            task_id=existing["id"],
            data=TaskUpdate(points=8, recurrence_text="once"),
        )

        assert task.points == 8
        assert task.title == "Dishes"
        assert task.recurrence == OnceRecurrence()

    async def test_empty_update_is_invalid(self, task_service, family, task_factory):
        existing = await task_factory()

        with pytest.raises(ValidationError, match="Nothing to update"):
            await task_service.update_task(actor_id=family["admin"]["id"], task_id=existing["id"], data=TaskUpdate())

    @pytest.mark.parametrize("field", ["title", "description", "points", "is_active"])
    def test_null_is_refused_for_required_columns(self, field):
        with pytest.raises(PydanticValidationError, match=f"{field} cannot be null"):
            TaskUpdate(**{field: None})

    async def test_estimate_can_be_cleared(self, task_service, family, task_factory):
        existing = await task_factory(estimated_minutes=30)

        task = await task_service.update_task(
            actor_id=family["admin"]["id"],
            task_id=existing["id"],
            data=TaskUpdate(estimated_minutes=None),
        )

        assert task.estimated_minutes is None

    async def test_other_family_task_is_not_found(self, task_service, family, task_factory):
        existing = await task_factory(family_id=OTHER_FAMILY_ID)

        with pytest.raises(NotFoundError):
            await task_service.update_task(
                actor_id=family["admin"]["id"],
                task_id=existing["id"],
                data=TaskUpdate(points=1),
            )

    async def test_child_cannot_update(self, task_service, family, task_factory):
        existing = await task_factory()

        with pytest.raises(PermissionDeniedError):
            await task_service.update_task(
                actor_id=family["child"]["id"],
                task_id=existing["id"],
                data=TaskUpdate(points=100),
            )

    async def test_delete_is_soft(self, task_service, in_memory_db, family, task_factory):
        existing = await task_factory()

        task = await task_service.delete_task(actor_id=family["admin"]["id"], task_id=existing["id"])

        assert task.is_active is False
        assert (await in_memory_db.get_record(TASKS, existing["id"]))["is_active"] is False
        assert await task_service.list_tasks(family_id=FAMILY_ID) == []
        assert len(await task_service.list_tasks(family_id=FAMILY_ID, include_inactive=True)) == 1

    async def test_get_unknown_task(self, task_service):
        with pytest.raises(NotFoundError, match="Task not found"):
            await task_service.get_task(task_id="9999")


@pytest.mark.unit
class TestAssignTask:
    """Tests for TaskService.assign_task."""

    async def test_assign_to_family_member(self, task_service, family, task_factory):
        existing = await task_factory()

        assignment = await task_service.assign_task(
            actor_id=family["admin"]["id"],
            task_id=existing["id"],
            member_id=family["child"]["id"],
            due_date=date(2024, 3, 5),
        )

        assert assignment.assigned_to == family["child"]["id"]
        assert assignment.assigned_by == family["admin"]["id"]
        assert assignment.due_date == date(2024, 3, 5)
        assert assignment.is_completed is False

    async def test_child_cannot_assign(self, task_service, family, task_factory):
        existing = await task_factory()

        with pytest.raises(PermissionDeniedError):
            await task_service.assign_task(
                actor_id=family["child"]["id"],
                task_id=existing["id"],
                member_id=family["parent"]["id"],
            )

    async def test_assign_to_other_family_member(self, task_service, family, task_factory):
        existing = await task_factory()

        with pytest.raises(NotFoundError, match="Member not found"):
            await task_service.assign_task(
                actor_id=family["admin"]["id"],
                task_id=existing["id"],
                member_id=family["outsider"]["id"],
            )

    async def test_assign_inactive_task(self, task_service, family, task_factory):
        existing = await task_factory(is_active=False)

        with pytest.raises(ValidationError, match="inactive"):
            await task_service.assign_task(
                actor_id=family["admin"]["id"],
                task_id=existing["id"],
                member_id=family["parent"]["id"],
            )

    async def test_set_completed_on_missing_assignment_is_skipped(self, task_service):
        await task_service.set_assignment_completed(assignment_id="9999", is_completed=True)

    async def test_list_assignments_by_member(self, task_service, family, task_factory):
        existing = await task_factory()
        mine = await task_service.assign_task(
            actor_id=family["admin"]["id"], task_id=existing["id"], member_id=family["parent"]["id"]
        )
        await task_service.assign_task(
            actor_id=family["admin"]["id"], task_id=existing["id"], member_id=family["child"]["id"]
        )

        assignments = await task_service.list_assignments(member_id=family["parent"]["id"])

        assert [a.id for a in assignments] == [mine.id]
        assert len(await task_service.list_assignments()) == 2


@pytest.mark.unit
class TestMemberService:
    """Tests for the member directory lookups."""

    async def test_list_members_by_family(self, in_memory_db, family):
        members = await MemberService(in_memory_db).list_members(family_id=FAMILY_ID)

        assert {m.name for m in members} == {"Alice", "Bob", "Charlie"}

    async def test_child_ids(self, in_memory_db, family):
        assert await MemberService(in_memory_db).child_ids() == {family["child"]["id"]}

    async def test_unknown_member(self, in_memory_db):
        with pytest.raises(NotFoundError, match="Member not found"):
            await MemberService(in_memory_db).get_member(member_id="9999")

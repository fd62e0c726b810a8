"""Pytest configuration and fixtures for unit tests."""

import uuid
from datetime import datetime

import pytest

from fantastic_task.services.scheduling_service import TaskScheduler
from tests.unit.mocks import InMemoryDBClient


FAMILY_ID = "family-1"
OTHER_FAMILY_ID = "family-2"


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def member_factory(in_memory_db):
    """Factory for creating family members.

    Usage:
        child = await member_factory(name="Kid", role="child")
    """

    async def _create_member(**kwargs):
        member_data = {
            "family_id": kwargs.pop("family_id", FAMILY_ID),
            "name": kwargs.pop("name", f"Member {uuid.uuid4().hex[:6]}"),
            "role": kwargs.pop("role", "member"),
            "points_balance": kwargs.pop("points_balance", 0),
        }
        member_data.update(kwargs)
        return await in_memory_db.create_record(collection="members", data=member_data)

    return _create_member


@pytest.fixture
def task_factory(in_memory_db):
    """Factory for creating tasks directly in the store.

    Usage:
        task = await task_factory(title="Dishes", points=5, recurrence={"kind": "once"})
    """

    async def _create_task(**kwargs):
        task_data = {
            "family_id": kwargs.pop("family_id", FAMILY_ID),
            "title": kwargs.pop("title", f"Task {uuid.uuid4().hex[:6]}"),
            "description": kwargs.pop("description", ""),
            "points": kwargs.pop("points", 10),
            "estimated_minutes": kwargs.pop("estimated_minutes", None),
            "recurrence": kwargs.pop("recurrence", {"kind": "fixed_days", "days": []}),
            "is_active": kwargs.pop("is_active", True),
            "created_by": kwargs.pop("created_by", None),
            "created_at": kwargs.pop("created_at", datetime.now().isoformat()),
        }
        task_data.update(kwargs)
        return await in_memory_db.create_record(collection="tasks", data=task_data)

    return _create_task


@pytest.fixture
async def family(member_factory):
    """An admin, an adult member, a child, and an admin from another family."""
    return {
        "admin": await member_factory(name="Alice", role="admin"),
        "parent": await member_factory(name="Bob", role="member"),
        "child": await member_factory(name="Charlie", role="child"),
        "outsider": await member_factory(name="Olivia", role="admin", family_id=OTHER_FAMILY_ID),
    }


@pytest.fixture
def scheduler(in_memory_db):
    """TaskScheduler for the test family backed by the in-memory store."""
    task_scheduler = TaskScheduler(in_memory_db, family_id=FAMILY_ID)
    yield task_scheduler
    task_scheduler.close()


async def balance_of(db: InMemoryDBClient, member_id: str) -> int:
    """Current points balance of a member."""
    record = await db.get_record(collection="members", record_id=member_id)
    return record["points_balance"]

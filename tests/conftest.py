"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator

import pytest

from fantastic_task.core.config import Settings
from fantastic_task.core.db_client import DatabaseClient


logger = logging.getLogger(__name__)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway database file."""
    return Settings(
        sqlite_db_path=str(tmp_path / "test.db"),
        logfire_token=None,
        environment="test",
    )


@pytest.fixture
async def sqlite_db(test_settings: Settings) -> AsyncIterator[DatabaseClient]:
    """Real SQLite store with the schema created, closed after the test."""
    client = DatabaseClient(db_path=test_settings.sqlite_db_path)
    await client.init_db()
    yield client
    await client.close()

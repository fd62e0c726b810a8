"""Unit tests for analytics_service module."""

from datetime import date, datetime, time, timedelta

import pytest

from fantastic_task.domain.completion import VerificationStatus
from fantastic_task.models.service_models import MemberStatistics, Timeframe
from fantastic_task.services.analytics_service import StatisticsService, calculate_streaks, timeframe_start
from fantastic_task.services.completion_ledger import CompletionLedger
from tests.unit.conftest import FAMILY_ID, OTHER_FAMILY_ID


TODAY = date(2024, 6, 15)


def days_ago(n: int) -> date:
    return TODAY - timedelta(days=n)


@pytest.fixture
def stats_service(in_memory_db):
    return StatisticsService(in_memory_db)


@pytest.fixture
def record(in_memory_db):
    """Record a completion on a given day without going through the scheduler."""
    ledger = CompletionLedger(in_memory_db)

    async def _record(task, member, day, **kwargs):
        return await ledger.record_completion(
            {
                "task_id": task["id"],
                "completed_by": member["id"],
                "completed_at": datetime.combine(day, time(10, 0)),
                **kwargs,
            }
        )

    return _record


def make_stats(**overrides) -> MemberStatistics:
    data = {
        "member_id": "m1",
        "member_name": "Sam",
        "role": "child",
        "total_points": 0,
        "total_tasks": 0,
        "total_time_minutes": 0,
        "average_time_minutes": 0.0,
        "current_streak": 0,
        "max_streak": 0,
        "points_balance": 0,
        "timeframe": Timeframe.ALL,
    }
    data.update(overrides)
    return MemberStatistics(**data)


@pytest.mark.unit
class TestCalculateStreaks:
    """Tests for calculate_streaks function."""

    def test_no_dates(self):
        assert calculate_streaks(set(), TODAY) == (0, 0)

    def test_run_ending_today(self):
        assert calculate_streaks({TODAY, days_ago(1), days_ago(2)}, TODAY) == (3, 3)

    def test_current_streak_needs_today(self):
        assert calculate_streaks({days_ago(1), days_ago(2)}, TODAY) == (0, 2)

    def test_longest_run_in_history(self):
        dates = {days_ago(10), days_ago(9), days_ago(8), days_ago(7), days_ago(3), TODAY}

        assert calculate_streaks(dates, TODAY) == (1, 4)


@pytest.mark.unit
class TestTimeframeStart:
    """Tests for timeframe_start function."""

    def test_week_and_month(self):
        assert timeframe_start(Timeframe.WEEK, TODAY) == days_ago(7)
        assert timeframe_start(Timeframe.MONTH, TODAY) == days_ago(30)

    def test_all_has_no_start(self):
        assert timeframe_start(Timeframe.ALL, TODAY) is None


@pytest.mark.unit
class TestMemberStatistics:
    """Tests for StatisticsService.member_statistics."""

    async def test_totals_and_average(self, stats_service, family, task_factory, record):
        task = await task_factory()
        await record(task, family["parent"], TODAY, points_awarded=10, time_spent_minutes=20)
        await record(task, family["parent"], days_ago(1), points_awarded=6, time_spent_minutes=10)
        await record(task, family["parent"], days_ago(2), points_awarded=4)

        statistics = await stats_service.member_statistics(family_id=FAMILY_ID, today=TODAY)

        parent = next(s for s in statistics if s.member_id == family["parent"]["id"])
        assert parent.total_points == 20
        assert parent.total_tasks == 3
        assert parent.total_time_minutes == 30
        assert parent.average_time_minutes == 10.0
        assert parent.current_streak == 3
        assert parent.max_streak == 3

    async def test_includes_idle_members_and_sorts_by_points(self, stats_service, family, task_factory, record):
        task = await task_factory()
        await record(task, family["child"], TODAY, points_awarded=3)
        await record(task, family["admin"], TODAY, points_awarded=9)

        statistics = await stats_service.member_statistics(family_id=FAMILY_ID, today=TODAY)

        assert [s.member_name for s in statistics][:2] == ["Alice", "Charlie"]
        assert len(statistics) == 3
        idle = statistics[-1]
        assert idle.member_name == "Bob"
        assert idle.total_tasks == 0
        assert idle.average_time_minutes == 0.0

    async def test_rejected_completions_do_not_count(self, stats_service, family, task_factory, record):
        task = await task_factory()
        await record(task, family["child"], TODAY, points_awarded=5, verification_status=VerificationStatus.REJECTED)
        await record(task, family["child"], TODAY, points_awarded=2, verification_status=VerificationStatus.PENDING)

        statistics = await stats_service.member_statistics(family_id=FAMILY_ID, today=TODAY)

        child = next(s for s in statistics if s.member_id == family["child"]["id"])
        assert child.total_tasks == 1
        assert child.total_points == 2

    async def test_week_timeframe_boundary(self, stats_service, family, task_factory, record):
        task = await task_factory()
        await record(task, family["parent"], days_ago(7), points_awarded=1)
        await record(task, family["parent"], days_ago(8), points_awarded=100)

        statistics = await stats_service.member_statistics(
            family_id=FAMILY_ID, timeframe=Timeframe.WEEK, today=TODAY
        )

        parent = next(s for s in statistics if s.member_id == family["parent"]["id"])
        assert parent.total_points == 1
        assert parent.timeframe == Timeframe.WEEK

    async def test_other_family_tasks_are_ignored(self, stats_service, family, task_factory, record):
        foreign = await task_factory(family_id=OTHER_FAMILY_ID)
        await record(foreign, family["parent"], TODAY, points_awarded=50)

        statistics = await stats_service.member_statistics(family_id=FAMILY_ID, today=TODAY)

        assert all(s.total_points == 0 for s in statistics)


@pytest.mark.unit
class TestAchievements:
    """Tests for StatisticsService.achievements."""

    def test_nothing_unlocked(self):
        assert StatisticsService.achievements(make_stats()) == []

    def test_first_task(self):
        keys = [a.key for a in StatisticsService.achievements(make_stats(total_tasks=1))]

        assert keys == ["first_task"]

    def test_thresholds(self):
        stats = make_stats(total_tasks=50, current_streak=7, max_streak=14, total_points=120)

        keys = [a.key for a in StatisticsService.achievements(stats)]

        assert keys == [
            "first_task",
            "task_master",
            "super_helper",
            "on_fire",
            "week_warrior",
            "streak_master",
            "point_collector",
        ]


@pytest.mark.unit
class TestFamilySummary:
    """Tests for StatisticsService.family_summary."""

    async def test_summary(self, stats_service, family, task_factory, record):
        task = await task_factory()
        await record(task, family["admin"], TODAY, points_awarded=10, time_spent_minutes=15)
        await record(task, family["child"], TODAY, points_awarded=4, verification_status=VerificationStatus.PENDING)

        summary = await stats_service.family_summary(family_id=FAMILY_ID, today=TODAY)

        assert summary.total_points == 14
        assert summary.total_tasks == 2
        assert summary.total_time_minutes == 15
        assert summary.active_members == 2
        assert summary.pending_verifications == 1
        assert summary.top_member_id == family["admin"]["id"]

    async def test_empty_family(self, stats_service, family):
        summary = await stats_service.family_summary(family_id=FAMILY_ID, today=TODAY)

        assert summary.total_tasks == 0
        assert summary.top_member_id is None

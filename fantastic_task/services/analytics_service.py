"""Statistics service for member and family performance.

This module provides:
- Per-member totals, average time and streaks over a timeframe
- Achievements unlocked by completion, streak and points thresholds
- A family-wide summary

Key Concepts:
- Only live completions count; rejected ones are ignored. Pending child
  completions count towards totals even though their points have not posted.
- Streaks run over distinct completion dates. The current streak ends today
  and is 0 when nothing was completed today.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta

from fantastic_task.core.config import constants
from fantastic_task.core.db_client import Store
from fantastic_task.core.logging import span
from fantastic_task.domain.completion import Completion
from fantastic_task.models.service_models import Achievement, FamilySummary, MemberStatistics, Timeframe
from fantastic_task.services.completion_ledger import CompletionLedger
from fantastic_task.services.member_service import MemberService
from fantastic_task.services.task_service import TaskService


logger = logging.getLogger(__name__)


def timeframe_start(timeframe: Timeframe, today: date) -> date | None:
    """First date included in a timeframe, or None for all time."""
    if timeframe == Timeframe.WEEK:
        return today - timedelta(days=constants.STATS_WEEK_DAYS)
    if timeframe == Timeframe.MONTH:
        return today - timedelta(days=constants.STATS_MONTH_DAYS)
    return None


def calculate_streaks(dates: set[date], today: date) -> tuple[int, int]:
    """Return (current_streak, max_streak) for a set of completion dates."""
    if not dates:
        return 0, 0

    ordered = sorted(dates)
    max_streak = run = 1
    for previous, current in zip(ordered, ordered[1:], strict=False):
        run = run + 1 if (current - previous).days == 1 else 1
        max_streak = max(max_streak, run)

    current_streak = 0
    day = today
    while day in dates:
        current_streak += 1
        day -= timedelta(days=1)

    return current_streak, max_streak


_ACHIEVEMENTS: list[tuple[str, str, str, str, int]] = [
    # key, title, description, statistic, threshold
    ("first_task", "First Task", "Completed your first task", "total_tasks", constants.ACHIEVEMENT_FIRST_TASK),
    ("task_master", "Task Master", "Completed 10 tasks", "total_tasks", constants.ACHIEVEMENT_TASK_MASTER),
    ("super_helper", "Super Helper", "Completed 50 tasks", "total_tasks", constants.ACHIEVEMENT_SUPER_HELPER),
    ("task_legend", "Task Legend", "Completed 100 tasks", "total_tasks", constants.ACHIEVEMENT_TASK_LEGEND),
    ("on_fire", "On Fire!", "3 days in a row", "current_streak", constants.ACHIEVEMENT_ON_FIRE_STREAK),
    ("week_warrior", "Week Warrior", "7 days in a row", "current_streak", constants.ACHIEVEMENT_WEEK_WARRIOR_STREAK),
    ("streak_master", "Streak Master", "14 days in a row", "max_streak", constants.ACHIEVEMENT_STREAK_MASTER_STREAK),
    ("point_collector", "Point Collector", "Earned 100 points", "total_points", constants.ACHIEVEMENT_POINT_COLLECTOR),
    ("point_master", "Point Master", "Earned 500 points", "total_points", constants.ACHIEVEMENT_POINT_MASTER),
]


class StatisticsService:
    """Read-only statistics over a family's completions."""

    def __init__(
        self,
        db: Store,
        *,
        ledger: CompletionLedger | None = None,
        tasks: TaskService | None = None,
        members: MemberService | None = None,
    ) -> None:
        self._members = members or MemberService(db)
        self._tasks = tasks or TaskService(db, self._members)
        self._ledger = ledger or CompletionLedger(db, tasks=self._tasks, members=self._members)

    async def _family_completions(self, *, family_id: str, since: date | None) -> list[Completion]:
        tasks = await self._tasks.list_tasks(family_id=family_id, include_inactive=True)
        history = await self._ledger.completions_for_tasks(task_ids={task.id for task in tasks})
        completions = [
            c
            for task_completions in history.values()
            for c in task_completions
            if c.is_live and (since is None or c.completion_date >= since)
        ]
        return sorted(completions, key=lambda c: c.completed_at, reverse=True)

    async def member_statistics(
        self,
        *,
        family_id: str,
        timeframe: Timeframe = Timeframe.ALL,
        today: date | None = None,
    ) -> list[MemberStatistics]:
        """Get statistics for every family member, highest total points first.

        Args:
            family_id: Family to report on
            timeframe: week (last 7 days), month (last 30 days) or all
            today: Reference date, defaults to today

        Returns:
            One MemberStatistics per member, including members with no completions
        """
        with span("analytics_service.member_statistics"):
            today = today or date.today()
            since = timeframe_start(timeframe, today)

            members = await self._members.list_members(family_id=family_id)
            by_member: dict[str, list[Completion]] = defaultdict(list)
            for completion in await self._family_completions(family_id=family_id, since=since):
                by_member[completion.completed_by].append(completion)

            statistics = []
            for member in members:
                completions = by_member.get(member.id, [])
                total_time = sum(c.time_spent_minutes or 0 for c in completions)
                current_streak, max_streak = calculate_streaks({c.completion_date for c in completions}, today)
                statistics.append(
                    MemberStatistics(
                        member_id=member.id,
                        member_name=member.name,
                        role=member.role,
                        total_points=sum(c.points_awarded for c in completions),
                        total_tasks=len(completions),
                        total_time_minutes=total_time,
                        average_time_minutes=round(total_time / len(completions), 1) if completions else 0.0,
                        current_streak=current_streak,
                        max_streak=max_streak,
                        points_balance=member.points_balance,
                        timeframe=timeframe,
                    )
                )

            statistics.sort(key=lambda s: s.total_points, reverse=True)
            logger.debug(
                "Calculated member statistics",
                extra={"family_id": family_id, "timeframe": timeframe, "members": len(statistics)},
            )
            return statistics

    @staticmethod
    def achievements(stats: MemberStatistics) -> list[Achievement]:
        """Achievements a member has unlocked, in display order."""
        return [
            Achievement(key=key, title=title, description=description)
            for key, title, description, statistic, threshold in _ACHIEVEMENTS
            if getattr(stats, statistic) >= threshold
        ]

    async def family_summary(
        self,
        *,
        family_id: str,
        timeframe: Timeframe = Timeframe.ALL,
        today: date | None = None,
    ) -> FamilySummary:
        """Totals across the whole family for a timeframe."""
        with span("analytics_service.family_summary"):
            statistics = await self.member_statistics(family_id=family_id, timeframe=timeframe, today=today)
            pending = await self._ledger.pending_verifications()
            family_task_ids = {t.id for t in await self._tasks.list_tasks(family_id=family_id, include_inactive=True)}

            top = statistics[0] if statistics and statistics[0].total_tasks > 0 else None
            return FamilySummary(
                total_points=sum(s.total_points for s in statistics),
                total_tasks=sum(s.total_tasks for s in statistics),
                total_time_minutes=sum(s.total_time_minutes for s in statistics),
                active_members=sum(1 for s in statistics if s.total_tasks > 0),
                pending_verifications=sum(1 for c in pending if c.task_id in family_task_ids),
                top_member_id=top.member_id if top else None,
                timeframe=timeframe,
            )

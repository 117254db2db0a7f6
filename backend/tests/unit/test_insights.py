"""
Unit Tests for Planner Insights.

Tests for:
- Current and longest streak calculation
- Dashboard KPIs (due counts, lateness, weekly minutes)
- Upcoming workload forecast
"""

from datetime import date, datetime, timedelta, timezone

import pytest
import pytest_asyncio

from app.enums.planner import CompletionState, RecallRating, SessionStatus
from app.services.planner import InsightsService, ScheduleEngine, SessionRecorder
from app.services.planner.domain import StudySession
from app.services.planner.insights import current_streak, longest_streak


@pytest_asyncio.fixture
async def scheduled_repo(seeded_repo, now):
    """Seeded repository with t1 scheduled at 01-08, 01-15, 01-22."""
    await ScheduleEngine(seeded_repo).create_schedule("t1", "u1", now=now)
    return seeded_repo


class TestStreaks:
    """Tests for streak helpers."""

    def test_empty(self):
        assert current_streak([], date(2024, 1, 8)) == 0
        assert longest_streak([]) == 0

    def test_streak_ending_today(self):
        today = date(2024, 1, 8)
        dates = [today - timedelta(days=i) for i in range(4)]

        assert current_streak(dates, today) == 4

    def test_streak_ending_yesterday_still_counts(self):
        today = date(2024, 1, 8)
        dates = [date(2024, 1, 7), date(2024, 1, 6)]

        assert current_streak(dates, today) == 2

    def test_gap_breaks_current_streak(self):
        today = date(2024, 1, 8)

        assert current_streak([date(2024, 1, 5)], today) == 0
        assert current_streak([today, date(2024, 1, 6)], today) == 1

    def test_duplicates_are_ignored(self):
        today = date(2024, 1, 8)

        assert current_streak([today, today, date(2024, 1, 7)], today) == 2

    def test_longest_streak(self):
        dates = [
            date(2024, 1, 1),
            date(2024, 1, 2),
            date(2024, 1, 3),
            date(2024, 1, 6),
            date(2024, 1, 7),
        ]

        assert longest_streak(dates) == 3


class TestKpis:
    """Tests for dashboard KPIs."""

    @pytest.mark.asyncio
    async def test_fresh_schedule(self, scheduled_repo, now):
        kpis = await InsightsService(scheduled_repo).get_kpis("u1", now=now)

        assert kpis.due_today == 1
        assert kpis.overdue == 0
        assert kpis.completed_today == 0
        assert kpis.weekly_minutes == 0.0
        assert kpis.avg_lateness_days == 0.0
        assert kpis.current_streak == 0

    @pytest.mark.asyncio
    async def test_after_late_completion(self, scheduled_repo, now):
        recorder = SessionRecorder(scheduled_repo)
        late = now + timedelta(days=2)
        started = await recorder.start("u1", "t1", planned_seconds=1800, now=late)
        await recorder.finish(
            "u1", started.session_id, 1800, RecallRating.GOOD, now=late + timedelta(minutes=30)
        )

        kpis = await InsightsService(scheduled_repo).get_kpis("u1", now=late)

        assert kpis.completed_today == 1
        assert kpis.avg_lateness_days == 2.0
        assert kpis.weekly_minutes == 30.0
        assert kpis.on_time_rate == 0.0
        assert kpis.current_streak == 1
        assert kpis.best_streak == 1
        assert kpis.due_today == 0

    @pytest.mark.asyncio
    async def test_overdue_and_snoozed_counts(self, scheduled_repo, now):
        first, second, _ = scheduled_repo.topic_entries("t1")
        second.state = CompletionState.SNOOZED
        second.snoozed_to = date(2024, 1, 20)
        later = now + timedelta(days=3)

        kpis = await InsightsService(scheduled_repo).get_kpis("u1", now=later)

        assert kpis.overdue == 1
        assert kpis.snooze_count == 1

    @pytest.mark.asyncio
    async def test_aborted_sessions_do_not_count(self, scheduled_repo, now):
        scheduled_repo.put_session(
            StudySession(
                id="s1",
                user_id="u1",
                topic_id="t1",
                schedule_id=None,
                started_at=now - timedelta(hours=1),
                ended_at=now,
                planned_seconds=3600,
                actual_seconds=3600,
                status=SessionStatus.ABORTED,
            )
        )

        kpis = await InsightsService(scheduled_repo).get_kpis("u1", now=now)

        assert kpis.weekly_minutes == 0.0
        assert kpis.current_streak == 0


class TestUpcomingLoad:
    """Tests for the workload forecast."""

    @pytest.mark.asyncio
    async def test_buckets_by_effective_due(self, scheduled_repo, now):
        scheduled_repo.add_topic("t2", "u1", frequency=[3], estimated_minutes=45)
        await ScheduleEngine(scheduled_repo).create_schedule("t2", "u1", now=now)
        second = scheduled_repo.topic_entries("t1")[1]
        second.state = CompletionState.SNOOZED
        second.snoozed_to = date(2024, 1, 10)

        load = await InsightsService(scheduled_repo).get_upcoming_load("u1", days=7, now=now)

        assert [d.day for d in load.days] == [
            date(2024, 1, 8) + timedelta(days=i) for i in range(1, 8)
        ]
        by_day = {d.day: d for d in load.days}
        assert by_day[date(2024, 1, 10)].total_minutes == 30
        assert by_day[date(2024, 1, 9)].total_minutes == 0
        assert by_day[date(2024, 1, 15)].total_minutes == 0
        # t2 first studied 2024-01-01 + 3 days is already past
        assert sum(d.topic_count for d in load.days) == 1

    @pytest.mark.asyncio
    async def test_default_horizon(self, scheduled_repo, now):
        load = await InsightsService(scheduled_repo).get_upcoming_load("u1", now=now)

        assert len(load.days) == 7
        assert load.days[-1].day == date(2024, 1, 15)
        assert load.days[-1].total_minutes == 30
        assert load.days[-1].topic_count == 1

    @pytest.mark.asyncio
    async def test_archived_topics_are_excluded(self, scheduled_repo, now):
        scheduled_repo.topics["t1"].is_archived = True

        load = await InsightsService(scheduled_repo).get_upcoming_load("u1", now=now)

        assert all(d.total_minutes == 0 for d in load.days)

"""
Planner Insights Service

Dashboard figures derived from a user's schedule and session history:
key performance indicators and an upcoming workload forecast.

Streak logic follows the practice-streak rules: the current streak counts
consecutive study days ending today, or yesterday if the user has not
studied yet today.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Optional
import logging

from app.config import settings
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.enums.planner import DueStatus, SessionStatus
from app.models.planner import KpiResponse, UpcomingDay, UpcomingLoadResponse

from .domain import utc_now
from .ports import PlannerRepository
from .schedule_engine import classify

logger = logging.getLogger(__name__)


def current_streak(study_dates: list[date], today: date) -> int:
    """
    Count consecutive study days ending today or yesterday.

    Args:
        study_dates: Study dates in any order; duplicates allowed.
        today: Reference date.
    """
    dates = sorted(set(study_dates), reverse=True)
    if not dates:
        return 0

    most_recent = dates[0]
    if most_recent != today and most_recent != today - timedelta(days=1):
        return 0

    streak = 0
    expected = most_recent
    for study_date in dates:
        if study_date == expected:
            streak += 1
            expected -= timedelta(days=1)
        elif study_date < expected:
            break
    return streak


def longest_streak(study_dates: list[date]) -> int:
    """Longest run of consecutive study days ever achieved."""
    dates = sorted(set(study_dates))
    if not dates:
        return 0

    longest = current = 1
    for previous, study_date in zip(dates, dates[1:]):
        if study_date == previous + timedelta(days=1):
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


class InsightsService:
    """
    Service for planner dashboard KPIs and workload forecasts.
    """

    def __init__(self, repository: PlannerRepository):
        self.repository = repository

    async def get_kpis(self, user_id: str, now: Optional[datetime] = None) -> KpiResponse:
        """
        Compute dashboard KPIs for a user.

        Lateness is measured per completed entry as days between its
        effective due date and completion; early completions count as 0.
        """
        # Imported here: the leaderboard package depends on planner modules
        from app.services.leaderboard.metrics import summarize_sessions, window_start

        now = now or utc_now()
        today = now.date()

        topics = await self.repository.list_active_topics(user_id)
        topic_ids = {t.id for t in topics}
        entries = [
            e
            for e in await self.repository.list_entries_for_user(user_id)
            if e.topic_id in topic_ids
        ]

        statuses = [classify(e, now) for e in entries]
        completed = [e for e in entries if e.is_completed and e.completed_at]
        lateness = [
            max(0, (e.completed_at.date() - e.effective_due).days) for e in completed
        ]

        sessions = [
            s
            for s in await self.repository.list_sessions(user_id)
            if s.status == SessionStatus.FINISHED and s.topic_id in topic_ids
        ]
        week_start = window_start(TimeWindow.WEEK, now)
        weekly = [s for s in sessions if s.started_at >= week_start]
        weekly_metrics = summarize_sessions(
            user_id,
            MetricsScope.GLOBAL,
            None,
            TimeWindow.WEEK,
            weekly,
            {e.id: e for e in entries},
            active_topic_count=len(topic_ids),
            now=now,
        )
        study_dates = [s.started_at.date() for s in sessions]

        return KpiResponse(
            due_today=statuses.count(DueStatus.DUE_TODAY),
            overdue=statuses.count(DueStatus.OVERDUE),
            completed_today=sum(1 for e in completed if e.completed_at.date() == today),
            weekly_minutes=weekly_metrics.total_minutes,
            on_time_rate=weekly_metrics.on_time_rate,
            avg_lateness_days=round(sum(lateness) / len(lateness), 2) if lateness else 0.0,
            current_streak=current_streak(study_dates, today),
            best_streak=longest_streak(study_dates),
            snooze_count=statuses.count(DueStatus.SNOOZED),
        )

    async def get_upcoming_load(
        self,
        user_id: str,
        days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> UpcomingLoadResponse:
        """
        Forecast estimated study minutes for each of the next `days` days.

        Uncompleted entries are bucketed by effective due date, starting
        tomorrow.
        """
        days = days or settings.UPCOMING_FORECAST_DAYS
        now = now or utc_now()
        today = now.date()

        topics = {t.id: t for t in await self.repository.list_active_topics(user_id)}
        minutes: dict[date, int] = defaultdict(int)
        topic_sets: dict[date, set[str]] = defaultdict(set)

        for entry in await self.repository.list_entries_for_user(user_id):
            topic = topics.get(entry.topic_id)
            if topic is None or entry.is_completed:
                continue
            minutes[entry.effective_due] += topic.estimated_minutes
            topic_sets[entry.effective_due].add(topic.id)

        horizon = [today + timedelta(days=offset) for offset in range(1, days + 1)]
        return UpcomingLoadResponse(
            days=[
                UpcomingDay(
                    day=day,
                    total_minutes=minutes.get(day, 0),
                    topic_count=len(topic_sets.get(day, ())),
                )
                for day in horizon
            ]
        )

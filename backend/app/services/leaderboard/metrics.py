"""
Metrics Aggregator

Computes per-user performance statistics over a time window and scope from
finished study sessions and their linked schedule entries.

Metrics:
    on_time_rate          sessions finished on/before the linked entry's
                          effective due date / linked sessions × 100
    total_minutes         Σ actual seconds / 60
    avg_time_per_revision total_minutes / session count
    consistency           distinct study days / window days × 100
    coverage              distinct studied topics / active topics in scope × 100

Every ratio guards its denominator and is 0 when the denominator is 0.
"""

from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Union
import logging

from app.config import settings
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.enums.planner import SessionStatus
from app.middleware.error_handling import ValidationError
from app.services.planner.domain import (
    MetricsSnapshot,
    ScheduleEntry,
    StudySession,
    utc_now,
)
from app.services.planner.ports import PlannerRepository

logger = logging.getLogger(__name__)


def parse_scope(
    scope: Union[MetricsScope, str], scope_id: Optional[str] = None
) -> tuple[MetricsScope, Optional[str]]:
    """
    Validate a scope value and its identifier.

    Raises:
        ValidationError: Unknown scope, or a subject/topic scope without an id
    """
    try:
        scope = MetricsScope(scope)
    except ValueError:
        raise ValidationError(
            "Unknown metrics scope",
            details={"scope": scope, "allowed": [s.value for s in MetricsScope]},
        )
    if scope.requires_scope_id and not scope_id:
        raise ValidationError(
            f"Scope '{scope.value}' requires a scope_id", details={"scope": scope.value}
        )
    if not scope.requires_scope_id:
        scope_id = None
    return scope, scope_id


def parse_window(window: Union[TimeWindow, str]) -> TimeWindow:
    try:
        return TimeWindow(window)
    except ValueError:
        raise ValidationError(
            "Unknown time window",
            details={"window": window, "allowed": [w.value for w in TimeWindow]},
        )


def window_days(window: TimeWindow) -> int:
    """Configured window length in days."""
    return {
        TimeWindow.WEEK: settings.WINDOW_DAYS_WEEK,
        TimeWindow.MONTH: settings.WINDOW_DAYS_MONTH,
        TimeWindow.ALL: settings.WINDOW_DAYS_ALL,
    }[window]


def window_start(window: TimeWindow, now: datetime) -> datetime:
    """Earliest session start time that falls inside the window."""
    return now - timedelta(days=window_days(window))


def _ratio(numerator: float, denominator: float) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


def summarize_sessions(
    user_id: str,
    scope: MetricsScope,
    scope_id: Optional[str],
    window: TimeWindow,
    sessions: Iterable[StudySession],
    entries: Mapping[str, ScheduleEntry],
    active_topic_count: int,
    now: Optional[datetime] = None,
    display_name: str = "",
) -> MetricsSnapshot:
    """
    Reduce already-filtered sessions into a snapshot.

    Args:
        sessions: Sessions in the window whose topic is in scope; anything not
            FINISHED is ignored
        entries: Linked schedule entries keyed by id
        active_topic_count: Non-archived topics in scope

    Returns:
        MetricsSnapshot with values rounded to 2 decimals
    """
    now = now or utc_now()
    finished = [s for s in sessions if s.status == SessionStatus.FINISHED]

    linked = 0
    on_time = 0
    for session in finished:
        entry = entries.get(session.schedule_id) if session.schedule_id else None
        if entry is None:
            continue
        linked += 1
        ended = session.ended_at or session.started_at
        if ended.date() <= entry.effective_due:
            on_time += 1

    total_minutes = sum(s.actual_seconds for s in finished) / 60
    avg_minutes = total_minutes / len(finished) if finished else 0.0
    study_days = {s.started_at.date() for s in finished}
    studied_topics = {s.topic_id for s in finished}

    return MetricsSnapshot(
        user_id=user_id,
        scope=scope,
        scope_id=scope_id,
        window=window,
        on_time_rate=round(_ratio(on_time, linked), 2),
        total_minutes=round(total_minutes, 2),
        avg_time_per_revision=round(avg_minutes, 2),
        consistency=round(min(100.0, _ratio(len(study_days), window_days(window))), 2),
        coverage=round(min(100.0, _ratio(len(studied_topics), active_topic_count)), 2),
        session_count=len(finished),
        display_name=display_name,
        calculated_at=now,
    )


class MetricsAggregator:
    """
    Computes MetricsSnapshots through the planner repository.

    Read-only: never writes.
    """

    def __init__(self, repository: PlannerRepository):
        self.repository = repository

    async def compute(
        self,
        user_id: str,
        scope: Union[MetricsScope, str] = MetricsScope.GLOBAL,
        window: Union[TimeWindow, str] = TimeWindow.WEEK,
        scope_id: Optional[str] = None,
        now: Optional[datetime] = None,
        display_name: str = "",
    ) -> MetricsSnapshot:
        """
        Compute one user's snapshot for a scope and window.

        A user with no topics or no sessions gets an all-zero snapshot.

        Raises:
            ValidationError: Unknown scope/window or missing scope_id
        """
        scope, scope_id = parse_scope(scope, scope_id)
        window = parse_window(window)
        now = now or utc_now()

        topics = await self.repository.list_active_topics(user_id, scope, scope_id)
        topic_ids = {t.id for t in topics}

        sessions = [
            s
            for s in await self.repository.list_finished_sessions(
                user_id, window_start(window, now)
            )
            if s.topic_id in topic_ids
        ]
        schedule_ids = {s.schedule_id for s in sessions if s.schedule_id}
        entries = await self.repository.get_entries(schedule_ids) if schedule_ids else {}

        snapshot = summarize_sessions(
            user_id,
            scope,
            scope_id,
            window,
            sessions,
            entries,
            active_topic_count=len(topic_ids),
            now=now,
            display_name=display_name,
        )
        logger.debug(
            f"Metrics for {user_id} ({scope.value}/{scope_id}/{window.value}): "
            f"sessions={snapshot.session_count}, on_time={snapshot.on_time_rate}"
        )
        return snapshot

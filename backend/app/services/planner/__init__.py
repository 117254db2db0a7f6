"""
Revision Planner Services

Services for spaced revision schedules, snoozing and study sessions.

Modules:
- domain: Plain data records (topics, schedule entries, sessions, snapshots)
- ports: Repository interfaces the services depend on
- schedule_engine: Schedule generation and due-status classification
- snooze: Single and bulk snoozes with cascade
- session_recorder: Study-session lifecycle and schedule advancement
- insights: Dashboard KPIs and upcoming workload

Usage:
    from app.services.planner import (
        ScheduleEngine,
        SnoozeCoordinator,
        SessionRecorder,
        InsightsService,
    )
"""

from app.services.planner.domain import (
    ComparisonBucket,
    Learner,
    LeaderboardRow,
    MetricsSnapshot,
    RevisionFrequency,
    ScheduleEntry,
    StudySession,
    Topic,
    profile_for,
)
from app.services.planner.ports import (
    PlannerRepository,
    RepositoryFactory,
    TopicStore,
)
from app.services.planner.schedule_engine import ScheduleEngine, classify
from app.services.planner.snooze import SnoozeCoordinator
from app.services.planner.session_recorder import SessionRecorder
from app.services.planner.insights import InsightsService

__all__ = [
    # Domain
    "ComparisonBucket",
    "Learner",
    "LeaderboardRow",
    "MetricsSnapshot",
    "RevisionFrequency",
    "ScheduleEntry",
    "StudySession",
    "Topic",
    "profile_for",
    # Ports
    "PlannerRepository",
    "RepositoryFactory",
    "TopicStore",
    # Services
    "ScheduleEngine",
    "classify",
    "SnoozeCoordinator",
    "SessionRecorder",
    "InsightsService",
]

"""
Centralized enum definitions for the application.

All enums are organized by domain:
- planner.py: Schedule states, due status, recall ratings, sessions, topics
- leaderboard.py: Metrics scopes and time windows
- api.py: Rate limit categories

Usage:
    from app.enums import DueStatus, MetricsScope

    # Or import from specific module
    from app.enums.planner import CompletionState
"""

from app.enums.api import RateLimitType
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.enums.planner import (
    CompletionState,
    DueStatus,
    FrequencyProfile,
    MasteryLevel,
    RecallRating,
    SessionStatus,
)

__all__ = [
    # Planner enums
    "CompletionState",
    "DueStatus",
    "FrequencyProfile",
    "MasteryLevel",
    "RecallRating",
    "SessionStatus",
    # Leaderboard enums
    "MetricsScope",
    "TimeWindow",
    # API enums
    "RateLimitType",
]

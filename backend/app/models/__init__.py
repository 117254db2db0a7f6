"""Pydantic models for the application."""

from app.models.base import ErrorDetail, StrictRequest, StrictResponse
from app.models.leaderboard import (
    ComparisonResponse,
    LeaderboardResponse,
    RecomputeResponse,
)
from app.models.planner import (
    DueEntriesResponse,
    SessionFinishResponse,
    SnoozeResponse,
)

__all__ = [
    "ErrorDetail",
    "StrictRequest",
    "StrictResponse",
    "ComparisonResponse",
    "LeaderboardResponse",
    "RecomputeResponse",
    "DueEntriesResponse",
    "SessionFinishResponse",
    "SnoozeResponse",
]

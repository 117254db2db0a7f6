"""
Leaderboard API Models (Pydantic)

Request/response schemas for cached leaderboards, peer comparison and
recomputation runs.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from app.enums.leaderboard import MetricsScope, TimeWindow
from app.models.base import StrictRequest, StrictResponse


class LeaderboardEntryResponse(StrictResponse):
    """
    One ranked user.

    `stale` is True when the row was carried over from an earlier generation
    because the user's latest recomputation failed.
    """

    user_id: str
    display_name: str = ""
    rank: int
    on_time_rate: float
    total_minutes: float
    avg_time_per_revision: float
    consistency: float
    coverage: float
    session_count: int = 0
    is_current_user: bool = False
    stale: bool = False
    calculated_at: datetime


class LeaderboardResponse(StrictResponse):
    """
    A persisted leaderboard generation, ascending by rank.

    `calculated_at` is the newest row timestamp (None when never computed) so
    callers can judge staleness.
    """

    scope: MetricsScope
    scope_id: Optional[str] = None
    window: TimeWindow
    calculated_at: Optional[datetime] = None
    entries: list[LeaderboardEntryResponse] = Field(default_factory=list)


class ComparisonBucketResponse(StrictResponse):
    """
    Synthetic aggregate used to contextualize one user's metrics.

    `rank` is a display rank; None for empty buckets and for a user with no
    snapshot in this scope and window.
    """

    label: str
    on_time_rate: float = 0.0
    total_minutes: float = 0.0
    avg_time_per_revision: float = 0.0
    consistency: float = 0.0
    coverage: float = 0.0
    rank: Optional[int] = None
    size: int = Field(0, description="Number of users aggregated into the bucket")


class ComparisonResponse(StrictResponse):
    """You / topper / average / struggling buckets."""

    scope: MetricsScope
    scope_id: Optional[str] = None
    window: TimeWindow
    cohort_size: int = 0
    calculated_at: Optional[datetime] = None
    you: ComparisonBucketResponse
    topper: ComparisonBucketResponse
    average: ComparisonBucketResponse
    struggling: ComparisonBucketResponse


class RecomputeRequest(StrictRequest):
    """Request to recompute one leaderboard generation now."""

    scope: MetricsScope = MetricsScope.GLOBAL
    window: TimeWindow = TimeWindow.WEEK
    scope_id: Optional[str] = None


class RecomputeResponse(StrictResponse):
    """
    Outcome of a recomputation batch.

    When `published` is False the previous generation was left untouched.
    """

    scope: MetricsScope
    scope_id: Optional[str] = None
    window: TimeWindow
    published: bool
    timed_out: bool = False
    ranked_count: int = 0
    failed_user_ids: list[str] = Field(default_factory=list)
    calculated_at: datetime

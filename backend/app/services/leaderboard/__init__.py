"""
Leaderboard Services

Per-user metrics aggregation, ranking and peer comparison.

Usage:
    from app.services.leaderboard import (
        MetricsAggregator,
        LeaderboardRanker,
        ComparisonBuilder,
    )
"""

from app.services.leaderboard.metrics import MetricsAggregator, summarize_sessions
from app.services.leaderboard.ranker import LeaderboardRanker, rank_snapshots
from app.services.leaderboard.comparison import ComparisonBuilder

__all__ = [
    "MetricsAggregator",
    "summarize_sessions",
    "LeaderboardRanker",
    "rank_snapshots",
    "ComparisonBuilder",
]

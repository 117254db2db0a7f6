"""
Comparison Builder

Derives "you / topper / average / struggling" buckets from a ranked
leaderboard so a user can see where they stand.

    topper      rank-1 row
    average     mean of every row
    struggling  mean of rows floor(0.75 × N) .. N-1 (bottom quarter by rank)
    you         the user's own row, or an empty bucket when absent

Display ranks: topper 1, average (N + 1) // 2, struggling floor(0.75 × N) + 1.
Empty buckets have zeroed metrics and no rank.
"""

from typing import Optional, Sequence, Union
import logging

from app.enums.leaderboard import MetricsScope, TimeWindow
from app.middleware.error_handling import EmptyCohort
from app.models.leaderboard import ComparisonBucketResponse, ComparisonResponse
from app.services.planner.domain import ComparisonBucket, LeaderboardRow
from app.services.planner.ports import PlannerRepository

from .metrics import parse_scope, parse_window

logger = logging.getLogger(__name__)

METRIC_FIELDS = (
    "on_time_rate",
    "total_minutes",
    "avg_time_per_revision",
    "consistency",
    "coverage",
)


def mean_bucket(
    label: str, rows: Sequence[LeaderboardRow], rank: Optional[int] = None
) -> ComparisonBucket:
    """
    Average each metric over `rows`.

    Raises:
        EmptyCohort: `rows` is empty
    """
    if not rows:
        raise EmptyCohort(f"No rows to aggregate for '{label}'")
    values = {
        name: round(sum(getattr(r.snapshot, name) for r in rows) / len(rows), 2)
        for name in METRIC_FIELDS
    }
    return ComparisonBucket(label=label, rank=rank, size=len(rows), **values)


def _bucket_or_empty(
    label: str, rows: Sequence[LeaderboardRow], rank: Optional[int]
) -> ComparisonBucket:
    try:
        return mean_bucket(label, rows, rank)
    except EmptyCohort:
        return ComparisonBucket(label=label)


class ComparisonBuilder:
    """
    Builds comparison buckets from ranked leaderboard rows.
    """

    def __init__(self, repository: Optional[PlannerRepository] = None):
        self.repository = repository

    @staticmethod
    def build(
        rows: Sequence[LeaderboardRow], user_id: str
    ) -> dict[str, ComparisonBucket]:
        """
        Derive the four buckets from rows of one leaderboard generation.

        Rows are re-sorted by rank so input order does not matter. Never
        raises for small or empty cohorts.
        """
        ordered = sorted(rows, key=lambda r: r.rank)
        n = len(ordered)
        struggling_start = (3 * n) // 4

        mine = next((r for r in ordered if r.user_id == user_id), None)
        you = (
            mean_bucket("you", [mine], rank=mine.rank)
            if mine is not None
            else ComparisonBucket(label="you")
        )

        return {
            "you": you,
            "topper": _bucket_or_empty("topper", ordered[:1], rank=1),
            "average": _bucket_or_empty("average", ordered, rank=(n + 1) // 2),
            "struggling": _bucket_or_empty(
                "struggling", ordered[struggling_start:], rank=struggling_start + 1
            ),
        }

    async def get_comparison(
        self,
        user_id: str,
        scope: Union[MetricsScope, str] = MetricsScope.GLOBAL,
        window: Union[TimeWindow, str] = TimeWindow.WEEK,
        scope_id: Optional[str] = None,
    ) -> ComparisonResponse:
        """
        Compare a user against the cached leaderboard generation.

        Raises:
            ValidationError: Unknown scope/window or missing scope_id
        """
        scope, scope_id = parse_scope(scope, scope_id)
        window = parse_window(window)

        rows = await self.repository.list_leaderboard(scope, scope_id, window)
        if not rows:
            logger.debug(
                f"Empty leaderboard for {scope.value}/{scope_id}/{window.value}"
            )

        buckets = self.build(rows, user_id)
        return ComparisonResponse(
            scope=scope,
            scope_id=scope_id,
            window=window,
            cohort_size=len(rows),
            calculated_at=max((r.snapshot.calculated_at for r in rows), default=None),
            **{
                label: ComparisonBucketResponse.model_validate(bucket)
                for label, bucket in buckets.items()
            },
        )

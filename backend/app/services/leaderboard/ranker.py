"""
Leaderboard Ranker

Orders users by performance, assigns ranks and publishes a leaderboard
generation for one (scope, scope_id, window) key.

Recomputation is a batch job:
    1. List the active cohort.
    2. Fan out per-user metric computation with bounded concurrency. Each task
       opens its own repository (an async DB session cannot be shared across
       concurrent tasks).
    3. Rank the results and replace the whole generation in one transaction.

A user whose computation fails keeps their previous row, flagged stale. A
batch that exceeds the timeout publishes nothing and the previous generation
stays in place.

Ranking policy: on-time rate descending, then total minutes descending, then
user id ascending. Rank is position + 1, so ranks are always 1..N.
"""

from datetime import datetime
from typing import Iterable, Optional, Union
import asyncio
import logging

from app.config import settings
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.models.leaderboard import (
    LeaderboardEntryResponse,
    LeaderboardResponse,
    RecomputeResponse,
)
from app.services.planner.domain import (
    Learner,
    LeaderboardRow,
    MetricsSnapshot,
    utc_now,
)
from app.services.planner.ports import PlannerRepository, RepositoryFactory

from .metrics import MetricsAggregator, parse_scope, parse_window

logger = logging.getLogger(__name__)


def rank_snapshots(
    snapshots: Iterable[MetricsSnapshot],
    stale_user_ids: Iterable[str] = (),
) -> list[LeaderboardRow]:
    """
    Sort snapshots by the ranking policy and assign ranks 1..N.

    Deterministic for a given input set regardless of input order.
    """
    stale = set(stale_user_ids)
    ordered = sorted(
        snapshots,
        key=lambda s: (-s.on_time_rate, -s.total_minutes, s.user_id),
    )
    return [
        LeaderboardRow(snapshot=s, rank=position + 1, stale=s.user_id in stale)
        for position, s in enumerate(ordered)
    ]


def to_entry_response(
    row: LeaderboardRow, current_user_id: Optional[str] = None
) -> LeaderboardEntryResponse:
    snapshot = row.snapshot
    return LeaderboardEntryResponse(
        user_id=snapshot.user_id,
        display_name=snapshot.display_name,
        rank=row.rank,
        on_time_rate=snapshot.on_time_rate,
        total_minutes=snapshot.total_minutes,
        avg_time_per_revision=snapshot.avg_time_per_revision,
        consistency=snapshot.consistency,
        coverage=snapshot.coverage,
        session_count=snapshot.session_count,
        is_current_user=snapshot.user_id == current_user_id,
        stale=row.stale,
        calculated_at=snapshot.calculated_at,
    )


class LeaderboardRanker:
    """
    Service for leaderboard recomputation and reads.

    Provides:
    - Batch recomputation with bounded fan-out and an atomic swap
    - Cached leaderboard reads
    """

    def __init__(
        self,
        repository: PlannerRepository,
        repository_factory: Optional[RepositoryFactory] = None,
        max_concurrency: Optional[int] = None,
        batch_timeout: Optional[float] = None,
    ):
        """
        Initialize the ranker.

        Args:
            repository: Repository used for cohort reads and the final write
            repository_factory: Opens a repository per fan-out task
                (defaults to sharing `repository`, which is only safe for
                in-memory repositories)
            max_concurrency: Fan-out width
                (defaults to settings.LEADERBOARD_MAX_CONCURRENCY)
            batch_timeout: Whole-batch timeout in seconds
                (defaults to settings.LEADERBOARD_BATCH_TIMEOUT_SECONDS)

        Raises:
            ValueError: max_concurrency is below 1
        """
        self.repository = repository
        self.repository_factory = repository_factory
        if max_concurrency is None:
            max_concurrency = settings.LEADERBOARD_MAX_CONCURRENCY
        if batch_timeout is None:
            batch_timeout = settings.LEADERBOARD_BATCH_TIMEOUT_SECONDS
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")
        self.max_concurrency = max_concurrency
        self.batch_timeout = batch_timeout

    async def recompute(
        self,
        scope: Union[MetricsScope, str] = MetricsScope.GLOBAL,
        window: Union[TimeWindow, str] = TimeWindow.WEEK,
        scope_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RecomputeResponse:
        """
        Recompute and publish one leaderboard generation.

        Returns:
            RecomputeResponse; published=False when the batch timed out

        Raises:
            ValidationError: Unknown scope/window or missing scope_id
            PersistenceFailure: The final write failed (previous generation kept)
        """
        scope, scope_id = parse_scope(scope, scope_id)
        window = parse_window(window)
        now = now or utc_now()

        learners = await self.repository.list_active_learners()
        previous = {
            row.user_id: row
            for row in await self.repository.list_leaderboard(scope, scope_id, window)
        }

        try:
            results = await asyncio.wait_for(
                self._compute_all(learners, scope, scope_id, window, now),
                timeout=self.batch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Leaderboard batch timed out after {self.batch_timeout}s "
                f"({scope.value}/{scope_id}/{window.value}); keeping previous generation"
            )
            return RecomputeResponse(
                scope=scope,
                scope_id=scope_id,
                window=window,
                published=False,
                timed_out=True,
                calculated_at=now,
            )

        snapshots: list[MetricsSnapshot] = []
        failed: list[str] = []
        for learner, result in zip(learners, results):
            if isinstance(result, BaseException):
                failed.append(learner.id)
                logger.warning(
                    f"Metrics failed for user {learner.id} "
                    f"({scope.value}/{scope_id}/{window.value}): {result}"
                )
                prior = previous.get(learner.id)
                if prior is not None:
                    snapshots.append(prior.snapshot)
                continue
            snapshots.append(result)

        rows = rank_snapshots(snapshots, stale_user_ids=failed)
        async with self.repository.unit_of_work():
            await self.repository.replace_leaderboard(scope, scope_id, window, rows)

        logger.info(
            f"Published leaderboard {scope.value}/{scope_id}/{window.value}: "
            f"rows={len(rows)}, failed={len(failed)}"
        )
        return RecomputeResponse(
            scope=scope,
            scope_id=scope_id,
            window=window,
            published=True,
            ranked_count=len(rows),
            failed_user_ids=failed,
            calculated_at=now,
        )

    async def get_leaderboard(
        self,
        scope: Union[MetricsScope, str] = MetricsScope.GLOBAL,
        window: Union[TimeWindow, str] = TimeWindow.WEEK,
        scope_id: Optional[str] = None,
        current_user_id: Optional[str] = None,
    ) -> LeaderboardResponse:
        """Read the persisted generation, ascending by rank."""
        scope, scope_id = parse_scope(scope, scope_id)
        window = parse_window(window)

        rows = sorted(
            await self.repository.list_leaderboard(scope, scope_id, window),
            key=lambda r: r.rank,
        )
        return LeaderboardResponse(
            scope=scope,
            scope_id=scope_id,
            window=window,
            calculated_at=max((r.snapshot.calculated_at for r in rows), default=None),
            entries=[to_entry_response(r, current_user_id) for r in rows],
        )

    # ----- helpers -----

    async def _compute_all(
        self,
        learners: list[Learner],
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
        now: datetime,
    ) -> list[Union[MetricsSnapshot, BaseException]]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def compute_with_semaphore(learner: Learner) -> MetricsSnapshot:
            async with semaphore:
                if self.repository_factory is None:
                    return await MetricsAggregator(self.repository).compute(
                        learner.id, scope, window, scope_id, now, learner.display_name
                    )
                async with self.repository_factory() as repository:
                    return await MetricsAggregator(repository).compute(
                        learner.id, scope, window, scope_id, now, learner.display_name
                    )

        tasks = [compute_with_semaphore(learner) for learner in learners]
        return await asyncio.gather(*tasks, return_exceptions=True)

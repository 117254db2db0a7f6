"""
Leaderboard API Router

Endpoints for cached leaderboards and peer comparison.

Endpoints:
- GET /api/leaderboard - Ranked leaderboard for a scope and window
- GET /api/leaderboard/comparison - You vs topper / average / struggling
- POST /api/leaderboard/recompute - Recompute a leaderboard generation now
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query, Request

from app.config import settings
from app.db.repository import repository_scope
from app.dependencies import get_current_user_id, get_repository
from app.enums import RateLimitType
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.middleware.error_handling import handle_endpoint_errors
from app.middleware.rate_limit import limiter
from app.models.leaderboard import (
    ComparisonResponse,
    LeaderboardResponse,
    RecomputeRequest,
    RecomputeResponse,
)
from app.services.leaderboard import ComparisonBuilder, LeaderboardRanker
from app.services.planner.ports import PlannerRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


# ===========================================
# Dependency Injection
# ===========================================


async def get_leaderboard_ranker(
    repository: PlannerRepository = Depends(get_repository),
) -> LeaderboardRanker:
    """Get leaderboard ranker with a per-task repository factory for fan-out."""
    return LeaderboardRanker(repository, repository_factory=repository_scope)


async def get_comparison_builder(
    repository: PlannerRepository = Depends(get_repository),
) -> ComparisonBuilder:
    """Get comparison builder."""
    return ComparisonBuilder(repository)


# ===========================================
# Leaderboard Endpoints
# ===========================================


@router.get("", response_model=LeaderboardResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.ANALYTICS))
@handle_endpoint_errors("Get leaderboard")
async def get_leaderboard(
    request: Request,
    scope: MetricsScope = Query(MetricsScope.GLOBAL, description="global, subject or topic"),
    window: TimeWindow = Query(TimeWindow.WEEK, description="week, month or all"),
    scope_id: Optional[str] = Query(None, description="Subject name or topic id"),
    user_id: str = Depends(get_current_user_id),
    ranker: LeaderboardRanker = Depends(get_leaderboard_ranker),
) -> LeaderboardResponse:
    """
    Get the cached leaderboard, ascending by rank.

    Rows flagged `stale` were carried over because the user's last
    recomputation failed. `calculated_at` tells how fresh the generation is.
    """
    return await ranker.get_leaderboard(
        scope, window, scope_id=scope_id, current_user_id=user_id
    )


@router.get("/comparison", response_model=ComparisonResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.ANALYTICS))
@handle_endpoint_errors("Get comparison")
async def get_comparison(
    request: Request,
    scope: MetricsScope = Query(MetricsScope.GLOBAL, description="global, subject or topic"),
    window: TimeWindow = Query(TimeWindow.WEEK, description="week, month or all"),
    scope_id: Optional[str] = Query(None, description="Subject name or topic id"),
    user_id: str = Depends(get_current_user_id),
    builder: ComparisonBuilder = Depends(get_comparison_builder),
) -> ComparisonResponse:
    """
    Compare the requesting user with the topper, the cohort average and the
    struggling bottom quarter.

    `you.rank` is null when the user has no row in this leaderboard.
    """
    return await builder.get_comparison(user_id, scope, window, scope_id=scope_id)


@router.post("/recompute", response_model=RecomputeResponse)
@limiter.limit(settings.get_rate_limit(RateLimitType.BATCH))
@handle_endpoint_errors("Recompute leaderboard")
async def recompute_leaderboard(
    request: Request,
    body: RecomputeRequest,
    user_id: str = Depends(get_current_user_id),
    ranker: LeaderboardRanker = Depends(get_leaderboard_ranker),
) -> RecomputeResponse:
    """
    Recompute one leaderboard generation now.

    The new generation replaces the old one atomically. A timed-out batch
    returns published=false and leaves the previous generation in place.
    """
    logger.info(
        f"Leaderboard recompute requested by {user_id}: "
        f"{body.scope.value}/{body.scope_id}/{body.window.value}"
    )
    return await ranker.recompute(body.scope, body.window, scope_id=body.scope_id)

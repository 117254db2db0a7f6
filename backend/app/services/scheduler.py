"""
Scheduled Job Configuration

Configures periodic jobs using APScheduler:
- Leaderboard recomputation daily (LEADERBOARD_RECOMPUTE_HOUR:MINUTE UTC)
  for the global scope and every subject, across all time windows

Execution Context:
    The scheduler runs IN-PROCESS with FastAPI inside the backend container.
    It is started/stopped via FastAPI's lifespan context manager in app/main.py.

    Flow:
        uvicorn starts FastAPI -> lifespan() calls start_scheduler()
        -> APScheduler runs in the event loop -> recompute_leaderboards()

Limitations:
    - Single instance only: If you scale to multiple backend replicas,
      each replica runs its own scheduler, causing duplicate recomputations.
      Each run still swaps whole generations atomically, so duplicates only
      cost time.

Usage:
    # Automatic (via FastAPI lifespan in main.py):
    start_scheduler()  # On app startup
    stop_scheduler()   # On app shutdown

    # Manual trigger for testing:
    from app.services.scheduler import trigger_job_now
    trigger_job_now("leaderboard_recompute")
"""

from datetime import datetime, timezone
from typing import Optional
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import settings
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.middleware.error_handling import ServiceError
from app.services.planner.ports import RepositoryFactory

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()

LEADERBOARD_JOB_ID = "leaderboard_recompute"


async def recompute_leaderboards(
    repository_factory: Optional[RepositoryFactory] = None,
) -> dict[str, int]:
    """
    Recompute every leaderboard generation.

    A failure on one (scope, window) key is logged and the remaining keys
    still run.

    Returns:
        Counts of published, unpublished (timed out) and failed generations
    """
    # Deferred imports: avoid loading the DB engine until job execution.
    from app.db.repository import repository_scope
    from app.services.leaderboard import LeaderboardRanker

    factory = repository_factory or repository_scope
    counts = {"published": 0, "unpublished": 0, "failed": 0}

    async with factory() as repository:
        subjects = await repository.list_subjects()
        ranker = LeaderboardRanker(repository, repository_factory=factory)

        keys = [(MetricsScope.GLOBAL, None)]
        keys += [(MetricsScope.SUBJECT, subject) for subject in subjects]

        for window in TimeWindow:
            for scope, scope_id in keys:
                try:
                    result = await ranker.recompute(scope, window, scope_id=scope_id)
                except ServiceError as e:
                    counts["failed"] += 1
                    logger.error(
                        f"Leaderboard recompute failed for "
                        f"{scope.value}/{scope_id}/{window.value}: {e.message}"
                    )
                    continue
                counts["published" if result.published else "unpublished"] += 1

    logger.info(f"Leaderboard recompute complete: {counts}")
    return counts


def setup_scheduled_jobs() -> None:
    """Configure all scheduled jobs."""

    scheduler.add_job(
        recompute_leaderboards,
        CronTrigger(
            hour=settings.LEADERBOARD_RECOMPUTE_HOUR,
            minute=settings.LEADERBOARD_RECOMPUTE_MINUTE,
            timezone=timezone.utc,
        ),
        id=LEADERBOARD_JOB_ID,
        name="Leaderboard Recompute",
        replace_existing=True,
        misfire_grace_time=3600,  # Allow 1 hour grace period
        max_instances=1,
    )

    logger.info("Scheduled jobs configured:")
    logger.info(
        f"  - Leaderboard recompute: daily at "
        f"{settings.LEADERBOARD_RECOMPUTE_HOUR:02d}:"
        f"{settings.LEADERBOARD_RECOMPUTE_MINUTE:02d} UTC"
    )


def start_scheduler() -> None:
    """Start the scheduler and configure jobs."""
    if scheduler.running:
        logger.warning("Scheduler already running")
        return

    setup_scheduled_jobs()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler() -> None:
    """Stop the scheduler gracefully."""
    if not scheduler.running:
        logger.warning("Scheduler not running")
        return

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")


def get_scheduled_jobs() -> list[dict]:
    """Get list of scheduled jobs with their next run times."""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append(
            {
                "id": job.id,
                "name": job.name,
                "next_run": (
                    job.next_run_time.isoformat() if job.next_run_time else None
                ),
                "trigger": str(job.trigger),
            }
        )
    return jobs


def trigger_job_now(job_id: str) -> bool:
    """
    Manually trigger a scheduled job immediately.

    Args:
        job_id: ID of the job to trigger

    Returns:
        True if triggered successfully
    """
    job = scheduler.get_job(job_id)
    if job:
        job.modify(next_run_time=datetime.now(timezone.utc))
        logger.info(f"Manually triggered job: {job_id}")
        return True

    logger.warning(f"Job not found: {job_id}")
    return False

"""
Health Check Endpoints

Provides health check endpoints for monitoring and orchestration.

Endpoints:
- GET /api/health - Basic health check
- GET /api/health/detailed - Detailed health with dependency checks
- GET /api/health/ready - Readiness probe for orchestration systems
"""

from fastapi import APIRouter

from app.config import settings
from app.db.base import check_connection
from app.services.scheduler import get_scheduled_jobs, scheduler

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """
    Basic health check.

    Returns a simple status response indicating the API is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@router.get("/detailed")
async def detailed_health_check():
    """
    Detailed health check with dependency status.

    Checks:
    - PostgreSQL connectivity
    - Leaderboard scheduler state and next run times
    """
    health = {"status": "healthy", "service": settings.APP_NAME, "dependencies": {}}

    # Check PostgreSQL
    try:
        await check_connection()
        health["dependencies"]["postgres"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["postgres"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    # Check scheduler
    if not settings.LEADERBOARD_SCHEDULER_ENABLED:
        health["dependencies"]["scheduler"] = {"status": "disabled"}
    elif scheduler.running:
        health["dependencies"]["scheduler"] = {
            "status": "healthy",
            "jobs": get_scheduled_jobs(),
        }
    else:
        health["dependencies"]["scheduler"] = {
            "status": "unhealthy",
            "error": "Scheduler not running",
        }
        health["status"] = "degraded"

    return health


@router.get("/ready")
async def readiness_check():
    """
    Readiness probe for orchestration systems.

    Returns ready only if the database accepts queries.

    Used by: Docker health checks, load balancers, Kubernetes, etc.
    """
    try:
        await check_connection()
        return {"ready": True}
    except Exception as e:
        return {"ready": False, "error": str(e)}

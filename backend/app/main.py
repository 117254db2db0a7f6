"""
Revision Planner API

FastAPI application exposing the revision planner:
- Spaced revision schedules, due entries and snoozing
- Study-session timing and schedule advancement
- Dashboard KPIs and upcoming workload
- Cached leaderboards and peer comparison

Run:
    uvicorn app.main:app --reload
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.db.base import init_db
from app.middleware import setup_error_handling, setup_rate_limiting
from app.routers import health_router, leaderboard_router, planner_router
from app.services.scheduler import start_scheduler, stop_scheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    await init_db()
    if settings.LEADERBOARD_SCHEDULER_ENABLED:
        start_scheduler()

    yield

    # Shutdown
    if settings.LEADERBOARD_SCHEDULER_ENABLED:
        stop_scheduler()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Spaced revision planning with snoozes, study sessions and leaderboards.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
setup_error_handling(app, debug=settings.DEBUG)
setup_rate_limiting(app, enabled=settings.RATE_LIMIT_ENABLED)

app.include_router(health_router.router)
app.include_router(planner_router.router)
app.include_router(leaderboard_router.router)


@app.get("/")
async def root():
    return {"message": settings.APP_NAME}

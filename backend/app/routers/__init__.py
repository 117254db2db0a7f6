"""API Routers package."""

from app.routers import health as health_router
from app.routers import leaderboard as leaderboard_router
from app.routers import planner as planner_router

__all__ = ["health_router", "leaderboard_router", "planner_router"]

"""
Planner API Router

Endpoints for revision schedules, snoozing and study sessions.

Endpoints:
- GET /api/planner/due - Due-today, overdue and snoozed entries
- GET /api/planner/kpis - Dashboard KPIs
- GET /api/planner/upcoming - Upcoming workload forecast
- GET /api/planner/topics/{topic_id}/schedule - A topic's schedule
- POST /api/planner/topics/{topic_id}/schedule - Generate a topic's schedule
- POST /api/planner/topics/{topic_id}/schedule/regenerate - Restart from today
- POST /api/planner/snooze - Snooze one entry or all due entries
- POST /api/planner/sessions - Start a study session
- GET /api/planner/sessions/{session_id} - Get a session
- POST /api/planner/sessions/{session_id}/finish - Finish with a rating
- POST /api/planner/sessions/{session_id}/pause - Pause a session
- POST /api/planner/sessions/{session_id}/resume - Resume a session
- POST /api/planner/sessions/{session_id}/abort - Abort a session
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, Query

from app.dependencies import get_current_user_id, get_repository
from app.middleware.error_handling import handle_endpoint_errors
from app.models.planner import (
    DueEntriesResponse,
    KpiResponse,
    ScheduleCreateRequest,
    ScheduleResponse,
    SessionFinishRequest,
    SessionFinishResponse,
    SessionResponse,
    SessionStartRequest,
    SessionStartResponse,
    SnoozeRequest,
    SnoozeResponse,
    UpcomingLoadResponse,
)
from app.services.planner import (
    InsightsService,
    ScheduleEngine,
    SessionRecorder,
    SnoozeCoordinator,
)
from app.services.planner.ports import PlannerRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/planner", tags=["planner"])


# ===========================================
# Dependency Injection
# ===========================================


async def get_schedule_engine(
    repository: PlannerRepository = Depends(get_repository),
) -> ScheduleEngine:
    """Get schedule engine."""
    return ScheduleEngine(repository)


async def get_snooze_coordinator(
    repository: PlannerRepository = Depends(get_repository),
) -> SnoozeCoordinator:
    """Get snooze coordinator."""
    return SnoozeCoordinator(repository)


async def get_session_recorder(
    repository: PlannerRepository = Depends(get_repository),
) -> SessionRecorder:
    """Get session recorder."""
    return SessionRecorder(repository)


async def get_insights_service(
    repository: PlannerRepository = Depends(get_repository),
) -> InsightsService:
    """Get planner insights service."""
    return InsightsService(repository)


# ===========================================
# Dashboard Endpoints
# ===========================================


@router.get("/due", response_model=DueEntriesResponse)
@handle_endpoint_errors("Get due entries")
async def get_due_entries(
    user_id: str = Depends(get_current_user_id),
    engine: ScheduleEngine = Depends(get_schedule_engine),
) -> DueEntriesResponse:
    """
    Get entries needing attention.

    Returns three lists ordered by effective due date:
    - due_today
    - overdue (with days_overdue)
    - snoozed (with snooze length and cascade flag)
    """
    return await engine.get_due_entries(user_id)


@router.get("/kpis", response_model=KpiResponse)
@handle_endpoint_errors("Get planner KPIs")
async def get_kpis(
    user_id: str = Depends(get_current_user_id),
    service: InsightsService = Depends(get_insights_service),
) -> KpiResponse:
    """Get dashboard KPIs (due counts, weekly minutes, on-time rate, streaks)."""
    return await service.get_kpis(user_id)


@router.get("/upcoming", response_model=UpcomingLoadResponse)
@handle_endpoint_errors("Get upcoming load")
async def get_upcoming_load(
    days: Optional[int] = Query(None, ge=1, le=60, description="Days to forecast"),
    user_id: str = Depends(get_current_user_id),
    service: InsightsService = Depends(get_insights_service),
) -> UpcomingLoadResponse:
    """Get estimated study minutes per day for the coming days."""
    return await service.get_upcoming_load(user_id, days=days)


# ===========================================
# Schedule Endpoints
# ===========================================


@router.get("/topics/{topic_id}/schedule", response_model=ScheduleResponse)
@handle_endpoint_errors("Get schedule")
async def get_schedule(
    topic_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: ScheduleEngine = Depends(get_schedule_engine),
) -> ScheduleResponse:
    """Get a topic's schedule ordered by cycle."""
    return await engine.get_schedule(topic_id, user_id)


@router.post("/topics/{topic_id}/schedule", response_model=ScheduleResponse)
@handle_endpoint_errors("Generate schedule")
async def create_schedule(
    topic_id: str,
    request: ScheduleCreateRequest,
    user_id: str = Depends(get_current_user_id),
    engine: ScheduleEngine = Depends(get_schedule_engine),
) -> ScheduleResponse:
    """
    Generate a topic's schedule from its first-studied date.

    Returns 409 if the topic already has a schedule.
    """
    return await engine.create_schedule(
        topic_id,
        user_id,
        offsets=request.offsets,
        derive_from_topic=request.derive_from_topic,
    )


@router.post("/topics/{topic_id}/schedule/regenerate", response_model=ScheduleResponse)
@handle_endpoint_errors("Regenerate schedule")
async def regenerate_schedule(
    topic_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: ScheduleEngine = Depends(get_schedule_engine),
) -> ScheduleResponse:
    """
    Restart a topic's schedule from today.

    Uncompleted repetitions and their snooze history are discarded.
    """
    return await engine.regenerate_from_today(topic_id, user_id)


# ===========================================
# Snooze Endpoints
# ===========================================


@router.post("/snooze", response_model=SnoozeResponse)
@handle_endpoint_errors("Snooze")
async def snooze(
    request: SnoozeRequest,
    user_id: str = Depends(get_current_user_id),
    coordinator: SnoozeCoordinator = Depends(get_snooze_coordinator),
) -> SnoozeResponse:
    """
    Snooze one entry, or every due/overdue entry with target "all".

    Days must be within 1-30. With cascade, the topic's later pending
    repetitions shift by the same number of days.
    """
    return await coordinator.snooze(
        user_id, request.target, request.days, cascade=request.cascade
    )


# ===========================================
# Session Endpoints
# ===========================================


@router.post("/sessions", response_model=SessionStartResponse, status_code=201)
@handle_endpoint_errors("Start session")
async def start_session(
    request: SessionStartRequest,
    user_id: str = Depends(get_current_user_id),
    recorder: SessionRecorder = Depends(get_session_recorder),
) -> SessionStartResponse:
    """Start a study timer on a topic. Returns 409 if one is already active."""
    return await recorder.start(user_id, request.topic_id, request.planned_seconds)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
@handle_endpoint_errors("Get session")
async def get_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    recorder: SessionRecorder = Depends(get_session_recorder),
) -> SessionResponse:
    """Get a session by ID."""
    return await recorder.get_session(user_id, session_id)


@router.post("/sessions/{session_id}/finish", response_model=SessionFinishResponse)
@handle_endpoint_errors("Finish session")
async def finish_session(
    session_id: str,
    request: SessionFinishRequest,
    user_id: str = Depends(get_current_user_id),
    recorder: SessionRecorder = Depends(get_session_recorder),
) -> SessionFinishResponse:
    """
    Finish a session with a recall rating.

    Completes the linked repetition and re-anchors the next one at today.
    Finishing twice returns 409.
    """
    return await recorder.finish(
        user_id,
        session_id,
        actual_seconds=request.actual_seconds,
        rating=request.rating,
        notes=request.notes,
    )


@router.post("/sessions/{session_id}/pause", response_model=SessionResponse)
@handle_endpoint_errors("Pause session")
async def pause_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    recorder: SessionRecorder = Depends(get_session_recorder),
) -> SessionResponse:
    """Pause a running session."""
    return await recorder.pause(user_id, session_id)


@router.post("/sessions/{session_id}/resume", response_model=SessionResponse)
@handle_endpoint_errors("Resume session")
async def resume_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    recorder: SessionRecorder = Depends(get_session_recorder),
) -> SessionResponse:
    """Resume a paused session."""
    return await recorder.resume(user_id, session_id)


@router.post("/sessions/{session_id}/abort", response_model=SessionResponse)
@handle_endpoint_errors("Abort session")
async def abort_session(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    recorder: SessionRecorder = Depends(get_session_recorder),
) -> SessionResponse:
    """Abort a session without touching the schedule."""
    return await recorder.abort(user_id, session_id)

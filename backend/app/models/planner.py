"""
Revision Planner API Models (Pydantic)

Request/response schemas for schedules, snoozing, study sessions and the
dashboard.

ARCHITECTURE NOTE:
    Services work on dataclass domain records (app/services/planner/domain.py)
    and return these models from their query-surface methods.

    Data flows: API Request → Pydantic → Service → Domain record → Repository

API Contract:
    Request models use StrictRequest (extra="forbid") to reject unknown fields.
    Numeric bounds (snooze days, seconds) are validated by the services so that
    every rejection carries the same error body.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from app.enums.planner import (
    CompletionState,
    DueStatus,
    RecallRating,
    SessionStatus,
)
from app.models.base import StrictRequest, StrictResponse


# ===========================================
# Schedule Models
# ===========================================


class ScheduleEntryResponse(StrictResponse):
    """
    One repetition of a topic with its current due status.
    """

    id: str
    topic_id: str
    cycle: int = Field(description="Day offset this repetition represents")
    due_date: date
    effective_due: date = Field(description="Snooze date while snoozed, else due date")
    state: CompletionState
    status: DueStatus
    completed_at: Optional[datetime] = None
    snoozed_to: Optional[date] = None
    snooze_days: int = 0
    cascade_snoozed: bool = False


class ScheduleCreateRequest(StrictRequest):
    """
    Request to generate a topic's schedule.

    Either pass explicit `offsets`, set `derive_from_topic` to pick the profile
    from importance + difficulty, or pass neither to use the topic's stored
    frequency.
    """

    offsets: Optional[list[int]] = Field(
        None, description="Strictly increasing day offsets, e.g. [7, 14, 21, 28]"
    )
    derive_from_topic: bool = Field(
        False, description="Derive the frequency from importance + difficulty"
    )


class ScheduleResponse(StrictResponse):
    """A topic's full schedule ordered by cycle."""

    topic_id: str
    entries: list[ScheduleEntryResponse]


# ===========================================
# Due Entries
# ===========================================


class SnoozeInfo(StrictResponse):
    """Snooze metadata shown on a snoozed card."""

    days: int
    until: date
    cascading: bool


class DueEntryCard(StrictResponse):
    """
    A schedule entry decorated with its topic for dashboard cards.

    `progress` has one flag per cycle of the topic (True = completed) and
    `next_dates` lists the effective dates of the topic's later uncompleted
    cycles.
    """

    schedule_id: str
    topic_id: str
    subject: str
    title: str
    cycle: int
    status: DueStatus
    due_date: date
    effective_due: date
    estimated_minutes: int
    days_overdue: Optional[int] = None
    progress: list[bool] = Field(default_factory=list)
    next_dates: list[date] = Field(default_factory=list)
    snooze: Optional[SnoozeInfo] = None


class DueEntriesResponse(StrictResponse):
    """Entries needing attention, grouped by due status."""

    due_today: list[DueEntryCard] = Field(default_factory=list)
    overdue: list[DueEntryCard] = Field(default_factory=list)
    snoozed: list[DueEntryCard] = Field(default_factory=list)


# ===========================================
# Snooze Models
# ===========================================


class SnoozeRequest(StrictRequest):
    """
    Request to defer one entry or every due/overdue entry.

    Note: Uses StrictRequest - unknown fields will be rejected with 422.
    """

    target: str = Field(..., description='Schedule entry id, or "all"')
    days: int = Field(..., description="Days to defer (1-30)")
    cascade: bool = Field(
        False, description="Shift the topic's later pending repetitions too"
    )


class SnoozeResponse(StrictResponse):
    """
    Result of a snooze.

    `new_dates` holds the new effective date of every changed entry, the
    directly snoozed entries first.
    """

    new_dates: list[date]
    entries: list[ScheduleEntryResponse]


# ===========================================
# Session Models
# ===========================================


class SessionStartRequest(StrictRequest):
    """Request to start a study timer on a topic."""

    topic_id: str
    planned_seconds: int = Field(..., description="Planned duration in seconds")


class SessionStartResponse(StrictResponse):
    """Created running session."""

    session_id: str
    schedule_id: Optional[str] = None
    started_at: datetime


class SessionFinishRequest(StrictRequest):
    """
    Request to finish a session with a recall rating.

    Note: Uses StrictRequest - unknown fields will be rejected with 422.
    """

    actual_seconds: int = Field(..., description="Time actually studied in seconds")
    rating: RecallRating
    notes: str = ""


class SessionFinishResponse(StrictResponse):
    """
    Outcome of finishing a session.

    `schedule_id` is the next cycle's entry when the cycle advanced, otherwise
    the entry that was just completed (None for unlinked sessions).
    """

    session_id: str
    completed_schedule_id: Optional[str] = None
    schedule_id: Optional[str] = None
    next_due_date: Optional[date] = None
    cycle_advanced: bool = False


class SessionResponse(StrictResponse):
    """Full session state."""

    id: str
    topic_id: str
    schedule_id: Optional[str] = None
    status: SessionStatus
    started_at: datetime
    ended_at: Optional[datetime] = None
    planned_seconds: int
    actual_seconds: int = 0
    paused_seconds: int = 0
    paused_at: Optional[datetime] = None
    rating: Optional[RecallRating] = None
    notes: str = ""


# ===========================================
# Dashboard Models
# ===========================================


class KpiResponse(StrictResponse):
    """
    Dashboard key performance indicators for one user.

    Weekly figures use the configured week window.
    """

    due_today: int = 0
    overdue: int = 0
    completed_today: int = 0
    weekly_minutes: float = 0.0
    on_time_rate: float = 0.0
    avg_lateness_days: float = Field(
        0.0, description="Mean days late over completed repetitions (early = 0)"
    )
    current_streak: int = 0
    best_streak: int = 0
    snooze_count: int = Field(0, description="Entries currently snoozed")


class UpcomingDay(StrictResponse):
    """Planned workload for one upcoming day."""

    day: date
    total_minutes: int = 0
    topic_count: int = 0


class UpcomingLoadResponse(StrictResponse):
    """Workload forecast for the next few days."""

    days: list[UpcomingDay] = Field(default_factory=list)

"""
Domain records for the revision planner.

These are plain data structures with no I/O. The persistence collaborator
converts them to and from database rows; services mutate them and hand them
back inside a unit of work.

All dates (due dates, snooze dates) are calendar dates. All timestamps are
timezone-aware UTC datetimes.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional
import uuid

from app.config import settings
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.enums.planner import (
    CompletionState,
    FrequencyProfile,
    MasteryLevel,
    RecallRating,
    SessionStatus,
)
from app.middleware.error_handling import ValidationError


def new_id() -> str:
    """Generate a new record identifier."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ===========================================
# Topics & Frequencies
# ===========================================


@dataclass(frozen=True)
class RevisionFrequency:
    """
    Ordered, strictly increasing day offsets from the first-studied date.

    The number of offsets is the number of repetitions a topic receives.

    Raises:
        ValidationError: If offsets are empty, non-positive or not strictly
            increasing.
    """

    offsets: tuple[int, ...]

    def __post_init__(self) -> None:
        offsets = tuple(self.offsets)
        object.__setattr__(self, "offsets", offsets)

        if not offsets:
            raise ValidationError("Revision frequency needs at least one offset")
        if offsets[0] <= 0:
            raise ValidationError(
                "Revision frequency offsets must be positive",
                details={"offsets": list(offsets)},
            )
        for previous, current in zip(offsets, offsets[1:]):
            if current <= previous:
                raise ValidationError(
                    "Revision frequency offsets must be strictly increasing",
                    details={"offsets": list(offsets)},
                )

    def __len__(self) -> int:
        return len(self.offsets)

    def next_offset(self, offset: int) -> Optional[int]:
        """Return the offset following `offset`, or None for the last cycle."""
        for candidate in self.offsets:
            if candidate > offset:
                return candidate
        return None

    @classmethod
    def for_profile(cls, profile: FrequencyProfile) -> "RevisionFrequency":
        """Build the configured frequency for a named profile."""
        profiles = {
            FrequencyProfile.LIGHT: settings.FREQUENCY_LIGHT,
            FrequencyProfile.STANDARD: settings.FREQUENCY_STANDARD,
            FrequencyProfile.INTENSIVE: settings.FREQUENCY_INTENSIVE,
        }
        return cls(tuple(profiles[profile]))

    @classmethod
    def default(cls) -> "RevisionFrequency":
        return cls.for_profile(FrequencyProfile.STANDARD)


def profile_for(importance: int, difficulty: int) -> FrequencyProfile:
    """
    Pick a frequency profile from a topic's importance and difficulty.

    Args:
        importance: Importance weight, 1-5.
        difficulty: Difficulty, 1-5.

    Returns:
        LIGHT for a sum <= 4, STANDARD for <= 7, otherwise INTENSIVE.
    """
    for name, value in (("importance", importance), ("difficulty", difficulty)):
        if not 1 <= value <= 5:
            raise ValidationError(
                f"Topic {name} must be between 1 and 5",
                details={name: value},
            )

    score = importance + difficulty
    if score <= settings.FREQUENCY_LIGHT_MAX_SCORE:
        return FrequencyProfile.LIGHT
    if score <= settings.FREQUENCY_STANDARD_MAX_SCORE:
        return FrequencyProfile.STANDARD
    return FrequencyProfile.INTENSIVE


@dataclass
class Topic:
    """
    A study topic owned by a user.

    Created and edited by the external topic store; identity is immutable.
    """

    id: str
    user_id: str
    subject: str
    title: str
    first_studied: Optional[date]
    estimated_minutes: int = 30
    importance: int = 3  # 1-5
    difficulty: int = 3  # 1-5
    mastery_level: MasteryLevel = MasteryLevel.BEGINNER
    must_win: bool = False
    is_archived: bool = False

    def derived_frequency(self) -> RevisionFrequency:
        """Frequency re-derived from importance + difficulty."""
        return RevisionFrequency.for_profile(
            profile_for(self.importance, self.difficulty)
        )


# ===========================================
# Schedule Entries
# ===========================================


@dataclass
class ScheduleEntry:
    """
    One repetition instance of a topic.

    Attributes:
        cycle: The day offset (from RevisionFrequency) this entry represents.
        due_date: Scheduled date. Shifted by cascade snoozes and re-anchored
            when the previous cycle completes.
        state: Exactly one of pending, completed, snoozed.
        snoozed_to: Deferred date while snoozed; always >= due_date.
        snooze_days: Length of the most recent snooze.
        cascade_snoozed: Whether the most recent snooze cascaded.
    """

    id: str
    topic_id: str
    user_id: str
    cycle: int
    due_date: date
    state: CompletionState = CompletionState.PENDING
    completed_at: Optional[datetime] = None
    snoozed_to: Optional[date] = None
    snooze_days: int = 0
    cascade_snoozed: bool = False
    created_at: datetime = field(default_factory=utc_now)

    @property
    def is_completed(self) -> bool:
        return self.state == CompletionState.COMPLETED

    @property
    def effective_due(self) -> date:
        """The date the entry is actually expected: the snooze date when set."""
        if self.snoozed_to is not None:
            return self.snoozed_to
        return self.due_date


# ===========================================
# Study Sessions
# ===========================================


@dataclass
class StudySession:
    """
    One study attempt on a topic, optionally linked to a schedule entry.

    Created when a timer starts and finalized when a rating is submitted.
    Never mutated after reaching a terminal status.
    """

    id: str
    user_id: str
    topic_id: str
    schedule_id: Optional[str]
    started_at: datetime
    planned_seconds: int
    status: SessionStatus = SessionStatus.RUNNING
    ended_at: Optional[datetime] = None
    actual_seconds: int = 0
    rating: Optional[RecallRating] = None
    notes: str = ""
    paused_at: Optional[datetime] = None
    paused_seconds: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


# ===========================================
# Metrics & Leaderboard
# ===========================================


@dataclass(frozen=True)
class Learner:
    """An active user eligible for the leaderboard."""

    id: str
    display_name: str


@dataclass
class MetricsSnapshot:
    """
    Per (user, scope, scope_id, window) performance statistics.

    Derived, not authoritative: fully recomputable from session and
    schedule history.
    """

    user_id: str
    scope: MetricsScope
    scope_id: Optional[str]
    window: TimeWindow
    on_time_rate: float = 0.0
    total_minutes: float = 0.0
    avg_time_per_revision: float = 0.0
    consistency: float = 0.0
    coverage: float = 0.0
    session_count: int = 0
    display_name: str = ""
    calculated_at: datetime = field(default_factory=utc_now)


@dataclass
class LeaderboardRow:
    """
    A ranked snapshot, unique per (user, scope, scope_id, window).

    `stale` marks a row carried over from the previous generation because the
    user's recomputation failed.
    """

    snapshot: MetricsSnapshot
    rank: int
    stale: bool = False

    @property
    def user_id(self) -> str:
        return self.snapshot.user_id


@dataclass
class ComparisonBucket:
    """
    A synthetic aggregate (you / topper / average / struggling).

    `rank` is a display rank; None when the bucket is empty or the user has no
    snapshot in the requested scope and window.
    """

    label: str
    on_time_rate: float = 0.0
    total_minutes: float = 0.0
    avg_time_per_revision: float = 0.0
    consistency: float = 0.0
    coverage: float = 0.0
    rank: Optional[int] = None
    size: int = 0

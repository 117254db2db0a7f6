"""
SQLAlchemy Database Models for the Revision Planner

Tables:
- users: Learners (leaderboard cohort)
- topics: Study topics with importance/difficulty and revision frequency
- revision_schedules: One row per scheduled repetition of a topic
- revision_sessions: Study attempts, optionally linked to a repetition
- leaderboard_entries: Ranked metrics snapshots per (user, scope, window)

ARCHITECTURE NOTE:
    This file contains SQLALCHEMY models for database persistence.
    Services never touch these classes: app/db/repository.py converts rows to
    the dataclass records in app/services/planner/domain.py.

    Data flows: Service Layer → Domain record → Repository → SQLAlchemy → Database
"""

from datetime import date, datetime, timezone
from typing import List, Optional


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


from sqlalchemy import (  # noqa: E402
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship  # noqa: E402

from app.db.base import Base  # noqa: E402

# At most one running or paused session per topic.
OPEN_SESSION_INDEX = "uq_revision_sessions_open_topic"


# ===========================================
# Users & Topics
# ===========================================


class User(Base):
    """
    A learner.

    Attributes:
        id: UUID string primary key.
        display_name: Name shown on leaderboards.
        is_active: Inactive users are excluded from leaderboard cohorts.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(200), default="")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    topics: Mapped[List["TopicRecord"]] = relationship(back_populates="user")


class TopicRecord(Base):
    """
    A study topic.

    Topic CRUD is owned by the topic store; the planner only reads these rows.

    Attributes:
        frequency: Day offsets chosen at creation (e.g. [7, 14, 21, 28]).
            Null means "derive from importance + difficulty".
        importance / difficulty: 1-5 weights.
        mastery_level: Beginner / Intermediate / Advanced / Mastered.
        is_archived: Archived topics are hidden from schedules and metrics.
    """

    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), index=True
    )
    subject: Mapped[str] = mapped_column(String(200), index=True)
    title: Mapped[str] = mapped_column(String(500))
    first_studied: Mapped[Optional[date]] = mapped_column(Date)
    estimated_minutes: Mapped[int] = mapped_column(Integer, default=30)
    importance: Mapped[int] = mapped_column(Integer, default=3)
    difficulty: Mapped[int] = mapped_column(Integer, default=3)
    mastery_level: Mapped[str] = mapped_column(String(20), default="Beginner")
    must_win: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    frequency: Mapped[Optional[list]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    user: Mapped["User"] = relationship(back_populates="topics")
    schedules: Mapped[List["RevisionScheduleRecord"]] = relationship(
        back_populates="topic", cascade="all, delete-orphan"
    )


# ===========================================
# Schedules & Sessions
# ===========================================


class RevisionScheduleRecord(Base):
    """
    One repetition of a topic.

    Attributes:
        cycle: Day offset from the topic's frequency.
        due_date: Scheduled date (shifted by cascades and re-anchoring).
        state: pending / completed / snoozed.
        snoozed_to: Deferred date while snoozed.
        snooze_days: Length of the most recent snooze.
        cascade_snoozed: Whether the most recent snooze cascaded.
    """

    __tablename__ = "revision_schedules"
    __table_args__ = (Index("ix_revision_schedules_user_due", "user_id", "due_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    cycle: Mapped[int] = mapped_column(Integer)
    due_date: Mapped[date] = mapped_column(Date)
    state: Mapped[str] = mapped_column(String(20), default="pending")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    snoozed_to: Mapped[Optional[date]] = mapped_column(Date)
    snooze_days: Mapped[int] = mapped_column(Integer, default=0)
    cascade_snoozed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

    topic: Mapped["TopicRecord"] = relationship(back_populates="schedules")


class RevisionSessionRecord(Base):
    """
    A study attempt.

    Attributes:
        schedule_id: Repetition this session completes; null when the topic
            had no uncompleted repetition at start.
        status: running / paused / finished / aborted.
        paused_at: Start of the current pause, if paused.
        paused_seconds: Accumulated pause time.
        rating: Again / Hard / Good / Easy once finished.
    """

    __tablename__ = "revision_sessions"
    __table_args__ = (
        Index("ix_revision_sessions_user_started", "user_id", "started_at"),
        Index(
            OPEN_SESSION_INDEX,
            "topic_id",
            unique=True,
            postgresql_where=text("status IN ('running', 'paused')"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    topic_id: Mapped[str] = mapped_column(
        ForeignKey("topics.id", ondelete="CASCADE"), index=True
    )
    schedule_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("revision_schedules.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(20), default="running")
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    planned_seconds: Mapped[int] = mapped_column(Integer)
    actual_seconds: Mapped[int] = mapped_column(Integer, default=0)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    paused_seconds: Mapped[int] = mapped_column(Integer, default=0)
    rating: Mapped[Optional[str]] = mapped_column(String(10))
    notes: Mapped[str] = mapped_column(Text, default="")


# ===========================================
# Leaderboard
# ===========================================


class LeaderboardEntryRecord(Base):
    """
    A ranked metrics snapshot.

    Unique per (user_id, scope, scope_id, time_window). scope_id is stored as
    an empty string for the global scope so the unique constraint holds.
    """

    __tablename__ = "leaderboard_entries"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "scope", "scope_id", "time_window", name="uq_leaderboard_key"
        ),
        Index("ix_leaderboard_lookup", "scope", "scope_id", "time_window", "rank"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))
    scope: Mapped[str] = mapped_column(String(20))
    scope_id: Mapped[str] = mapped_column(String(200), default="")
    time_window: Mapped[str] = mapped_column(String(10))
    rank: Mapped[int] = mapped_column(Integer)
    display_name: Mapped[str] = mapped_column(String(200), default="")
    on_time_rate: Mapped[float] = mapped_column(Float, default=0.0)
    total_minutes: Mapped[float] = mapped_column(Float, default=0.0)
    avg_time_per_revision: Mapped[float] = mapped_column(Float, default=0.0)
    consistency: Mapped[float] = mapped_column(Float, default=0.0)
    coverage: Mapped[float] = mapped_column(Float, default=0.0)
    session_count: Mapped[int] = mapped_column(Integer, default=0)
    stale: Mapped[bool] = mapped_column(Boolean, default=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now
    )

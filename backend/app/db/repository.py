"""
SQL Planner Repository

PostgreSQL implementation of the planner ports over async SQLAlchemy.

Rows are converted to the dataclass records in app/services/planner/domain.py
on read and back on write, so services never hold ORM objects.

Usage:
    async with repository_scope() as repo:
        async with repo.unit_of_work():
            await repo.save_entries(entries)
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, Optional
import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.base import async_session_maker
from app.db.models import (
    OPEN_SESSION_INDEX,
    LeaderboardEntryRecord,
    RevisionScheduleRecord,
    RevisionSessionRecord,
    TopicRecord,
    User,
)
from app.enums.leaderboard import MetricsScope, TimeWindow
from app.enums.planner import (
    CompletionState,
    MasteryLevel,
    RecallRating,
    SessionStatus,
)
from app.middleware.error_handling import (
    NotFoundError,
    PersistenceFailure,
    SessionAlreadyActive,
)
from app.services.planner.domain import (
    Learner,
    LeaderboardRow,
    MetricsSnapshot,
    RevisionFrequency,
    ScheduleEntry,
    StudySession,
    Topic,
)
from app.services.planner.ports import PlannerRepository

logger = logging.getLogger(__name__)

OPEN_STATUSES = (SessionStatus.RUNNING.value, SessionStatus.PAUSED.value)


# ===========================================
# Row <-> record conversion
# ===========================================


def _topic_from_row(row: TopicRecord) -> Topic:
    return Topic(
        id=row.id,
        user_id=row.user_id,
        subject=row.subject,
        title=row.title,
        first_studied=row.first_studied,
        estimated_minutes=row.estimated_minutes,
        importance=row.importance,
        difficulty=row.difficulty,
        mastery_level=MasteryLevel(row.mastery_level),
        must_win=row.must_win,
        is_archived=row.is_archived,
    )


def _entry_from_row(row: RevisionScheduleRecord) -> ScheduleEntry:
    return ScheduleEntry(
        id=row.id,
        topic_id=row.topic_id,
        user_id=row.user_id,
        cycle=row.cycle,
        due_date=row.due_date,
        state=CompletionState(row.state),
        completed_at=row.completed_at,
        snoozed_to=row.snoozed_to,
        snooze_days=row.snooze_days,
        cascade_snoozed=row.cascade_snoozed,
        created_at=row.created_at,
    )


def _copy_entry(entry: ScheduleEntry, row: RevisionScheduleRecord) -> None:
    row.topic_id = entry.topic_id
    row.user_id = entry.user_id
    row.cycle = entry.cycle
    row.due_date = entry.due_date
    row.state = entry.state.value
    row.completed_at = entry.completed_at
    row.snoozed_to = entry.snoozed_to
    row.snooze_days = entry.snooze_days
    row.cascade_snoozed = entry.cascade_snoozed


def _session_from_row(row: RevisionSessionRecord) -> StudySession:
    return StudySession(
        id=row.id,
        user_id=row.user_id,
        topic_id=row.topic_id,
        schedule_id=row.schedule_id,
        started_at=row.started_at,
        planned_seconds=row.planned_seconds,
        status=SessionStatus(row.status),
        ended_at=row.ended_at,
        actual_seconds=row.actual_seconds,
        rating=RecallRating(row.rating) if row.rating else None,
        notes=row.notes or "",
        paused_at=row.paused_at,
        paused_seconds=row.paused_seconds,
    )


def _copy_session(session: StudySession, row: RevisionSessionRecord) -> None:
    row.user_id = session.user_id
    row.topic_id = session.topic_id
    row.schedule_id = session.schedule_id
    row.started_at = session.started_at
    row.planned_seconds = session.planned_seconds
    row.status = session.status.value
    row.ended_at = session.ended_at
    row.actual_seconds = session.actual_seconds
    row.rating = session.rating.value if session.rating else None
    row.notes = session.notes
    row.paused_at = session.paused_at
    row.paused_seconds = session.paused_seconds


def _row_from_leaderboard(row: LeaderboardEntryRecord) -> LeaderboardRow:
    snapshot = MetricsSnapshot(
        user_id=row.user_id,
        scope=MetricsScope(row.scope),
        scope_id=row.scope_id or None,
        window=TimeWindow(row.time_window),
        on_time_rate=row.on_time_rate,
        total_minutes=row.total_minutes,
        avg_time_per_revision=row.avg_time_per_revision,
        consistency=row.consistency,
        coverage=row.coverage,
        session_count=row.session_count,
        display_name=row.display_name,
        calculated_at=row.calculated_at,
    )
    return LeaderboardRow(snapshot=snapshot, rank=row.rank, stale=row.stale)


# ===========================================
# Repository
# ===========================================


class SqlPlannerRepository(PlannerRepository):
    """
    Planner persistence over one AsyncSession.

    Writes are flushed into the session and committed by unit_of_work().
    One instance must not be shared between concurrent tasks.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            if isinstance(e, IntegrityError) and OPEN_SESSION_INDEX in str(e):
                raise SessionAlreadyActive(
                    "A session is already active for this topic"
                ) from e
            logger.error(f"Unit of work rolled back: {e}")
            raise PersistenceFailure(
                "Failed to persist changes", details={"reason": type(e).__name__}
            ) from e
        except Exception:
            await self.db.rollback()
            raise

    # ----- topics -----

    async def list_active_topics(
        self,
        user_id: str,
        scope: MetricsScope = MetricsScope.GLOBAL,
        scope_id: Optional[str] = None,
    ) -> list[Topic]:
        query = select(TopicRecord).where(
            TopicRecord.user_id == user_id,
            TopicRecord.is_archived.is_(False),
        )
        if scope == MetricsScope.SUBJECT:
            query = query.where(TopicRecord.subject == scope_id)
        elif scope == MetricsScope.TOPIC:
            query = query.where(TopicRecord.id == scope_id)

        result = await self.db.execute(query.order_by(TopicRecord.title))
        return [_topic_from_row(row) for row in result.scalars().all()]

    async def get_topic(self, topic_id: str) -> Optional[Topic]:
        row = await self.db.get(TopicRecord, topic_id)
        return _topic_from_row(row) if row else None

    async def get_frequency(self, topic_id: str) -> RevisionFrequency:
        row = await self.db.get(TopicRecord, topic_id)
        if row is None:
            raise NotFoundError("Topic not found", details={"topic_id": topic_id})
        if row.frequency:
            return RevisionFrequency(tuple(row.frequency))
        return _topic_from_row(row).derived_frequency()

    # ----- schedule entries -----

    async def get_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        row = await self.db.get(RevisionScheduleRecord, entry_id)
        return _entry_from_row(row) if row else None

    async def get_entries(self, entry_ids: Iterable[str]) -> dict[str, ScheduleEntry]:
        ids = list(entry_ids)
        if not ids:
            return {}
        result = await self.db.execute(
            select(RevisionScheduleRecord).where(RevisionScheduleRecord.id.in_(ids))
        )
        return {row.id: _entry_from_row(row) for row in result.scalars().all()}

    async def list_entries_for_topic(self, topic_id: str) -> list[ScheduleEntry]:
        result = await self.db.execute(
            select(RevisionScheduleRecord)
            .where(RevisionScheduleRecord.topic_id == topic_id)
            .order_by(RevisionScheduleRecord.cycle, RevisionScheduleRecord.due_date)
        )
        return [_entry_from_row(row) for row in result.scalars().all()]

    async def list_entries_for_user(self, user_id: str) -> list[ScheduleEntry]:
        result = await self.db.execute(
            select(RevisionScheduleRecord)
            .join(TopicRecord, TopicRecord.id == RevisionScheduleRecord.topic_id)
            .where(
                RevisionScheduleRecord.user_id == user_id,
                TopicRecord.is_archived.is_(False),
            )
            .order_by(RevisionScheduleRecord.due_date, RevisionScheduleRecord.cycle)
        )
        return [_entry_from_row(row) for row in result.scalars().all()]

    async def add_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        for entry in entries:
            row = RevisionScheduleRecord(id=entry.id, created_at=entry.created_at)
            _copy_entry(entry, row)
            self.db.add(row)
        await self.db.flush()

    async def save_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        for entry in entries:
            row = await self.db.get(RevisionScheduleRecord, entry.id)
            if row is None:
                raise NotFoundError(
                    "Schedule entry not found", details={"entry_id": entry.id}
                )
            _copy_entry(entry, row)
        await self.db.flush()

    async def delete_entries(self, entry_ids: Iterable[str]) -> None:
        ids = list(entry_ids)
        if ids:
            await self.db.execute(
                delete(RevisionScheduleRecord).where(RevisionScheduleRecord.id.in_(ids))
            )

    # ----- sessions -----

    async def get_session(
        self, session_id: str, for_update: bool = False
    ) -> Optional[StudySession]:
        if for_update:
            row = await self.db.get(
                RevisionSessionRecord,
                session_id,
                with_for_update=True,
                populate_existing=True,
            )
        else:
            row = await self.db.get(RevisionSessionRecord, session_id)
        return _session_from_row(row) if row else None

    async def get_running_session(self, topic_id: str) -> Optional[StudySession]:
        result = await self.db.execute(
            select(RevisionSessionRecord)
            .where(
                RevisionSessionRecord.topic_id == topic_id,
                RevisionSessionRecord.status.in_(OPEN_STATUSES),
            )
            .order_by(RevisionSessionRecord.started_at.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _session_from_row(row) if row else None

    async def add_session(self, session: StudySession) -> None:
        row = RevisionSessionRecord(id=session.id)
        _copy_session(session, row)
        self.db.add(row)
        await self.db.flush()

    async def save_session(self, session: StudySession) -> None:
        row = await self.db.get(RevisionSessionRecord, session.id)
        if row is None:
            raise NotFoundError("Session not found", details={"session_id": session.id})
        _copy_session(session, row)
        await self.db.flush()

    async def list_sessions(
        self, user_id: str, since: Optional[datetime] = None
    ) -> list[StudySession]:
        query = select(RevisionSessionRecord).where(
            RevisionSessionRecord.user_id == user_id
        )
        if since is not None:
            query = query.where(RevisionSessionRecord.started_at >= since)
        result = await self.db.execute(query.order_by(RevisionSessionRecord.started_at))
        return [_session_from_row(row) for row in result.scalars().all()]

    async def list_finished_sessions(
        self, user_id: str, since: datetime
    ) -> list[StudySession]:
        result = await self.db.execute(
            select(RevisionSessionRecord)
            .where(
                RevisionSessionRecord.user_id == user_id,
                RevisionSessionRecord.status == SessionStatus.FINISHED.value,
                RevisionSessionRecord.started_at >= since,
            )
            .order_by(RevisionSessionRecord.started_at)
        )
        return [_session_from_row(row) for row in result.scalars().all()]

    # ----- cohort & leaderboard -----

    async def list_active_learners(self) -> list[Learner]:
        result = await self.db.execute(
            select(User).where(User.is_active.is_(True)).order_by(User.id)
        )
        return [
            Learner(id=row.id, display_name=row.display_name)
            for row in result.scalars().all()
        ]

    async def list_subjects(self) -> list[str]:
        result = await self.db.execute(
            select(TopicRecord.subject)
            .where(TopicRecord.is_archived.is_(False))
            .distinct()
            .order_by(TopicRecord.subject)
        )
        return list(result.scalars().all())

    async def list_leaderboard(
        self,
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
    ) -> list[LeaderboardRow]:
        result = await self.db.execute(
            select(LeaderboardEntryRecord)
            .where(
                LeaderboardEntryRecord.scope == scope.value,
                LeaderboardEntryRecord.scope_id == (scope_id or ""),
                LeaderboardEntryRecord.time_window == window.value,
            )
            .order_by(LeaderboardEntryRecord.rank)
        )
        return [_row_from_leaderboard(row) for row in result.scalars().all()]

    async def replace_leaderboard(
        self,
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
        rows: list[LeaderboardRow],
    ) -> None:
        """Delete the key's rows and insert the new generation in the same transaction."""
        await self.db.execute(
            delete(LeaderboardEntryRecord).where(
                LeaderboardEntryRecord.scope == scope.value,
                LeaderboardEntryRecord.scope_id == (scope_id or ""),
                LeaderboardEntryRecord.time_window == window.value,
            )
        )
        for row in rows:
            snapshot = row.snapshot
            self.db.add(
                LeaderboardEntryRecord(
                    user_id=snapshot.user_id,
                    scope=scope.value,
                    scope_id=scope_id or "",
                    time_window=window.value,
                    rank=row.rank,
                    display_name=snapshot.display_name,
                    on_time_rate=snapshot.on_time_rate,
                    total_minutes=snapshot.total_minutes,
                    avg_time_per_revision=snapshot.avg_time_per_revision,
                    consistency=snapshot.consistency,
                    coverage=snapshot.coverage,
                    session_count=snapshot.session_count,
                    stale=row.stale,
                    calculated_at=snapshot.calculated_at,
                )
            )
        await self.db.flush()


@asynccontextmanager
async def repository_scope() -> AsyncIterator[SqlPlannerRepository]:
    """Open a repository bound to a fresh session."""
    async with async_session_maker() as session:
        yield SqlPlannerRepository(session)

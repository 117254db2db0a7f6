"""
Session Recorder

Records study attempts and advances the schedule when a session finishes.

Lifecycle:
    start → running ⇄ paused → finished | aborted

Finishing completes the linked schedule entry and re-anchors the next cycle
to the completion date: next due = completed date + (next offset - current
offset), never earlier than the completed entry's own due date. The rest of
the pending tail moves by the same delta.

Usage:
    recorder = SessionRecorder(repository)
    started = await recorder.start(user_id, topic_id, planned_seconds=1500)
    result = await recorder.finish(
        user_id, started.session_id, actual_seconds=1320, rating=RecallRating.GOOD
    )
"""

from datetime import datetime, timedelta
from typing import Optional, Union
import logging

from app.enums.planner import CompletionState, RecallRating, SessionStatus
from app.middleware.error_handling import (
    InvalidStateTransition,
    NotFoundError,
    SessionAlreadyActive,
    SessionAlreadyFinished,
    ValidationError,
)
from app.models.planner import (
    SessionFinishResponse,
    SessionResponse,
    SessionStartResponse,
)

from .domain import ScheduleEntry, StudySession, new_id, utc_now
from .ports import PlannerRepository

logger = logging.getLogger(__name__)


def _validate_seconds(name: str, value: int, allow_zero: bool) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={name: value})
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} is out of range", details={name: value})
    return value


def _close_pause(session: StudySession, now: datetime) -> None:
    """Fold an open pause into paused_seconds."""
    if session.paused_at is not None:
        session.paused_seconds += max(0, int((now - session.paused_at).total_seconds()))
        session.paused_at = None


class SessionRecorder:
    """
    Service for the study-session lifecycle.

    Provides:
    - start / pause / resume / abort
    - finish with schedule advancement
    """

    def __init__(self, repository: PlannerRepository):
        self.repository = repository

    async def start(
        self,
        user_id: str,
        topic_id: str,
        planned_seconds: int,
        now: Optional[datetime] = None,
    ) -> SessionStartResponse:
        """
        Start a running session on a topic.

        The session is linked to the topic's earliest uncompleted entry; with
        none left it is unlinked.

        Raises:
            ValidationError: planned_seconds is not positive
            NotFoundError: Unknown topic
            SessionAlreadyActive: The topic already has an open session
        """
        _validate_seconds("planned_seconds", planned_seconds, allow_zero=False)
        now = now or utc_now()

        topic = await self.repository.get_topic(topic_id)
        if topic is None or topic.user_id != user_id:
            raise NotFoundError("Topic not found", details={"topic_id": topic_id})

        running = await self.repository.get_running_session(topic.id)
        if running is not None:
            raise SessionAlreadyActive(
                "A session is already active for this topic",
                details={"topic_id": topic.id, "session_id": running.id},
            )

        entries = await self.repository.list_entries_for_topic(topic.id)
        pending = [e for e in entries if not e.is_completed]
        linked = min(pending, key=lambda e: (e.cycle, e.due_date), default=None)

        session = StudySession(
            id=new_id(),
            user_id=user_id,
            topic_id=topic.id,
            schedule_id=linked.id if linked else None,
            started_at=now,
            planned_seconds=planned_seconds,
        )
        async with self.repository.unit_of_work():
            await self.repository.add_session(session)

        logger.info(
            f"Started session {session.id} on topic {topic.id} "
            f"(schedule={session.schedule_id}, planned={planned_seconds}s)"
        )
        return SessionStartResponse(
            session_id=session.id,
            schedule_id=session.schedule_id,
            started_at=session.started_at,
        )

    async def finish(
        self,
        user_id: str,
        session_id: str,
        actual_seconds: int,
        rating: Union[RecallRating, str],
        notes: str = "",
        now: Optional[datetime] = None,
    ) -> SessionFinishResponse:
        """
        Finalize a session and advance the topic's schedule.

        Args:
            user_id: Owner of the session
            session_id: Session to finish
            actual_seconds: Time actually studied
            rating: Recall rating (Again/Hard/Good/Easy)
            notes: Free-text notes
            now: Completion time (defaults to current UTC)

        Returns:
            Next due date, whether the cycle advanced and the entry id now
            carrying the schedule forward

        Raises:
            SessionAlreadyFinished: The session is already terminal
            InvalidStateTransition: The linked entry was already completed
        """
        now = now or utc_now()
        async with self.repository.unit_of_work():
            session = await self._get_open_session(session_id, user_id, for_update=True)
            result = await self._complete(session, actual_seconds, rating, notes, now)

        logger.info(
            f"Finished session {session.id}: rating={session.rating.value}, "
            f"actual={actual_seconds}s, cycle_advanced={result.cycle_advanced}, "
            f"next_due={result.next_due_date}"
        )
        return result

    async def pause(
        self, user_id: str, session_id: str, now: Optional[datetime] = None
    ) -> SessionResponse:
        """Pause a running session."""
        now = now or utc_now()
        async with self.repository.unit_of_work():
            session = await self._get_open_session(session_id, user_id, for_update=True)
            if session.status == SessionStatus.PAUSED:
                raise InvalidStateTransition(
                    "Session is already paused", details={"session_id": session.id}
                )

            session.status = SessionStatus.PAUSED
            session.paused_at = now
            await self.repository.save_session(session)
        return self.to_response(session)

    async def resume(
        self, user_id: str, session_id: str, now: Optional[datetime] = None
    ) -> SessionResponse:
        """Resume a paused session, accumulating the pause length."""
        now = now or utc_now()
        async with self.repository.unit_of_work():
            session = await self._get_open_session(session_id, user_id, for_update=True)
            if session.status != SessionStatus.PAUSED:
                raise InvalidStateTransition(
                    "Session is not paused", details={"session_id": session.id}
                )

            _close_pause(session, now)
            session.status = SessionStatus.RUNNING
            await self.repository.save_session(session)
        return self.to_response(session)

    async def abort(
        self, user_id: str, session_id: str, now: Optional[datetime] = None
    ) -> SessionResponse:
        """
        End a session without a rating.

        The schedule is untouched and aborted sessions never count toward
        metrics. Elapsed time minus pauses is kept for reference.
        """
        now = now or utc_now()
        async with self.repository.unit_of_work():
            session = await self._get_open_session(session_id, user_id, for_update=True)

            _close_pause(session, now)
            elapsed = int((now - session.started_at).total_seconds())
            session.actual_seconds = max(0, elapsed - session.paused_seconds)
            session.status = SessionStatus.ABORTED
            session.ended_at = now
            await self.repository.save_session(session)

        logger.info(f"Aborted session {session.id} on topic {session.topic_id}")
        return self.to_response(session)

    async def get_session(self, user_id: str, session_id: str) -> SessionResponse:
        session = await self._get_owned_session(session_id, user_id)
        return self.to_response(session)

    @staticmethod
    def to_response(session: StudySession) -> SessionResponse:
        return SessionResponse.model_validate(session)

    # ----- helpers -----

    async def _get_owned_session(
        self, session_id: str, user_id: str, for_update: bool = False
    ) -> StudySession:
        session = await self.repository.get_session(session_id, for_update=for_update)
        if session is None or session.user_id != user_id:
            raise NotFoundError("Session not found", details={"session_id": session_id})
        return session

    async def _get_open_session(
        self, session_id: str, user_id: str, for_update: bool = False
    ) -> StudySession:
        session = await self._get_owned_session(session_id, user_id, for_update)
        if session.is_terminal:
            raise SessionAlreadyFinished(
                "Session has already been finalized",
                details={"session_id": session.id, "status": session.status.value},
            )
        return session

    async def _complete(
        self,
        session: StudySession,
        actual_seconds: int,
        rating: Union[RecallRating, str],
        notes: str,
        now: datetime,
    ) -> SessionFinishResponse:
        """Finish a locked open session and write the schedule changes."""
        _validate_seconds("actual_seconds", actual_seconds, allow_zero=True)
        try:
            rating = RecallRating(rating)
        except ValueError:
            raise ValidationError(
                "Unknown recall rating",
                details={"rating": rating, "allowed": [r.value for r in RecallRating]},
            )

        _close_pause(session, now)
        session.status = SessionStatus.FINISHED
        session.ended_at = now
        session.actual_seconds = actual_seconds
        session.rating = rating
        session.notes = notes or ""

        changed: list[ScheduleEntry] = []
        created: list[ScheduleEntry] = []
        result = SessionFinishResponse(session_id=session.id)

        entry = None
        topic_entries: list[ScheduleEntry] = []
        if session.schedule_id is not None:
            topic_entries = await self.repository.list_entries_for_topic(session.topic_id)
            entry = next((e for e in topic_entries if e.id == session.schedule_id), None)
            if entry is None:
                logger.warning(
                    f"Session {session.id} links to missing entry {session.schedule_id}"
                )

        if entry is not None:
            if entry.is_completed:
                raise InvalidStateTransition(
                    "Schedule entry is already completed",
                    details={"entry_id": entry.id},
                )
            entry.state = CompletionState.COMPLETED
            entry.completed_at = now
            changed.append(entry)
            result.completed_schedule_id = entry.id
            result.schedule_id = entry.id

            frequency = await self.repository.get_frequency(session.topic_id)
            next_offset = frequency.next_offset(entry.cycle)
            if next_offset is not None:
                next_entry = self._advance(
                    entry, next_offset, topic_entries, now, changed, created
                )
                result.schedule_id = next_entry.id
                result.next_due_date = next_entry.due_date
                result.cycle_advanced = True

        await self.repository.save_session(session)
        if changed:
            await self.repository.save_entries(changed)
        if created:
            await self.repository.add_entries(created)
        return result

    @staticmethod
    def _advance(
        completed: ScheduleEntry,
        next_offset: int,
        topic_entries: list[ScheduleEntry],
        now: datetime,
        changed: list[ScheduleEntry],
        created: list[ScheduleEntry],
    ) -> ScheduleEntry:
        """
        Re-anchor the next cycle at the completion date.

        Creates the next entry when it does not exist yet; otherwise moves it
        and shifts the later pending entries by the same delta.
        """
        new_due = max(
            now.date() + timedelta(days=next_offset - completed.cycle),
            completed.due_date,
        )

        tail = sorted(
            (e for e in topic_entries if not e.is_completed and e.cycle > completed.cycle),
            key=lambda e: e.cycle,
        )
        next_entry = next((e for e in tail if e.cycle == next_offset), None)

        if next_entry is None:
            next_entry = ScheduleEntry(
                id=new_id(),
                topic_id=completed.topic_id,
                user_id=completed.user_id,
                cycle=next_offset,
                due_date=new_due,
                created_at=now,
            )
            created.append(next_entry)
            return next_entry

        delta = new_due - next_entry.due_date
        for entry in tail:
            if entry is next_entry:
                entry.due_date = new_due
                entry.state = CompletionState.PENDING
                entry.snoozed_to = None
                entry.snooze_days = 0
                entry.cascade_snoozed = False
            else:
                entry.due_date += delta
                if entry.snoozed_to is not None:
                    entry.snoozed_to += delta
            changed.append(entry)
        return next_entry

"""
In-memory planner repository for unit tests.

Reads hand out copies so services only change stored state through explicit
writes. Inside unit_of_work() the first write snapshots the store and the
snapshot is restored if the block raises, mirroring a database rollback.

get_session(for_update=True) holds a per-session lock until the enclosing
unit of work ends, and add_session rejects a second open session on a topic,
mirroring the row lock and partial unique index of the SQL repository.
"""

from contextlib import asynccontextmanager
from copy import deepcopy
from datetime import date, datetime
from typing import AsyncIterator, Iterable, Optional
import asyncio

from app.enums.leaderboard import MetricsScope, TimeWindow
from app.enums.planner import SessionStatus
from app.middleware.error_handling import (
    NotFoundError,
    PersistenceFailure,
    SessionAlreadyActive,
)
from app.services.planner.domain import (
    Learner,
    LeaderboardRow,
    RevisionFrequency,
    ScheduleEntry,
    StudySession,
    Topic,
)
from app.services.planner.ports import PlannerRepository


class InMemoryPlannerRepository(PlannerRepository):
    """
    Dict-backed PlannerRepository.

    Test knobs:
        fail_commit: Raise PersistenceFailure when a unit of work exits.
        failing_users: list_finished_sessions raises for these user ids.
        session_delay: Seconds list_finished_sessions sleeps (timeout tests).
    """

    def __init__(self):
        self.learners: dict[str, Learner] = {}
        self.topics: dict[str, Topic] = {}
        self.frequencies: dict[str, RevisionFrequency] = {}
        self.entries: dict[str, ScheduleEntry] = {}
        self.sessions: dict[str, StudySession] = {}
        self.leaderboards: dict[tuple, list[LeaderboardRow]] = {}

        self.commits = 0
        self.fail_commit = False
        self.failing_users: set[str] = set()
        self.session_delay = 0.0

        self._session_locks: dict[str, asyncio.Lock] = {}
        self._held_locks: dict[asyncio.Task, list[asyncio.Lock]] = {}
        self._snapshots: dict[asyncio.Task, Optional[tuple]] = {}

    # ----- seeding helpers -----

    def add_learner(self, user_id: str, display_name: str = "") -> Learner:
        learner = Learner(id=user_id, display_name=display_name or user_id)
        self.learners[user_id] = learner
        return learner

    def add_topic(
        self,
        topic_id: str,
        user_id: str,
        frequency: Optional[list[int]] = None,
        **fields,
    ) -> Topic:
        fields.setdefault("subject", "General")
        fields.setdefault("title", topic_id)
        fields.setdefault("first_studied", date(2024, 1, 1))
        topic = Topic(id=topic_id, user_id=user_id, **fields)
        self.topics[topic_id] = topic
        if frequency is not None:
            self.frequencies[topic_id] = RevisionFrequency(tuple(frequency))
        return topic

    def put_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        for entry in entries:
            self.entries[entry.id] = deepcopy(entry)

    def put_session(self, session: StudySession) -> None:
        self.sessions[session.id] = deepcopy(session)

    def topic_entries(self, topic_id: str) -> list[ScheduleEntry]:
        """Stored entries of a topic ordered by cycle (no copies)."""
        return sorted(
            (e for e in self.entries.values() if e.topic_id == topic_id),
            key=lambda e: (e.cycle, e.due_date),
        )

    # ----- unit of work -----

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        task = asyncio.current_task()
        self._snapshots[task] = None
        try:
            yield
            if self.fail_commit:
                raise PersistenceFailure("Simulated commit failure")
            self.commits += 1
        except Exception:
            snapshot = self._snapshots.get(task)
            if snapshot is not None:
                self.entries, self.sessions, self.leaderboards = snapshot
            raise
        finally:
            self._snapshots.pop(task, None)
            for lock in self._held_locks.pop(task, []):
                lock.release()

    def _before_write(self) -> None:
        task = asyncio.current_task()
        if task in self._snapshots and self._snapshots[task] is None:
            self._snapshots[task] = deepcopy(
                (self.entries, self.sessions, self.leaderboards)
            )

    # ----- topics -----

    async def list_active_topics(
        self,
        user_id: str,
        scope: MetricsScope = MetricsScope.GLOBAL,
        scope_id: Optional[str] = None,
    ) -> list[Topic]:
        topics = [
            t for t in self.topics.values() if t.user_id == user_id and not t.is_archived
        ]
        if scope == MetricsScope.SUBJECT:
            topics = [t for t in topics if t.subject == scope_id]
        elif scope == MetricsScope.TOPIC:
            topics = [t for t in topics if t.id == scope_id]
        return deepcopy(topics)

    async def get_topic(self, topic_id: str) -> Optional[Topic]:
        return deepcopy(self.topics.get(topic_id))

    async def get_frequency(self, topic_id: str) -> RevisionFrequency:
        if topic_id not in self.topics:
            raise NotFoundError("Topic not found", details={"topic_id": topic_id})
        if topic_id in self.frequencies:
            return self.frequencies[topic_id]
        return self.topics[topic_id].derived_frequency()

    # ----- schedule entries -----

    async def get_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        return deepcopy(self.entries.get(entry_id))

    async def get_entries(self, entry_ids: Iterable[str]) -> dict[str, ScheduleEntry]:
        return {i: deepcopy(self.entries[i]) for i in entry_ids if i in self.entries}

    async def list_entries_for_topic(self, topic_id: str) -> list[ScheduleEntry]:
        return deepcopy(self.topic_entries(topic_id))

    async def list_entries_for_user(self, user_id: str) -> list[ScheduleEntry]:
        entries = [
            e
            for e in self.entries.values()
            if e.user_id == user_id
            and e.topic_id in self.topics
            and not self.topics[e.topic_id].is_archived
        ]
        return deepcopy(sorted(entries, key=lambda e: (e.due_date, e.cycle)))

    async def add_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        self._before_write()
        for entry in entries:
            self.entries[entry.id] = deepcopy(entry)

    async def save_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        self._before_write()
        for entry in entries:
            if entry.id not in self.entries:
                raise NotFoundError(
                    "Schedule entry not found", details={"entry_id": entry.id}
                )
            self.entries[entry.id] = deepcopy(entry)

    async def delete_entries(self, entry_ids: Iterable[str]) -> None:
        self._before_write()
        for entry_id in entry_ids:
            self.entries.pop(entry_id, None)

    # ----- sessions -----

    async def get_session(
        self, session_id: str, for_update: bool = False
    ) -> Optional[StudySession]:
        if for_update:
            lock = self._session_locks.setdefault(session_id, asyncio.Lock())
            await lock.acquire()
            self._held_locks.setdefault(asyncio.current_task(), []).append(lock)
        return deepcopy(self.sessions.get(session_id))

    async def get_running_session(self, topic_id: str) -> Optional[StudySession]:
        for session in self.sessions.values():
            if session.topic_id == topic_id and not session.is_terminal:
                return deepcopy(session)
        return None

    async def add_session(self, session: StudySession) -> None:
        self._before_write()
        if any(
            s.topic_id == session.topic_id and not s.is_terminal
            for s in self.sessions.values()
        ):
            raise SessionAlreadyActive(
                "A session is already active for this topic",
                details={"topic_id": session.topic_id},
            )
        self.sessions[session.id] = deepcopy(session)

    async def save_session(self, session: StudySession) -> None:
        self._before_write()
        if session.id not in self.sessions:
            raise NotFoundError("Session not found", details={"session_id": session.id})
        self.sessions[session.id] = deepcopy(session)

    async def list_sessions(
        self, user_id: str, since: Optional[datetime] = None
    ) -> list[StudySession]:
        sessions = [
            s
            for s in self.sessions.values()
            if s.user_id == user_id and (since is None or s.started_at >= since)
        ]
        return deepcopy(sorted(sessions, key=lambda s: s.started_at))

    async def list_finished_sessions(
        self, user_id: str, since: datetime
    ) -> list[StudySession]:
        if self.session_delay:
            await asyncio.sleep(self.session_delay)
        if user_id in self.failing_users:
            raise RuntimeError(f"history unavailable for {user_id}")
        return [
            s
            for s in await self.list_sessions(user_id, since)
            if s.status == SessionStatus.FINISHED
        ]

    # ----- cohort & leaderboard -----

    async def list_active_learners(self) -> list[Learner]:
        return sorted(self.learners.values(), key=lambda l: l.id)

    async def list_subjects(self) -> list[str]:
        return sorted({t.subject for t in self.topics.values() if not t.is_archived})

    async def list_leaderboard(
        self,
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
    ) -> list[LeaderboardRow]:
        rows = self.leaderboards.get((scope, scope_id, window), [])
        return deepcopy(sorted(rows, key=lambda r: r.rank))

    async def replace_leaderboard(
        self,
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
        rows: list[LeaderboardRow],
    ) -> None:
        self._before_write()
        self.leaderboards[(scope, scope_id, window)] = deepcopy(list(rows))

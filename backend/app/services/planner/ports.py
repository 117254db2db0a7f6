"""
Ports (interfaces) for planner persistence.

These define the contract the persistence collaborator must implement.
Planner and leaderboard services depend on these abstractions, not on a
concrete database.

Implementations:
    - SqlPlannerRepository (app.db.repository): async SQLAlchemy over PostgreSQL.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Callable, Iterable, Optional

from app.enums.leaderboard import MetricsScope, TimeWindow

from .domain import (
    Learner,
    LeaderboardRow,
    RevisionFrequency,
    ScheduleEntry,
    StudySession,
    Topic,
)


class TopicStore(ABC):
    """
    Port for reading topics and their revision frequency.

    Topic CRUD itself is owned by an external collaborator.
    """

    @abstractmethod
    async def list_active_topics(
        self,
        user_id: str,
        scope: MetricsScope = MetricsScope.GLOBAL,
        scope_id: Optional[str] = None,
    ) -> list[Topic]:
        """
        List a user's non-archived topics matching a scope filter.

        Args:
            user_id: Owner of the topics.
            scope: GLOBAL (all), SUBJECT (subject == scope_id) or TOPIC (id == scope_id).
            scope_id: Subject name or topic id for non-global scopes.
        """
        pass

    @abstractmethod
    async def get_topic(self, topic_id: str) -> Optional[Topic]:
        """Fetch a topic by id, or None."""
        pass

    @abstractmethod
    async def get_frequency(self, topic_id: str) -> RevisionFrequency:
        """
        Fetch the frequency chosen for a topic.

        Topics without a stored frequency fall back to the profile derived
        from importance + difficulty.
        """
        pass


class PlannerRepository(TopicStore):
    """
    Port for schedule, session and leaderboard persistence.

    Writes (add_*, save_*, delete_*, replace_*) are staged and only become
    visible when the enclosing unit_of_work() exits without an exception.
    """

    @abstractmethod
    def unit_of_work(self) -> AbstractAsyncContextManager[None]:
        """
        Group writes into one atomic commit.

        Usage:
            async with repo.unit_of_work():
                await repo.save_entries(entries)
                await repo.save_session(session)

        Raises:
            PersistenceFailure: If the commit fails; nothing is written.
        """
        pass

    # ----- schedule entries -----

    @abstractmethod
    async def get_entry(self, entry_id: str) -> Optional[ScheduleEntry]:
        pass

    @abstractmethod
    async def get_entries(self, entry_ids: Iterable[str]) -> dict[str, ScheduleEntry]:
        """Fetch several entries keyed by id (missing ids are skipped)."""
        pass

    @abstractmethod
    async def list_entries_for_topic(self, topic_id: str) -> list[ScheduleEntry]:
        """All entries of a topic ordered by (cycle, due_date)."""
        pass

    @abstractmethod
    async def list_entries_for_user(self, user_id: str) -> list[ScheduleEntry]:
        """All entries of a user's non-archived topics ordered by due date."""
        pass

    @abstractmethod
    async def add_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        pass

    @abstractmethod
    async def save_entries(self, entries: Iterable[ScheduleEntry]) -> None:
        pass

    @abstractmethod
    async def delete_entries(self, entry_ids: Iterable[str]) -> None:
        pass

    # ----- sessions -----

    @abstractmethod
    async def get_session(
        self, session_id: str, for_update: bool = False
    ) -> Optional[StudySession]:
        """
        Load a session.

        With for_update the session is locked until the enclosing
        unit_of_work() ends, so concurrent mutations of it run one at a time.
        """
        pass

    @abstractmethod
    async def get_running_session(self, topic_id: str) -> Optional[StudySession]:
        """The topic's non-terminal (running or paused) session, if any."""
        pass

    @abstractmethod
    async def add_session(self, session: StudySession) -> None:
        """
        Raises:
            SessionAlreadyActive: The topic already has an open session
                (surfaced when the unit of work commits at the latest).
        """
        pass

    @abstractmethod
    async def save_session(self, session: StudySession) -> None:
        pass

    @abstractmethod
    async def list_sessions(
        self, user_id: str, since: Optional[datetime] = None
    ) -> list[StudySession]:
        """All of a user's sessions started at or after `since`."""
        pass

    @abstractmethod
    async def list_finished_sessions(
        self, user_id: str, since: datetime
    ) -> list[StudySession]:
        """A user's FINISHED sessions started at or after `since`."""
        pass

    # ----- cohort & leaderboard -----

    @abstractmethod
    async def list_active_learners(self) -> list[Learner]:
        pass

    @abstractmethod
    async def list_subjects(self) -> list[str]:
        """Distinct subjects of non-archived topics across all users."""
        pass

    @abstractmethod
    async def list_leaderboard(
        self,
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
    ) -> list[LeaderboardRow]:
        """Persisted rows for a key combination, ascending by rank."""
        pass

    @abstractmethod
    async def replace_leaderboard(
        self,
        scope: MetricsScope,
        scope_id: Optional[str],
        window: TimeWindow,
        rows: list[LeaderboardRow],
    ) -> None:
        """Replace every row for (scope, scope_id, window) with `rows`."""
        pass


RepositoryFactory = Callable[[], AbstractAsyncContextManager[PlannerRepository]]
"""Opens a repository bound to its own session (one per concurrent task)."""

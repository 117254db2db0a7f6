"""
Schedule Engine

Generates the ordered sequence of repetition dates for a topic and classifies
each entry's current due status.

Schedules are materialised up front: one ScheduleEntry per frequency offset,
due at `first_studied + offset`. Later mutations (snoozes, session
completion) shift those rows rather than creating them lazily.

Usage:
    from app.services.planner import ScheduleEngine

    engine = ScheduleEngine(repository)

    # Build the schedule for a newly studied topic
    schedule = await engine.create_schedule(topic_id, user_id)

    # Dashboard buckets
    due = await engine.get_due_entries(user_id)
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence, Union
import logging

from app.enums.planner import CompletionState, DueStatus
from app.middleware.error_handling import (
    InvalidStateTransition,
    NotFoundError,
    SessionAlreadyActive,
    ValidationError,
)
from app.models.planner import (
    DueEntriesResponse,
    DueEntryCard,
    ScheduleEntryResponse,
    ScheduleResponse,
    SnoozeInfo,
)

from .domain import (
    RevisionFrequency,
    ScheduleEntry,
    Topic,
    new_id,
    utc_now,
)
from .ports import PlannerRepository

logger = logging.getLogger(__name__)

FrequencyLike = Union[RevisionFrequency, Sequence[int]]


def classify(entry: ScheduleEntry, now: Optional[datetime] = None) -> DueStatus:
    """
    Classify an entry relative to today.

    Check order is the tie-break contract: completion first, then an active
    snooze, then the date comparison against the effective due date.
    """
    today = (now or utc_now()).date()

    if entry.state == CompletionState.COMPLETED:
        return DueStatus.COMPLETED
    if (
        entry.state == CompletionState.SNOOZED
        and entry.snoozed_to is not None
        and entry.snoozed_to > today
    ):
        return DueStatus.SNOOZED

    effective = entry.effective_due
    if effective < today:
        return DueStatus.OVERDUE
    if effective == today:
        return DueStatus.DUE_TODAY
    return DueStatus.UPCOMING


def to_entry_response(
    entry: ScheduleEntry, now: Optional[datetime] = None
) -> ScheduleEntryResponse:
    """Convert a domain entry into its API shape with a fresh status."""
    return ScheduleEntryResponse(
        id=entry.id,
        topic_id=entry.topic_id,
        cycle=entry.cycle,
        due_date=entry.due_date,
        effective_due=entry.effective_due,
        state=entry.state,
        status=classify(entry, now),
        completed_at=entry.completed_at,
        snoozed_to=entry.snoozed_to,
        snooze_days=entry.snooze_days,
        cascade_snoozed=entry.cascade_snoozed,
    )


class ScheduleEngine:
    """
    Service for generating and querying revision schedules.

    Provides:
    - Schedule generation from a topic's revision frequency
    - Due-status classification
    - Schedule restart anchored at today
    - Due/overdue/snoozed dashboard buckets
    """

    def __init__(self, repository: PlannerRepository):
        self.repository = repository

    # ----- pure operations -----

    @staticmethod
    def generate_schedule(
        topic: Topic,
        frequency: FrequencyLike,
        anchor: Optional[date] = None,
    ) -> list[ScheduleEntry]:
        """
        Build one pending entry per frequency offset.

        Args:
            topic: Topic being scheduled
            frequency: RevisionFrequency or a raw list of day offsets
            anchor: Date the offsets count from (defaults to first_studied)

        Returns:
            Entries ordered by cycle, due at anchor + offset

        Raises:
            ValidationError: If offsets are not strictly increasing, or the
                topic has no first-studied date and no anchor was given
        """
        if not isinstance(frequency, RevisionFrequency):
            frequency = RevisionFrequency(tuple(frequency))

        start = anchor or topic.first_studied
        if start is None:
            raise ValidationError(
                "Topic has no first-studied date to anchor its schedule",
                details={"topic_id": topic.id},
            )

        return [
            ScheduleEntry(
                id=new_id(),
                topic_id=topic.id,
                user_id=topic.user_id,
                cycle=offset,
                due_date=start + timedelta(days=offset),
            )
            for offset in frequency.offsets
        ]

    classify = staticmethod(classify)

    # ----- persisted operations -----

    async def create_schedule(
        self,
        topic_id: str,
        user_id: str,
        offsets: Optional[list[int]] = None,
        derive_from_topic: bool = False,
        now: Optional[datetime] = None,
    ) -> ScheduleResponse:
        """
        Generate and persist a topic's first schedule.

        Frequency precedence: explicit offsets, then the profile derived from
        importance + difficulty when requested, then the stored frequency.

        Raises:
            NotFoundError: Unknown topic
            InvalidStateTransition: The topic already has a schedule
        """
        topic = await self._get_owned_topic(topic_id, user_id)

        if offsets is not None:
            frequency = RevisionFrequency(tuple(offsets))
        elif derive_from_topic:
            frequency = topic.derived_frequency()
        else:
            frequency = await self.repository.get_frequency(topic.id)

        existing = await self.repository.list_entries_for_topic(topic.id)
        if existing:
            raise InvalidStateTransition(
                "Topic already has a schedule; regenerate it instead",
                details={"topic_id": topic.id},
            )

        entries = self.generate_schedule(topic, frequency)
        async with self.repository.unit_of_work():
            await self.repository.add_entries(entries)

        logger.info(
            f"Generated schedule for topic {topic.id}: "
            f"{len(entries)} cycles {list(frequency.offsets)}"
        )
        return ScheduleResponse(
            topic_id=topic.id,
            entries=[to_entry_response(e, now) for e in entries],
        )

    async def get_schedule(
        self, topic_id: str, user_id: str, now: Optional[datetime] = None
    ) -> ScheduleResponse:
        """Return a topic's schedule ordered by cycle."""
        topic = await self._get_owned_topic(topic_id, user_id)
        entries = await self.repository.list_entries_for_topic(topic.id)
        return ScheduleResponse(
            topic_id=topic.id,
            entries=[to_entry_response(e, now) for e in entries],
        )

    async def regenerate_from_today(
        self, topic_id: str, user_id: str, now: Optional[datetime] = None
    ) -> ScheduleResponse:
        """
        Restart a topic's schedule anchored at today.

        Every uncompleted entry is discarded (including its snooze history)
        and each cycle beyond the last completed one is recreated at
        today + offset. Completed entries are kept as history.

        Raises:
            NotFoundError: Unknown topic
            SessionAlreadyActive: A session on the topic is still open, since
                its linked entry would be discarded
        """
        now = now or utc_now()
        topic = await self._get_owned_topic(topic_id, user_id)

        running = await self.repository.get_running_session(topic.id)
        if running is not None:
            raise SessionAlreadyActive(
                "Finish or abort the open session before regenerating",
                details={"topic_id": topic.id, "session_id": running.id},
            )

        frequency = await self.repository.get_frequency(topic.id)
        entries = await self.repository.list_entries_for_topic(topic.id)

        completed = [e for e in entries if e.is_completed]
        discarded = [e.id for e in entries if not e.is_completed]
        last_done = max((e.cycle for e in completed), default=0)
        remaining = [o for o in frequency.offsets if o > last_done]

        fresh: list[ScheduleEntry] = []
        if remaining:
            fresh = self.generate_schedule(
                topic, RevisionFrequency(tuple(remaining)), anchor=now.date()
            )

        async with self.repository.unit_of_work():
            if discarded:
                await self.repository.delete_entries(discarded)
            if fresh:
                await self.repository.add_entries(fresh)

        logger.info(
            f"Regenerated schedule for topic {topic.id} from {now.date()}: "
            f"discarded={len(discarded)}, created={len(fresh)}"
        )
        return ScheduleResponse(
            topic_id=topic.id,
            entries=[to_entry_response(e, now) for e in [*completed, *fresh]],
        )

    async def get_due_entries(
        self, user_id: str, now: Optional[datetime] = None
    ) -> DueEntriesResponse:
        """
        Group a user's entries into due-today, overdue and snoozed cards.

        Upcoming and completed entries are omitted. Each list is ordered by
        effective due date.
        """
        now = now or utc_now()
        today = now.date()

        topics = {t.id: t for t in await self.repository.list_active_topics(user_id)}
        entries = await self.repository.list_entries_for_user(user_id)

        by_topic: dict[str, list[ScheduleEntry]] = defaultdict(list)
        for entry in entries:
            if entry.topic_id in topics:
                by_topic[entry.topic_id].append(entry)

        response = DueEntriesResponse()
        buckets = {
            DueStatus.DUE_TODAY: response.due_today,
            DueStatus.OVERDUE: response.overdue,
            DueStatus.SNOOZED: response.snoozed,
        }

        for topic_id, topic_entries in by_topic.items():
            topic_entries.sort(key=lambda e: (e.cycle, e.due_date))
            for entry in topic_entries:
                status = classify(entry, now)
                if status not in buckets:
                    continue
                buckets[status].append(
                    self._build_card(topics[topic_id], entry, topic_entries, status, today)
                )

        for cards in buckets.values():
            cards.sort(key=lambda c: (c.effective_due, c.title))
        return response

    # ----- helpers -----

    async def _get_owned_topic(self, topic_id: str, user_id: str) -> Topic:
        topic = await self.repository.get_topic(topic_id)
        if topic is None or topic.user_id != user_id:
            raise NotFoundError("Topic not found", details={"topic_id": topic_id})
        return topic

    @staticmethod
    def _build_card(
        topic: Topic,
        entry: ScheduleEntry,
        topic_entries: Iterable[ScheduleEntry],
        status: DueStatus,
        today: date,
    ) -> DueEntryCard:
        topic_entries = list(topic_entries)
        effective = entry.effective_due

        days_overdue = None
        if status == DueStatus.OVERDUE:
            days_overdue = (today - effective).days

        snooze = None
        if status == DueStatus.SNOOZED:
            snooze = SnoozeInfo(
                days=entry.snooze_days,
                until=effective,
                cascading=entry.cascade_snoozed,
            )

        return DueEntryCard(
            schedule_id=entry.id,
            topic_id=topic.id,
            subject=topic.subject,
            title=topic.title,
            cycle=entry.cycle,
            status=status,
            due_date=entry.due_date,
            effective_due=effective,
            estimated_minutes=topic.estimated_minutes,
            days_overdue=days_overdue,
            progress=[e.is_completed for e in topic_entries],
            next_dates=[
                e.effective_due
                for e in topic_entries
                if not e.is_completed and e.cycle > entry.cycle
            ],
            snooze=snooze,
        )

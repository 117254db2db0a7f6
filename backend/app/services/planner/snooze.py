"""
Snooze Coordinator

Defers one schedule entry, or every due/overdue entry of a user, by a number
of days. With cascade enabled the topic's later pending repetitions are
shifted by the same delta so their relative spacing is preserved.

Every request is applied as one unit of work: all affected entries are
validated before anything is written, and a failure leaves the schedule
untouched.
"""

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Optional
import logging

from app.config import settings
from app.enums.planner import CompletionState, DueStatus
from app.middleware.error_handling import (
    InvalidStateTransition,
    NotFoundError,
    ValidationError,
)
from app.models.planner import SnoozeResponse

from .domain import ScheduleEntry, utc_now
from .ports import PlannerRepository
from .schedule_engine import classify, to_entry_response

logger = logging.getLogger(__name__)

SNOOZE_ALL = "all"


def validate_days(days: int) -> int:
    """
    Reject snooze lengths outside the configured bounds.

    Out-of-range values are never clamped.
    """
    if isinstance(days, bool) or not isinstance(days, int):
        raise ValidationError("Snooze days must be an integer", details={"days": days})
    if not settings.SNOOZE_MIN_DAYS <= days <= settings.SNOOZE_MAX_DAYS:
        raise ValidationError(
            f"Snooze days must be between {settings.SNOOZE_MIN_DAYS} "
            f"and {settings.SNOOZE_MAX_DAYS}",
            details={"days": days},
        )
    return days


def apply_snooze(
    topic_entries: list[ScheduleEntry],
    targets: list[ScheduleEntry],
    days: int,
    cascade: bool,
    today: date,
) -> list[ScheduleEntry]:
    """
    Snooze `targets` and optionally cascade over one topic's entries.

    The cascade pivot is the earliest original due date among the targets;
    every other uncompleted entry due on or after it moves by exactly `days`.
    Each entry changes at most once.

    Returns:
        Changed entries, snoozed targets first
    """
    delta = timedelta(days=days)
    target_ids = {t.id for t in targets}
    pivot = min(t.due_date for t in targets)

    for target in targets:
        target.snoozed_to = max(today, target.effective_due) + delta
        target.state = CompletionState.SNOOZED
        target.snooze_days = days
        target.cascade_snoozed = cascade

    shifted: list[ScheduleEntry] = []
    if cascade:
        for entry in topic_entries:
            if entry.id in target_ids or entry.is_completed:
                continue
            if entry.due_date < pivot:
                continue
            entry.due_date += delta
            if entry.snoozed_to is not None:
                entry.snoozed_to += delta
            shifted.append(entry)

    return [*targets, *shifted]


class SnoozeCoordinator:
    """
    Applies single or bulk snoozes through the planner repository.
    """

    def __init__(self, repository: PlannerRepository):
        self.repository = repository

    async def snooze(
        self,
        user_id: str,
        target: str,
        days: int,
        cascade: bool = False,
        now: Optional[datetime] = None,
    ) -> SnoozeResponse:
        """Dispatch to snooze_all for target "all", else snooze_one."""
        if target == SNOOZE_ALL:
            return await self.snooze_all(user_id, days, cascade, now=now)
        return await self.snooze_one(user_id, target, days, cascade, now=now)

    async def snooze_one(
        self,
        user_id: str,
        entry_id: str,
        days: int,
        cascade: bool = False,
        now: Optional[datetime] = None,
    ) -> SnoozeResponse:
        """
        Snooze one entry to max(today, effective due) + days.

        Raises:
            ValidationError: days out of bounds
            NotFoundError: Unknown entry
            InvalidStateTransition: The entry is already completed
        """
        validate_days(days)
        now = now or utc_now()

        found = await self.repository.get_entry(entry_id)
        if found is None or found.user_id != user_id:
            raise NotFoundError("Schedule entry not found", details={"entry_id": entry_id})
        self._check_snoozable(found)

        topic_entries = await self.repository.list_entries_for_topic(found.topic_id)
        entry = next((e for e in topic_entries if e.id == found.id), found)

        changed = apply_snooze(topic_entries, [entry], days, cascade, now.date())
        async with self.repository.unit_of_work():
            await self.repository.save_entries(changed)

        logger.info(
            f"Snoozed entry {entry.id} by {days} days "
            f"(cascade={cascade}, affected={len(changed)})"
        )
        return self._to_response(changed, now)

    async def snooze_all(
        self,
        user_id: str,
        days: int,
        cascade: bool = False,
        now: Optional[datetime] = None,
    ) -> SnoozeResponse:
        """
        Snooze every due-today and overdue entry of the user atomically.

        Raises:
            ValidationError: days out of bounds
            InvalidStateTransition: An affected entry cannot be snoozed;
                `details.entry_id` names it and nothing is written
        """
        validate_days(days)
        now = now or utc_now()

        entries = await self.repository.list_entries_for_user(user_id)
        by_topic: dict[str, list[ScheduleEntry]] = defaultdict(list)
        for entry in entries:
            by_topic[entry.topic_id].append(entry)

        plan: list[tuple[list[ScheduleEntry], list[ScheduleEntry]]] = []
        for topic_entries in by_topic.values():
            targets = [
                e
                for e in topic_entries
                if classify(e, now) in (DueStatus.DUE_TODAY, DueStatus.OVERDUE)
            ]
            if targets:
                plan.append((topic_entries, targets))

        for _, targets in plan:
            for target in targets:
                self._check_snoozable(target)

        changed: list[ScheduleEntry] = []
        for topic_entries, targets in plan:
            changed.extend(
                apply_snooze(topic_entries, targets, days, cascade, now.date())
            )

        if changed:
            async with self.repository.unit_of_work():
                await self.repository.save_entries(changed)

        logger.info(
            f"Snoozed all due entries for user {user_id} by {days} days "
            f"(cascade={cascade}, topics={len(plan)}, affected={len(changed)})"
        )
        return self._to_response(changed, now)

    @staticmethod
    def _check_snoozable(entry: ScheduleEntry) -> None:
        if entry.is_completed:
            raise InvalidStateTransition(
                "Cannot snooze a completed schedule entry",
                details={"entry_id": entry.id},
            )

    @staticmethod
    def _to_response(changed: list[ScheduleEntry], now: datetime) -> SnoozeResponse:
        return SnoozeResponse(
            new_dates=[e.effective_due for e in changed],
            entries=[to_entry_response(e, now) for e in changed],
        )

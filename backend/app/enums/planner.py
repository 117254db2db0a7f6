"""
Revision Planner Enums

Defines enums for the revision schedule state machine, due-status
classification, study sessions and topic metadata.
"""

from enum import Enum


class CompletionState(str, Enum):
    """
    Completion state of a single schedule entry.

    Exactly one state holds at any time:
    - PENDING → COMPLETED (session finished)
    - PENDING → SNOOZED (deferred)
    - SNOOZED → SNOOZED (deferred again) or COMPLETED
    COMPLETED is terminal.
    """

    PENDING = "pending"
    COMPLETED = "completed"
    SNOOZED = "snoozed"


class DueStatus(str, Enum):
    """
    User-facing classification of a schedule entry.

    Checked in this order: COMPLETED, SNOOZED, OVERDUE, DUE_TODAY, UPCOMING.
    """

    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    SNOOZED = "snoozed"
    COMPLETED = "completed"
    UPCOMING = "upcoming"


class RecallRating(str, Enum):
    """
    Self-assessed recall quality submitted when a session finishes.
    """

    AGAIN = "Again"  # Could not recall
    HARD = "Hard"  # Recalled with significant effort
    GOOD = "Good"  # Recalled with reasonable effort
    EASY = "Easy"  # Recalled effortlessly


class SessionStatus(str, Enum):
    """
    Lifecycle of a study session.

    RUNNING ⇄ PAUSED, then FINISHED (rating submitted) or ABORTED.
    FINISHED and ABORTED are terminal.
    """

    RUNNING = "running"
    PAUSED = "paused"
    FINISHED = "finished"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.FINISHED, SessionStatus.ABORTED)


class MasteryLevel(str, Enum):
    """Learner's self-reported mastery of a topic."""

    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    MASTERED = "Mastered"


class FrequencyProfile(str, Enum):
    """
    Named revision frequency profiles.

    Selected from importance + difficulty:
    - sum <= 4: LIGHT (3 repetitions)
    - sum <= 7: STANDARD (4 repetitions)
    - otherwise: INTENSIVE (5 repetitions)
    """

    LIGHT = "light"
    STANDARD = "standard"
    INTENSIVE = "intensive"

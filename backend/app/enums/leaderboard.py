"""
Leaderboard Enums

Scopes and time windows for metrics aggregation and ranking.
"""

from enum import Enum


class MetricsScope(str, Enum):
    """
    Which topics a metrics computation covers.

    - GLOBAL: every active topic of the user
    - SUBJECT: active topics whose subject equals the scope id
    - TOPIC: the single topic whose id equals the scope id
    """

    GLOBAL = "global"
    SUBJECT = "subject"
    TOPIC = "topic"

    @property
    def requires_scope_id(self) -> bool:
        return self is not MetricsScope.GLOBAL


class TimeWindow(str, Enum):
    """
    Look-back windows for metrics.

    Window lengths in days are configured in settings (WINDOW_DAYS_*).
    """

    WEEK = "week"
    MONTH = "month"
    ALL = "all"

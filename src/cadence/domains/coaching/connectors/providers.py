"""Concrete WeeklyActivityProvider implementations."""

from __future__ import annotations

import threading
from datetime import date

from cadence.domains.coaching.domain_logic.coaching_models import WeeklyActivityAggregate


class StaticActivityProvider:
    """Serves pre-built aggregates from memory. Used in tests and demos."""

    def __init__(
        self,
        aggregates: dict[tuple[str, date], WeeklyActivityAggregate] | None = None,
    ) -> None:
        self._aggregates: dict[tuple[str, date], WeeklyActivityAggregate] = dict(aggregates or {})
        self._lock = threading.Lock()

    def add(self, user_id: str, week_start: date, aggregate: WeeklyActivityAggregate) -> None:
        with self._lock:
            self._aggregates[(user_id, week_start)] = aggregate

    def get_weekly_aggregate(
        self, user_id: str, week_start: date, week_end: date
    ) -> WeeklyActivityAggregate | None:
        with self._lock:
            return self._aggregates.get((user_id, week_start))

    @property
    def data_source(self) -> str:
        return "static"

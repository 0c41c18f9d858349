"""Activity connectors: where a closed week's raw facts come from.

Aggregating sessions, meals and weigh-ins into a ``WeeklyActivityAggregate``
happens outside this package; the coordinator only asks a provider for the
finished aggregate.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol, runtime_checkable

from cadence.domains.coaching.domain_logic.coaching_models import WeeklyActivityAggregate


@runtime_checkable
class WeeklyActivityProvider(Protocol):
    """Abstract source of weekly aggregates."""

    def get_weekly_aggregate(
        self, user_id: str, week_start: date, week_end: date
    ) -> WeeklyActivityAggregate | None:
        """The aggregate for one user and week, or None if the week has no data."""
        ...

    @property
    def data_source(self) -> str:
        """Label for the active data source, e.g. 'static'."""
        ...

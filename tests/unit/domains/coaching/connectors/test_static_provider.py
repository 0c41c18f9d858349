"""Tests for the static weekly activity provider."""

from __future__ import annotations

from datetime import date

from cadence.domains.coaching.connectors import WeeklyActivityProvider
from cadence.domains.coaching.connectors.providers import StaticActivityProvider
from cadence.domains.coaching.domain_logic.coaching_models import WeeklyActivityAggregate

_WEEK = date(2026, 3, 7)
_AGGREGATE = WeeklyActivityAggregate(
    workouts_planned=4, workouts_completed=3, nutrition_days_hit_target=5
)


class TestStaticActivityProvider:
    def test_satisfies_protocol(self):
        assert isinstance(StaticActivityProvider(), WeeklyActivityProvider)

    def test_data_source(self):
        assert StaticActivityProvider().data_source == "static"

    def test_returns_added_aggregate(self):
        provider = StaticActivityProvider()
        provider.add("user-1", _WEEK, _AGGREGATE)
        assert provider.get_weekly_aggregate("user-1", _WEEK, date(2026, 3, 13)) is _AGGREGATE

    def test_unknown_week_returns_none(self):
        provider = StaticActivityProvider()
        provider.add("user-1", _WEEK, _AGGREGATE)
        assert provider.get_weekly_aggregate("user-2", _WEEK, date(2026, 3, 13)) is None
        assert provider.get_weekly_aggregate("user-1", date(2026, 3, 14), date(2026, 3, 20)) is None

    def test_seeded_from_mapping(self):
        provider = StaticActivityProvider({("user-1", _WEEK): _AGGREGATE})
        assert provider.get_weekly_aggregate("user-1", _WEEK, date(2026, 3, 13)) is _AGGREGATE

"""
Unit tests for Scope parsing and ScopeKeyResolver.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import pytest

from runboard.core.config import ConfigManager
from runboard.core.exceptions import ConfigurationError
from runboard.modules.leaderboard.keys import ScopeKeyResolver
from runboard.modules.leaderboard.types import AggregateKey, Scope
from runboard.modules.shared.exceptions import UnknownScopeError, ValidationError


def _zone_available(name: str) -> bool:
    try:
        ZoneInfo(name)
    except ZoneInfoNotFoundError:
        return False
    return True


class TestScopeParse:
    """Scope names are case-insensitive with a few aliases."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("daily", Scope.DAILY),
            ("DAILY", Scope.DAILY),
            (" Weekly ", Scope.WEEKLY),
            ("all-time", Scope.ALL_TIME),
            ("all_time", Scope.ALL_TIME),
            ("All", Scope.ALL_TIME),
            (Scope.WEEKLY, Scope.WEEKLY),
        ],
    )
    def test_known_names(self, name, expected):
        assert Scope.parse(name) is expected

    @pytest.mark.parametrize("name", ["monthly", "", "day", None, 3])
    def test_unknown_names(self, name):
        with pytest.raises(UnknownScopeError) as exc_info:
            Scope.parse(name)
        assert exc_info.value.error_code == "UNKNOWN_SCOPE"
        assert isinstance(exc_info.value, ValidationError)


class TestResolve:
    """Key layout and retention per scope."""

    def test_daily(self, key_resolver):
        aggregate = key_resolver.resolve("daily", date(2025, 9, 9))
        assert aggregate == AggregateKey(
            Scope.DAILY, "lb:distance:daily:2025-09-09", 35 * 86_400
        )
        assert aggregate.recency_key == "lb:distance:daily:2025-09-09:recency"

    def test_weekly_uses_iso_week(self, key_resolver):
        aggregate = key_resolver.resolve(Scope.WEEKLY, date(2025, 9, 9))
        assert aggregate.key == "lb:distance:weekly:2025-W37"
        assert aggregate.retention_seconds == 26 * 7 * 86_400

    @pytest.mark.parametrize(
        ("day", "expected"),
        [
            (date(2024, 12, 30), "lb:distance:weekly:2025-W01"),
            (date(2021, 1, 3), "lb:distance:weekly:2020-W53"),
            (date(2025, 1, 6), "lb:distance:weekly:2025-W02"),
        ],
    )
    def test_weekly_year_boundaries(self, key_resolver, day, expected):
        assert key_resolver.resolve("weekly", day).key == expected

    def test_all_time_has_no_retention(self, key_resolver):
        aggregate = key_resolver.resolve("all", date(2025, 9, 9))
        assert aggregate.key == "lb:distance:all-time"
        assert aggregate.retention_seconds is None

    def test_defaults_to_today(self, key_resolver):
        assert key_resolver.resolve("daily").key == "lb:distance:daily:2025-09-09"

    def test_unknown_scope(self, key_resolver):
        with pytest.raises(UnknownScopeError):
            key_resolver.resolve("hourly", date(2025, 9, 9))

    def test_prefix_from_config(self):
        ConfigManager.set_override("leaderboard.key_prefix", "test:lb:")
        resolver = ScopeKeyResolver()
        assert resolver.resolve("all-time").key == "test:lb:all-time"
        assert resolver.sequence_key == "test:lb:seq"

    def test_retention_from_config(self):
        ConfigManager.set_override("leaderboard.daily_retention_days", 2)
        resolver = ScopeKeyResolver()
        assert resolver.resolve("daily", date(2025, 9, 9)).retention_seconds == 2 * 86_400


class TestToday:
    """Calendar date in the configured time zone."""

    def test_naive_clock_is_utc(self):
        resolver = ScopeKeyResolver(clock=lambda: datetime(2025, 9, 9, 23, 59))
        assert resolver.today() == date(2025, 9, 9)

    @pytest.mark.skipif(not _zone_available("Asia/Tokyo"), reason="tz database unavailable")
    def test_timezone_shifts_the_day(self):
        ConfigManager.set_override("leaderboard.timezone", "Asia/Tokyo")
        resolver = ScopeKeyResolver(
            clock=lambda: datetime(2025, 9, 9, 20, 0, tzinfo=timezone.utc)
        )
        assert resolver.today() == date(2025, 9, 10)
        assert resolver.resolve("daily").key == "lb:distance:daily:2025-09-10"

    def test_unknown_timezone(self):
        ConfigManager.set_override("leaderboard.timezone", "Mars/Olympus_Mons")
        with pytest.raises(ConfigurationError):
            ScopeKeyResolver()


class TestDedupKey:
    def test_dedup_key(self, key_resolver):
        assert key_resolver.dedup_key("ev1") == "lb:dedup:ev1"

    @pytest.mark.parametrize("event_id", ["", "  ", None])
    def test_blank_event_id(self, key_resolver, event_id):
        with pytest.raises(ValidationError):
            key_resolver.dedup_key(event_id)

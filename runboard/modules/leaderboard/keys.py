"""
Scope / window key resolution.

Maps (scope, reference date) to the store key of a ranked aggregate and its
retention window. Pure apart from `today()`, which reads the injected clock.

Key layout (default prefix "lb:distance:"):

    all-time  lb:distance:all-time             no retention
    weekly    lb:distance:weekly:2025-W37      26 weeks (ISO week, Monday start)
    daily     lb:distance:daily:2025-09-09     35 days

Retention is only assigned by the write script, once, when the aggregate has
no TTL yet. Concurrent first writers set the identical duration.

Configuration Keys
------------------
- leaderboard.key_prefix              : str (default "lb:distance:")
- leaderboard.dedup_prefix            : str (default "lb:dedup:")
- leaderboard.daily_retention_days    : int (default 35)
- leaderboard.weekly_retention_weeks  : int (default 26)
- leaderboard.timezone                : str (default "UTC")
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from runboard.core.config import ConfigManager
from runboard.core.exceptions import ConfigurationError
from runboard.modules.leaderboard.types import AggregateKey, Scope
from runboard.modules.shared.validators import require_text

SECONDS_PER_DAY = 86_400


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScopeKeyResolver:
    """
    Resolve scopes to aggregate keys.

    Args:
        config_manager: Tunable configuration source
        clock: Returns the current instant; naive datetimes are read as UTC
    """

    def __init__(
        self,
        config_manager: type[ConfigManager] = ConfigManager,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.key_prefix = config_manager.get_str("leaderboard.key_prefix", "lb:distance:")
        self.dedup_prefix = config_manager.get_str("leaderboard.dedup_prefix", "lb:dedup:")
        self.daily_retention_seconds = (
            config_manager.get_int("leaderboard.daily_retention_days", 35, min_value=1)
            * SECONDS_PER_DAY
        )
        self.weekly_retention_seconds = (
            config_manager.get_int("leaderboard.weekly_retention_weeks", 26, min_value=1)
            * 7
            * SECONDS_PER_DAY
        )

        tz_name = config_manager.get_str("leaderboard.timezone", "UTC")
        try:
            self.tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(
                "leaderboard.timezone", f"unknown time zone {tz_name!r}"
            ) from exc

        self._clock = clock

    def today(self) -> date:
        """Current calendar date in the configured time zone."""
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now.astimezone(self.tz).date()

    def resolve(self, scope: Union[str, Scope], on: Optional[date] = None) -> AggregateKey:
        """
        Aggregate key for `scope` on day `on` (default: today).

        Raises
        ------
        UnknownScopeError
            If `scope` is not a known scope name.
        """
        scope = Scope.parse(scope)
        day = on or self.today()

        if scope is Scope.DAILY:
            return AggregateKey(
                scope,
                f"{self.key_prefix}daily:{day.isoformat()}",
                self.daily_retention_seconds,
            )
        if scope is Scope.WEEKLY:
            iso_year, iso_week, _ = day.isocalendar()
            return AggregateKey(
                scope,
                f"{self.key_prefix}weekly:{iso_year}-W{iso_week:02d}",
                self.weekly_retention_seconds,
            )
        return AggregateKey(scope, f"{self.key_prefix}all-time", None)

    def dedup_key(self, event_id: str) -> str:
        """Dedup record key for an event; blank ids are rejected."""
        return f"{self.dedup_prefix}{require_text(event_id, 'event_id')}"

    @property
    def sequence_key(self) -> str:
        """Store-wide counter used to stamp recency."""
        return f"{self.key_prefix}seq"

"""
LeaderboardService: the engine's public surface for distance leaderboards.

Purpose
-------
Validate caller input, resolve scopes to aggregates, and delegate to the
RankedAggregateStore. Results come back as typed dataclasses with a
`to_dict()` shaped for the request surface.

Operations
----------
- submit(actor_id, scopes, delta, event_id)  apply an event once to every scope
- top(scope, limit)                           best N actors
- rank_of(scope, actor_id)                    one actor's rank and total
- around(scope, actor_id, radius)             neighbourhood of one actor
- member_count(scope)                         distinct actors in a scope
- clear(scope)                                drop a scope's aggregate (admin / test)
- seed(scope, member_count)                   generate test actors

Error Handling
--------------
- Caller mistakes raise ValidationError / UnknownScopeError before any
  round trip.
- Store failures propagate unchanged (StoreUnavailableError,
  AmbiguousOutcomeError). Nothing is retried here.
- Absent actors are answers, not errors: rank -1, score 0.0, empty lists.

Configuration Keys
------------------
- leaderboard.dedup_ttl_seconds      : int (default 604800)
- leaderboard.default_top_limit      : int (default 10)
- leaderboard.max_top_limit          : int (default 100)
- leaderboard.default_around_radius  : int (default 3)
- leaderboard.max_around_radius      : int (default 20)
- leaderboard.max_seed_members       : int (default 100)
"""

from __future__ import annotations

import random
import time
import uuid
from datetime import date
from logging import Logger
from typing import Iterable, List, Optional, Union

from runboard.core.config import ConfigManager
from runboard.core.exceptions import (
    AmbiguousOutcomeError,
    RunboardInfrastructureException,
)
from runboard.core.logging.logger import LogContext, get_logger
from runboard.modules.leaderboard.keys import ScopeKeyResolver
from runboard.modules.leaderboard.store import RankedAggregateStore
from runboard.modules.leaderboard.types import (
    ActorRank,
    ClearResult,
    LeaderboardEntry,
    RankedEntry,
    Scope,
    ScopeStanding,
    SeedResult,
    SubmitResult,
)
from runboard.modules.shared.base_service import BaseService
from runboard.modules.shared.exceptions import ValidationError
from runboard.modules.shared.validators import (
    require_text,
    validate_positive_number,
    validate_range,
)

ScopeLike = Union[str, Scope]

# Seeded distances, in km with one decimal
SEED_MIN_DISTANCE = 0.1
SEED_MAX_DISTANCE = 50.0


class LeaderboardService(BaseService):
    """
    Leaderboard operations over daily, weekly and all-time aggregates.

    Args:
        store: Ranked aggregate store (script-backed in production)
        keys: Scope key resolver (owns the clock and time zone)
        config_manager: Tunable configuration source
        logger: Optional logger override
        rng: Random source for `seed`
    """

    def __init__(
        self,
        store: Optional[RankedAggregateStore] = None,
        keys: Optional[ScopeKeyResolver] = None,
        config_manager: type[ConfigManager] = ConfigManager,
        logger: Optional[Logger] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(config_manager, logger or get_logger(__name__))
        self.store = store or RankedAggregateStore(config_manager=config_manager)
        self.keys = keys or ScopeKeyResolver(config_manager=config_manager)
        self._rng = rng or random.Random()

        self.dedup_ttl_seconds = self.get_config_int(
            "leaderboard.dedup_ttl_seconds", 7 * 86_400, min_value=1
        )
        self.default_top_limit = self.get_config_int("leaderboard.default_top_limit", 10, min_value=1)
        self.max_top_limit = self.get_config_int("leaderboard.max_top_limit", 100, min_value=1)
        self.default_around_radius = self.get_config_int("leaderboard.default_around_radius", 3)
        self.max_around_radius = self.get_config_int("leaderboard.max_around_radius", 20)
        self.max_seed_members = self.get_config_int("leaderboard.max_seed_members", 100, min_value=1)

    # ═════════════════════════════════════════════════════════════════════════
    # WRITES
    # ═════════════════════════════════════════════════════════════════════════

    async def submit(
        self,
        actor_id: str,
        scopes: Union[ScopeLike, Iterable[ScopeLike]],
        delta: float,
        event_id: str,
        on: Optional[date] = None,
    ) -> SubmitResult:
        """
        Apply `delta` to `actor_id` in each scope, once per `event_id`.

        Re-delivering the same event id (with any delta or scopes) changes
        nothing and returns the actor's current standings with
        `applied=False`. Duplicate scope names collapse.

        Raises
        ------
        ValidationError
            Blank actor / event id, empty scope list, or a delta that is not
            a positive finite number.
        UnknownScopeError
            If any scope name is unknown.
        AmbiguousOutcomeError
            If the store round trip timed out; re-deliver with the same id.
        """
        actor_id = require_text(actor_id, "actor_id")
        event_id = require_text(event_id, "event_id")
        delta = validate_positive_number(delta, "delta")
        parsed = self._parse_scopes(scopes)

        day = on or self.keys.today()
        aggregates = [self.keys.resolve(scope, day) for scope in parsed]
        dedup_key = self.keys.dedup_key(event_id)

        async with LogContext(
            actor_id=actor_id, event_id=event_id, component="leaderboard", operation="submit"
        ):
            outcome = await self.store.increment_once_many(
                aggregates, dedup_key, actor_id, delta, self.dedup_ttl_seconds
            )

            standings = [
                ScopeStanding(
                    scope=aggregate.scope,
                    key=aggregate.key,
                    total_score=standing.score,
                    rank=standing.rank,
                    added=delta if outcome.applied else 0.0,
                )
                for aggregate, standing in zip(aggregates, outcome.standings)
            ]

            if outcome.applied:
                self.log.info(
                    "Distance applied",
                    extra={"delta": delta, "scopes": [s.value for s in parsed]},
                )
            else:
                self.log.info(
                    "Duplicate event ignored",
                    extra={"scopes": [s.value for s in parsed]},
                )

        return SubmitResult(
            actor_id=actor_id,
            event_id=event_id,
            applied=outcome.applied,
            standings=standings,
        )

    async def clear(self, scope: ScopeLike, on: Optional[date] = None) -> ClearResult:
        """Remove the scope's aggregate for `on` (default today)."""
        aggregate = self.keys.resolve(scope, on)
        cleared = await self.store.clear(aggregate.key)
        self.log_operation("clear", scope=aggregate.scope.value, aggregate_key=aggregate.key, cleared=cleared)
        return ClearResult(scope=aggregate.scope, key=aggregate.key, cleared=cleared)

    async def seed(
        self,
        scope: ScopeLike,
        member_count: int = 20,
        on: Optional[date] = None,
    ) -> SeedResult:
        """
        Create `user001..userNNN` with random distances through the normal
        once-only path. Each member gets a fresh event id, so re-seeding adds
        to existing totals. Per-member store failures are logged and counted;
        a timed-out write may have committed and is counted as `unknown`.
        """
        validate_range(member_count, "member_count", 1, self.max_seed_members)
        day = on or self.keys.today()
        aggregate = self.keys.resolve(scope, day)
        batch = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"

        members: List[str] = []
        failed = 0
        unknown = 0
        for i in range(1, member_count + 1):
            actor_id = f"user{i:03d}"
            distance = round(self._rng.uniform(SEED_MIN_DISTANCE, SEED_MAX_DISTANCE), 1)
            try:
                await self.submit(actor_id, [aggregate.scope], distance, f"seed-{batch}-{i}", on=day)
            except AmbiguousOutcomeError as exc:
                unknown += 1
                self.log_error("seed", exc, actor_id=actor_id, aggregate_key=aggregate.key)
                continue
            except RunboardInfrastructureException as exc:
                failed += 1
                self.log_error("seed", exc, actor_id=actor_id, aggregate_key=aggregate.key)
                continue
            members.append(actor_id)

        total_members = await self.store.member_count(aggregate.key)
        self.log_operation(
            "seed",
            scope=aggregate.scope.value,
            aggregate_key=aggregate.key,
            members_created=len(members),
            failed=failed,
            unknown=unknown,
            total_members=total_members,
        )
        return SeedResult(
            scope=aggregate.scope,
            key=aggregate.key,
            requested=member_count,
            created=len(members),
            failed=failed,
            unknown=unknown,
            total_members=total_members,
            members=members,
        )

    # ═════════════════════════════════════════════════════════════════════════
    # READS
    # ═════════════════════════════════════════════════════════════════════════

    async def top(
        self,
        scope: ScopeLike,
        limit: Optional[int] = None,
        on: Optional[date] = None,
    ) -> List[LeaderboardEntry]:
        """Best `limit` actors (1..max_top_limit, default 10)."""
        limit = self.default_top_limit if limit is None else limit
        validate_range(limit, "limit", 1, self.max_top_limit)
        aggregate = self.keys.resolve(scope, on)
        return self._to_entries(await self.store.top_n(aggregate.key, limit))

    async def rank_of(
        self,
        scope: ScopeLike,
        actor_id: str,
        on: Optional[date] = None,
    ) -> ActorRank:
        """0-based rank and total of `actor_id`; rank -1 and 0.0 when absent."""
        actor_id = require_text(actor_id, "actor_id")
        aggregate = self.keys.resolve(scope, on)
        standing = await self.store.rank_and_score(aggregate.key, actor_id)
        return ActorRank(
            actor_id=actor_id,
            scope=aggregate.scope,
            rank=standing.rank,
            score=standing.score,
        )

    async def around(
        self,
        scope: ScopeLike,
        actor_id: str,
        radius: Optional[int] = None,
        on: Optional[date] = None,
    ) -> List[LeaderboardEntry]:
        """Up to 2*radius+1 actors centred on `actor_id`; [] when absent."""
        actor_id = require_text(actor_id, "actor_id")
        radius = self.default_around_radius if radius is None else radius
        validate_range(radius, "radius", 0, self.max_around_radius)
        aggregate = self.keys.resolve(scope, on)
        return self._to_entries(await self.store.around(aggregate.key, actor_id, radius))

    async def member_count(self, scope: ScopeLike, on: Optional[date] = None) -> int:
        aggregate = self.keys.resolve(scope, on)
        return await self.store.member_count(aggregate.key)

    # ═════════════════════════════════════════════════════════════════════════
    # HELPERS
    # ═════════════════════════════════════════════════════════════════════════

    @staticmethod
    def _parse_scopes(scopes: Union[ScopeLike, Iterable[ScopeLike], None]) -> List[Scope]:
        if scopes is None:
            raise ValidationError("scopes", "at least one scope is required")
        if isinstance(scopes, (str, Scope)):
            scopes = [scopes]

        parsed: List[Scope] = []
        for name in scopes:
            scope = Scope.parse(name)
            if scope not in parsed:
                parsed.append(scope)

        if not parsed:
            raise ValidationError("scopes", "at least one scope is required")
        return parsed

    @staticmethod
    def _to_entries(entries: List[RankedEntry]) -> List[LeaderboardEntry]:
        return [
            LeaderboardEntry(rank=entry.rank, actor_id=entry.member, score=entry.score)
            for entry in entries
        ]

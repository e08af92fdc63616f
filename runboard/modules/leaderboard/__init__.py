"""
Distance leaderboards: scopes, key resolution, ranked aggregate store and
the service that ties them together.
"""

from runboard.modules.leaderboard.keys import ScopeKeyResolver
from runboard.modules.leaderboard.service import LeaderboardService
from runboard.modules.leaderboard.store import RankedAggregateStore
from runboard.modules.leaderboard.types import (
    ActorRank,
    AggregateKey,
    ClearResult,
    IncrementResult,
    LeaderboardEntry,
    RankedEntry,
    RankScore,
    Scope,
    ScopeStanding,
    SeedResult,
    SubmitResult,
)

__all__ = [
    "LeaderboardService",
    "RankedAggregateStore",
    "ScopeKeyResolver",
    "Scope",
    "AggregateKey",
    "RankedEntry",
    "RankScore",
    "IncrementResult",
    "ScopeStanding",
    "SubmitResult",
    "LeaderboardEntry",
    "ActorRank",
    "ClearResult",
    "SeedResult",
]

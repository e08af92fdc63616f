"""
Leaderboard value types.

Store-level results (`RankedEntry`, `RankScore`, `IncrementResult`) speak in
members and aggregate keys; service-level results (`SubmitResult`,
`LeaderboardEntry`, `ActorRank`, ...) speak in actors and scopes and carry a
`to_dict()` with the camelCase field names of the request surface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from runboard.modules.shared.exceptions import UnknownScopeError


class Scope(Enum):
    """Ranking windows."""

    DAILY = "daily"
    WEEKLY = "weekly"
    ALL_TIME = "all-time"

    @classmethod
    def parse(cls, value: Union[str, "Scope"]) -> "Scope":
        """
        Case-insensitive scope lookup; "all" and "all_time" alias ALL_TIME.

        Raises
        ------
        UnknownScopeError
            For anything that is not a known scope name.
        """
        if isinstance(value, Scope):
            return value
        if not isinstance(value, str):
            raise UnknownScopeError(value, [scope.value for scope in cls])

        name = value.strip().lower().replace("_", "-")
        if name == "all":
            return cls.ALL_TIME
        try:
            return cls(name)
        except ValueError:
            raise UnknownScopeError(value, [scope.value for scope in cls]) from None


@dataclass(frozen=True)
class AggregateKey:
    """A resolved ranked aggregate: its scope, store key and retention."""

    scope: Scope
    key: str
    retention_seconds: Optional[int] = None

    @property
    def recency_key(self) -> str:
        return recency_key_for(self.key)


def recency_key_for(aggregate_key: str) -> str:
    """Companion hash holding member -> last-applied sequence stamp."""
    return f"{aggregate_key}:recency"


# ═════════════════════════════════════════════════════════════════════════════
# STORE RESULTS
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RankedEntry:
    rank: int
    member: str
    score: float


@dataclass(frozen=True)
class RankScore:
    """0-based composite rank and total; (-1, 0.0) for an absent member."""

    rank: int
    score: float

    @property
    def present(self) -> bool:
        return self.rank >= 0


@dataclass(frozen=True)
class IncrementResult:
    """
    Outcome of a once-only increment.

    `standings` has one RankScore per aggregate, in the order the aggregates
    were passed. When `applied` is False nothing was mutated and the
    standings are the member's current totals.
    """

    applied: bool
    standings: List[RankScore]


# ═════════════════════════════════════════════════════════════════════════════
# SERVICE RESULTS
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScopeStanding:
    scope: Scope
    key: str
    total_score: float
    rank: int
    added: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "key": self.key,
            "totalScore": self.total_score,
            "rank": self.rank,
            "added": self.added,
        }


@dataclass(frozen=True)
class SubmitResult:
    actor_id: str
    event_id: str
    applied: bool
    standings: List[ScopeStanding]

    @property
    def duplicate(self) -> bool:
        return not self.applied

    def standing(self, scope: Union[str, Scope]) -> ScopeStanding:
        wanted = Scope.parse(scope)
        for standing in self.standings:
            if standing.scope is wanted:
                return standing
        raise KeyError(wanted.value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actorId": self.actor_id,
            "eventId": self.event_id,
            "applied": self.applied,
            "duplicate": self.duplicate,
            "standings": [standing.to_dict() for standing in self.standings],
        }


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    actor_id: str
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {"rank": self.rank, "actorId": self.actor_id, "score": self.score}


@dataclass(frozen=True)
class ActorRank:
    actor_id: str
    scope: Scope
    rank: int
    score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "actorId": self.actor_id,
            "scope": self.scope.value,
            "rank": self.rank,
            "score": self.score,
        }


@dataclass(frozen=True)
class ClearResult:
    scope: Scope
    key: str
    cleared: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"scope": self.scope.value, "key": self.key, "cleared": self.cleared}


@dataclass(frozen=True)
class SeedResult:
    scope: Scope
    key: str
    requested: int
    created: int
    failed: int
    unknown: int = 0
    total_members: int = 0
    members: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "key": self.key,
            "requested": self.requested,
            "created": self.created,
            "failed": self.failed,
            "unknown": self.unknown,
            "totalMembers": self.total_members,
            "members": list(self.members),
        }

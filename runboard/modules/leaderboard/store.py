"""
RankedAggregateStore: once-only increments and composite-rank queries.

Purpose
-------
Owns the Lua scripts that read and write ranked aggregates. Every public
operation is one script (or one plain command) so that each step is atomic
on the server; nothing here holds a lock or caches store state.

Storage per aggregate
---------------------
- sorted set `<aggregate>`           member -> exact accumulated total
- hash       `<aggregate>:recency`   member -> sequence stamp of the latest
                                     applied event
- string     `<prefix>seq`           store-wide stamp counter (INCR)

Ordering
--------
Members sort by (total desc, stamp desc, member desc). The sorted set only
knows the total, so every read script settles ties by loading the stamps of
the tied members. Cost is linear in the size of the tie groups touched.

Once-only increments
--------------------
`increment_once_many` runs, in one script:

    SET <dedup> 1 NX PX <ttl>
    if created:
        stamp = INCR <seq>
        for each aggregate:
            ZINCRBY, HSET stamp, assign retention if the key has none
    return per aggregate (total, composite rank)

A duplicate event (dedup record present) mutates nothing and returns the
member's current standings. All aggregates of an event share one dedup
record, so an event is applied to all of them or to none.
"""

from __future__ import annotations

from typing import Any, List, Sequence, Union

from runboard.core.config import ConfigManager
from runboard.core.logging.logger import get_logger
from runboard.core.redis.service import RedisService
from runboard.modules.leaderboard.types import (
    AggregateKey,
    IncrementResult,
    RankedEntry,
    RankScore,
    recency_key_for,
)

logger = get_logger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# LUA SCRIPTS
# ═════════════════════════════════════════════════════════════════════════════

# Shared helpers. Entries are {member, score, stamp, raw score string};
# raw scores are returned to the client because Lua numbers lose precision
# in integer replies.
_COMPOSITE_ORDER_LUA = """
local function stamp_of(recency_key, member)
    return tonumber(redis.call('HGET', recency_key, member) or '0')
end

local function precedes(a, b)
    if a[2] ~= b[2] then return a[2] > b[2] end
    if a[3] ~= b[3] then return a[3] > b[3] end
    return a[1] > b[1]
end

local function composite_rank(zkey, rkey, member)
    local raw = redis.call('ZSCORE', zkey, member)
    if not raw then
        return -1, '0'
    end
    local rank = redis.call('ZCOUNT', zkey, '(' .. raw, '+inf')
    local mine = {member, tonumber(raw), stamp_of(rkey, member)}
    local tied = redis.call('ZRANGEBYSCORE', zkey, raw, raw)
    for _, other in ipairs(tied) do
        if other ~= member and precedes({other, mine[2], stamp_of(rkey, other)}, mine) then
            rank = rank + 1
        end
    end
    return rank, raw
end

local function composite_range(zkey, rkey, start, stop)
    local window = redis.call('ZREVRANGE', zkey, start, stop, 'WITHSCORES')
    if #window == 0 then
        return {}
    end
    local high = window[2]
    local low = window[#window]
    local offset = redis.call('ZCOUNT', zkey, '(' .. high, '+inf')
    local flat = redis.call('ZREVRANGEBYSCORE', zkey, high, low, 'WITHSCORES')
    local band = {}
    for i = 1, #flat, 2 do
        band[#band + 1] = {flat[i], tonumber(flat[i + 1]), stamp_of(rkey, flat[i]), flat[i + 1]}
    end
    table.sort(band, precedes)
    local out = {}
    for pos = start, start + (#window / 2) - 1 do
        local entry = band[pos - offset + 1]
        out[#out + 1] = entry[1]
        out[#out + 1] = entry[4]
    end
    return out
end
"""

# KEYS: dedup, seq, then (aggregate, recency) pairs
# ARGV: member, delta, dedup ttl ms, then retention ms per aggregate (0 = none)
INCREMENT_ONCE_SCRIPT = _COMPOSITE_ORDER_LUA + """
local created = redis.call('SET', KEYS[1], '1', 'NX', 'PX', ARGV[3])
local member = ARGV[1]
local out = {created and 1 or 0}
local stamp
if created then
    stamp = redis.call('INCR', KEYS[2])
end
for i = 1, (#KEYS - 2) / 2 do
    local zkey = KEYS[2 * i + 1]
    local rkey = KEYS[2 * i + 2]
    if created then
        redis.call('ZINCRBY', zkey, ARGV[2], member)
        redis.call('HSET', rkey, member, stamp)
        local retention = tonumber(ARGV[3 + i])
        if retention > 0 then
            for _, key in ipairs({zkey, rkey}) do
                if redis.call('PTTL', key) == -1 then
                    redis.call('PEXPIRE', key, retention)
                end
            end
        end
    end
    local rank, raw = composite_rank(zkey, rkey, member)
    out[#out + 1] = raw
    out[#out + 1] = rank
end
return out
"""

# KEYS: aggregate, recency; ARGV: n
TOP_N_SCRIPT = _COMPOSITE_ORDER_LUA + """
return composite_range(KEYS[1], KEYS[2], 0, tonumber(ARGV[1]) - 1)
"""

# KEYS: aggregate, recency; ARGV: member
RANK_SCRIPT = _COMPOSITE_ORDER_LUA + """
local rank, raw = composite_rank(KEYS[1], KEYS[2], ARGV[1])
return {rank, raw}
"""

# KEYS: aggregate, recency; ARGV: member, radius
AROUND_SCRIPT = _COMPOSITE_ORDER_LUA + """
local rank = composite_rank(KEYS[1], KEYS[2], ARGV[1])
if rank < 0 then
    return {}
end
local radius = tonumber(ARGV[2])
local count = redis.call('ZCARD', KEYS[1])
local start = math.max(0, rank - radius)
local stop = math.min(count - 1, rank + radius)
local out = composite_range(KEYS[1], KEYS[2], start, stop)
table.insert(out, 1, start)
return out
"""


def _text(value: Union[str, bytes]) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


def _entries(flat: Sequence[Any], first_rank: int) -> List[RankedEntry]:
    return [
        RankedEntry(rank=first_rank + offset, member=_text(flat[i]), score=float(flat[i + 1]))
        for offset, i in enumerate(range(0, len(flat), 2))
    ]


# ═════════════════════════════════════════════════════════════════════════════
# STORE
# ═════════════════════════════════════════════════════════════════════════════


class RankedAggregateStore:
    """
    Script-backed ranked aggregates.

    Arguments are assumed valid; the service layer validates caller input.
    """

    def __init__(
        self,
        redis: type[RedisService] = RedisService,
        config_manager: type[ConfigManager] = ConfigManager,
    ) -> None:
        self._redis = redis
        prefix = config_manager.get_str("leaderboard.key_prefix", "lb:distance:")
        self.sequence_key = f"{prefix}seq"

    # ═════════════════════════════════════════════════════════════════════════
    # WRITES
    # ═════════════════════════════════════════════════════════════════════════

    async def increment_once(
        self,
        aggregate: AggregateKey,
        dedup_key: str,
        member: str,
        delta: float,
        dedup_ttl_seconds: int,
    ) -> IncrementResult:
        """Once-only increment of a single aggregate."""
        return await self.increment_once_many(
            [aggregate], dedup_key, member, delta, dedup_ttl_seconds
        )

    async def increment_once_many(
        self,
        aggregates: Sequence[AggregateKey],
        dedup_key: str,
        member: str,
        delta: float,
        dedup_ttl_seconds: int,
    ) -> IncrementResult:
        """
        Apply `delta` to `member` in every aggregate unless `dedup_key` exists.

        Raises
        ------
        AmbiguousOutcomeError
            If the round trip timed out or the connection dropped; re-deliver
            with the same dedup key.
        StoreUnavailableError
            If the store rejected or never received the call.
        """
        if not aggregates:
            raise ValueError("at least one aggregate is required")

        keys: List[str] = [dedup_key, self.sequence_key]
        args: List[Any] = [member, repr(float(delta)), dedup_ttl_seconds * 1000]
        for aggregate in aggregates:
            keys.extend([aggregate.key, aggregate.recency_key])
            args.append((aggregate.retention_seconds or 0) * 1000)

        reply = await self._redis.eval_script(
            INCREMENT_ONCE_SCRIPT,
            keys=keys,
            args=args,
            operation="increment_once_many",
            mutating=True,
        )

        applied = int(reply[0]) == 1
        standings = [
            RankScore(rank=int(reply[i + 1]), score=float(reply[i]))
            for i in range(1, len(reply), 2)
        ]

        logger.debug(
            "Once-only increment evaluated",
            extra={
                "dedup_key": dedup_key,
                "member": member,
                "applied": applied,
                "aggregates": [aggregate.key for aggregate in aggregates],
            },
        )
        return IncrementResult(applied=applied, standings=standings)

    async def clear(self, aggregate_key: str) -> bool:
        """Remove the aggregate and its recency hash; False if it did not exist."""
        removed = await self._redis.delete(aggregate_key, recency_key_for(aggregate_key))
        logger.info(
            "Aggregate cleared",
            extra={"aggregate_key": aggregate_key, "keys_removed": removed},
        )
        return removed > 0

    # ═════════════════════════════════════════════════════════════════════════
    # READS
    # ═════════════════════════════════════════════════════════════════════════

    async def top_n(self, aggregate_key: str, n: int) -> List[RankedEntry]:
        """Best `n` members in composite order; fewer if the aggregate is smaller."""
        if n < 1:
            raise ValueError("n must be >= 1")
        flat = await self._redis.eval_script(
            TOP_N_SCRIPT,
            keys=[aggregate_key, recency_key_for(aggregate_key)],
            args=[n],
            operation="top_n",
        )
        return _entries(flat, 0)

    async def rank_and_score(self, aggregate_key: str, member: str) -> RankScore:
        """0-based composite rank and total; RankScore(-1, 0.0) if absent."""
        rank, raw = await self._redis.eval_script(
            RANK_SCRIPT,
            keys=[aggregate_key, recency_key_for(aggregate_key)],
            args=[member],
            operation="rank_and_score",
        )
        return RankScore(rank=int(rank), score=float(raw))

    async def around(self, aggregate_key: str, member: str, k: int) -> List[RankedEntry]:
        """
        Up to 2k+1 entries centred on `member`, clipped to the aggregate's
        bounds; empty when `member` is absent.
        """
        if k < 0:
            raise ValueError("k must be >= 0")
        reply = await self._redis.eval_script(
            AROUND_SCRIPT,
            keys=[aggregate_key, recency_key_for(aggregate_key)],
            args=[member, k],
            operation="around",
        )
        if not reply:
            return []
        return _entries(reply[1:], int(reply[0]))

    async def member_count(self, aggregate_key: str) -> int:
        return await self._redis.zcard(aggregate_key)

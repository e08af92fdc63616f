"""
Unit tests for RankedAggregateStore.

RedisService is mocked: these tests check which keys and arguments reach
each script and how replies are parsed. Script behaviour itself is covered
by the integration suite.
"""

import pytest

from runboard.modules.leaderboard.store import (
    AROUND_SCRIPT,
    INCREMENT_ONCE_SCRIPT,
    RANK_SCRIPT,
    TOP_N_SCRIPT,
    RankedAggregateStore,
)
from runboard.modules.leaderboard.types import AggregateKey, RankedEntry, RankScore, Scope

DAILY = AggregateKey(Scope.DAILY, "lb:distance:daily:2025-09-09", 35 * 86_400)
ALL_TIME = AggregateKey(Scope.ALL_TIME, "lb:distance:all-time", None)


@pytest.fixture
def store(mock_redis):
    return RankedAggregateStore(redis=mock_redis)


class TestIncrementOnce:
    """Key / argument shaping and reply parsing for the write script."""

    async def test_keys_and_args(self, store, mock_redis):
        mock_redis.eval_script.return_value = [1, "5", 0, "5", 3]

        await store.increment_once_many([DAILY, ALL_TIME], "lb:dedup:ev1", "u1", 5.0, 604_800)

        call = mock_redis.eval_script.await_args
        assert call.args[0] == INCREMENT_ONCE_SCRIPT
        assert call.kwargs["keys"] == [
            "lb:dedup:ev1",
            "lb:distance:seq",
            "lb:distance:daily:2025-09-09",
            "lb:distance:daily:2025-09-09:recency",
            "lb:distance:all-time",
            "lb:distance:all-time:recency",
        ]
        assert call.kwargs["args"] == ["u1", "5.0", 604_800_000, 35 * 86_400_000, 0]
        assert call.kwargs["mutating"] is True

    async def test_applied_reply(self, store, mock_redis):
        mock_redis.eval_script.return_value = [1, "12.5", 0, "40.25", 7]

        result = await store.increment_once_many([DAILY, ALL_TIME], "lb:dedup:ev1", "u1", 2.5, 60)

        assert result.applied is True
        assert result.standings == [RankScore(0, 12.5), RankScore(7, 40.25)]
        assert result.total_score == 12.5

    async def test_duplicate_reply_for_absent_member(self, store, mock_redis):
        mock_redis.eval_script.return_value = [0, "0", -1]

        result = await store.increment_once(DAILY, "lb:dedup:ev1", "u1", 2.5, 60)

        assert result.applied is False
        assert result.standings == [RankScore(-1, 0.0)]
        assert not result.standings[0].present

    async def test_integer_delta_is_sent_as_float(self, store, mock_redis):
        mock_redis.eval_script.return_value = [1, "3", 0]

        await store.increment_once(DAILY, "lb:dedup:ev1", "u1", 3, 60)

        assert mock_redis.eval_script.await_args.kwargs["args"][1] == "3.0"

    async def test_requires_an_aggregate(self, store, mock_redis):
        with pytest.raises(ValueError):
            await store.increment_once_many([], "lb:dedup:ev1", "u1", 1.0, 60)
        mock_redis.eval_script.assert_not_awaited()


class TestReads:
    """Read scripts and their replies."""

    async def test_top_n(self, store, mock_redis):
        mock_redis.eval_script.return_value = ["u3", "9", "u2", "9", "u1", "5"]

        entries = await store.top_n(DAILY.key, 3)

        call = mock_redis.eval_script.await_args
        assert call.args[0] == TOP_N_SCRIPT
        assert call.kwargs["keys"] == [DAILY.key, DAILY.recency_key]
        assert call.kwargs["args"] == [3]
        assert entries == [
            RankedEntry(0, "u3", 9.0),
            RankedEntry(1, "u2", 9.0),
            RankedEntry(2, "u1", 5.0),
        ]

    async def test_top_n_decodes_bytes(self, store, mock_redis):
        mock_redis.eval_script.return_value = [b"u1", b"1.5"]
        assert await store.top_n(DAILY.key, 1) == [RankedEntry(0, "u1", 1.5)]

    async def test_top_n_rejects_non_positive(self, store):
        with pytest.raises(ValueError):
            await store.top_n(DAILY.key, 0)

    async def test_rank_and_score(self, store, mock_redis):
        mock_redis.eval_script.return_value = [2, "17.5"]

        standing = await store.rank_and_score(DAILY.key, "u1")

        assert mock_redis.eval_script.await_args.args[0] == RANK_SCRIPT
        assert mock_redis.eval_script.await_args.kwargs["args"] == ["u1"]
        assert standing == RankScore(2, 17.5)

    async def test_rank_and_score_absent(self, store, mock_redis):
        mock_redis.eval_script.return_value = [-1, "0"]
        assert await store.rank_and_score(DAILY.key, "ghost") == RankScore(-1, 0.0)

    async def test_around_offsets_ranks(self, store, mock_redis):
        mock_redis.eval_script.return_value = [4, "u4", "6", "u5", "5", "u6", "4"]

        entries = await store.around(DAILY.key, "u5", 1)

        assert mock_redis.eval_script.await_args.args[0] == AROUND_SCRIPT
        assert mock_redis.eval_script.await_args.kwargs["args"] == ["u5", 1]
        assert [entry.rank for entry in entries] == [4, 5, 6]
        assert [entry.member for entry in entries] == ["u4", "u5", "u6"]

    async def test_around_absent(self, store, mock_redis):
        mock_redis.eval_script.return_value = []
        assert await store.around(DAILY.key, "ghost", 2) == []

    async def test_around_rejects_negative_radius(self, store):
        with pytest.raises(ValueError):
            await store.around(DAILY.key, "u1", -1)

    async def test_member_count(self, store, mock_redis):
        mock_redis.zcard.return_value = 4
        assert await store.member_count(DAILY.key) == 4
        mock_redis.zcard.assert_awaited_once_with(DAILY.key)


class TestClear:
    async def test_clear_removes_both_keys(self, store, mock_redis):
        mock_redis.delete.return_value = 2

        assert await store.clear(DAILY.key) is True
        mock_redis.delete.assert_awaited_once_with(DAILY.key, DAILY.recency_key)

    async def test_clear_missing(self, store, mock_redis):
        mock_redis.delete.return_value = 0
        assert await store.clear(DAILY.key) is False


class TestScripts:
    """Static checks on the script text."""

    def test_write_script_is_conditional_on_dedup(self):
        assert "'NX'" in INCREMENT_ONCE_SCRIPT
        assert "INCR" in INCREMENT_ONCE_SCRIPT
        assert "PTTL" in INCREMENT_ONCE_SCRIPT

    @pytest.mark.parametrize("script", [TOP_N_SCRIPT, RANK_SCRIPT, AROUND_SCRIPT])
    def test_read_scripts_do_not_write(self, script):
        for command in ("ZINCRBY", "HSET", "PEXPIRE", "'SET'", "INCR'"):
            assert command not in script

"""
Unit tests for LeaderboardService.

Covers validation, once-only submits across scopes, composite ordering,
rank / around queries and seeding, using the in-memory store.
"""

import asyncio
import math
from datetime import date

import pytest

from runboard.modules.leaderboard.types import Scope
from runboard.modules.shared.exceptions import UnknownScopeError, ValidationError

DAY = date(2025, 9, 9)
DAILY_KEY = "lb:distance:daily:2025-09-09"


class TestSubmitValidation:
    """Caller mistakes are rejected before the store is touched."""

    @pytest.mark.parametrize("actor_id", ["", "   ", None, 42])
    async def test_rejects_bad_actor_id(self, leaderboard_service, fake_store, actor_id):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.submit(actor_id, ["daily"], 5.0, "ev1")
        assert exc_info.value.field == "actor_id"
        assert fake_store.increment_calls == 0

    async def test_rejects_blank_event_id(self, leaderboard_service, fake_store):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.submit("u1", ["daily"], 5.0, " ")
        assert exc_info.value.field == "event_id"
        assert fake_store.increment_calls == 0

    @pytest.mark.parametrize("delta", [0, -1.5, math.inf, math.nan, "5", True])
    async def test_rejects_bad_delta(self, leaderboard_service, fake_store, delta):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.submit("u1", ["daily"], delta, "ev1")
        assert exc_info.value.field == "delta"
        assert fake_store.increment_calls == 0

    @pytest.mark.parametrize("scopes", [[], None, ()])
    async def test_rejects_empty_scopes(self, leaderboard_service, scopes):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.submit("u1", scopes, 5.0, "ev1")
        assert exc_info.value.field == "scopes"

    async def test_rejects_unknown_scope(self, leaderboard_service, fake_store):
        with pytest.raises(UnknownScopeError):
            await leaderboard_service.submit("u1", ["daily", "monthly"], 5.0, "ev1")
        assert fake_store.increment_calls == 0

    async def test_integer_delta_is_accepted(self, leaderboard_service):
        result = await leaderboard_service.submit("u1", "daily", 3, "ev1", on=DAY)
        assert result.standing("daily").total_score == 3.0


class TestSubmit:
    """Once-only accumulation."""

    async def test_double_submit_returns_same_total(self, leaderboard_service):
        """Re-delivering ev1 must not double the total."""
        first = await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)
        second = await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)

        assert first.applied is True
        assert first.standing("daily").total_score == 5.0
        assert first.standing("daily").added == 5.0

        assert second.applied is False
        assert second.duplicate is True
        assert second.standing("daily").total_score == 5.0
        assert second.standing("daily").added == 0.0

    async def test_event_applies_to_every_scope(self, leaderboard_service, fake_store):
        result = await leaderboard_service.submit(
            "u1", ["daily", "weekly", "all-time"], 2.5, "ev1", on=DAY
        )

        assert [s.key for s in result.standings] == [
            DAILY_KEY,
            "lb:distance:weekly:2025-W37",
            "lb:distance:all-time",
        ]
        assert all(s.total_score == 2.5 and s.rank == 0 for s in result.standings)
        assert fake_store.increment_calls == 1

    async def test_duplicate_scope_names_collapse(self, leaderboard_service):
        result = await leaderboard_service.submit(
            "u1", ["daily", "DAILY", "all", "all_time"], 1.0, "ev1", on=DAY
        )
        assert [s.scope for s in result.standings] == [Scope.DAILY, Scope.ALL_TIME]
        assert result.standing("all-time").total_score == 1.0

    async def test_duplicate_with_different_delta_changes_nothing(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)
        again = await leaderboard_service.submit("u1", ["daily"], 50.0, "ev1", on=DAY)

        assert again.applied is False
        assert again.standing("daily").total_score == 5.0

    async def test_event_id_is_shared_across_scopes(self, leaderboard_service):
        """An event first seen for daily is a duplicate for all-time too."""
        await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)
        again = await leaderboard_service.submit("u1", ["all-time"], 5.0, "ev1", on=DAY)

        assert again.applied is False
        assert again.standing("all-time").total_score == 0.0
        assert again.standing("all-time").rank == -1

    async def test_concurrent_redelivery_applies_once(self, leaderboard_service):
        results = await asyncio.gather(
            *(leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY) for _ in range(10))
        )

        assert sum(result.applied for result in results) == 1
        standing = await leaderboard_service.rank_of("daily", "u1", on=DAY)
        assert standing.score == 5.0

    async def test_distinct_events_accumulate_in_any_order(self, leaderboard_service):
        deltas = {"e1": 1.5, "e2": 2.25, "e3": 4.0, "e4": 0.25}
        events = list(deltas.items())

        await asyncio.gather(
            *(
                leaderboard_service.submit("u1", ["daily"], delta, event_id, on=DAY)
                for event_id, delta in reversed(events)
            )
        )

        standing = await leaderboard_service.rank_of("daily", "u1", on=DAY)
        assert standing.score == pytest.approx(sum(deltas.values()))

    async def test_event_reapplies_after_dedup_expiry(self, leaderboard_service, fake_clock):
        await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)

        fake_clock.advance(leaderboard_service.dedup_ttl_seconds - 1)
        inside = await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)
        fake_clock.advance(1)
        after = await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)

        assert inside.applied is False
        assert after.applied is True
        assert after.standing("daily").total_score == 10.0

    async def test_retention_recorded_per_scope(self, leaderboard_service, fake_store):
        await leaderboard_service.submit("u1", ["daily", "weekly", "all-time"], 1.0, "ev1", on=DAY)

        assert fake_store.retention[DAILY_KEY] == 35 * 86_400
        assert fake_store.retention["lb:distance:weekly:2025-W37"] == 26 * 7 * 86_400
        assert fake_store.retention["lb:distance:all-time"] is None

    async def test_defaults_to_today(self, leaderboard_service):
        result = await leaderboard_service.submit("u1", ["daily"], 1.0, "ev1")
        assert result.standing("daily").key == DAILY_KEY

    async def test_to_dict_uses_request_field_names(self, leaderboard_service):
        result = await leaderboard_service.submit("u1", ["daily"], 5.0, "ev1", on=DAY)

        assert result.to_dict() == {
            "actorId": "u1",
            "eventId": "ev1",
            "applied": True,
            "duplicate": False,
            "standings": [
                {
                    "scope": "daily",
                    "key": DAILY_KEY,
                    "totalScore": 5.0,
                    "rank": 0,
                    "added": 5.0,
                }
            ],
        }


class TestOrdering:
    """Composite order: total desc, most recent update first on ties."""

    async def test_recent_contribution_wins_tie(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 5.0, "a", on=DAY)
        await leaderboard_service.submit("u2", ["daily"], 9.0, "b", on=DAY)
        await leaderboard_service.submit("u3", ["daily"], 9.0, "c", on=DAY)

        top = await leaderboard_service.top("daily", 3, on=DAY)

        assert [entry.actor_id for entry in top] == ["u3", "u2", "u1"]
        assert [entry.rank for entry in top] == [0, 1, 2]
        assert [entry.score for entry in top] == [9.0, 9.0, 5.0]

    async def test_totals_are_exact(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 5.0, "a", on=DAY)
        top = await leaderboard_service.top("daily", on=DAY)
        assert top[0].score == 5.0

    async def test_rank_matches_position_in_top(self, leaderboard_service):
        for i, delta in enumerate([3.0, 7.5, 7.5, 1.0, 12.0, 3.0]):
            await leaderboard_service.submit(f"u{i}", ["daily"], delta, f"ev{i}", on=DAY)

        top = await leaderboard_service.top("daily", 100, on=DAY)
        scores = [entry.score for entry in top]
        assert scores == sorted(scores, reverse=True)

        for position, entry in enumerate(top):
            standing = await leaderboard_service.rank_of("daily", entry.actor_id, on=DAY)
            assert standing.rank == position
            assert standing.score == entry.score

    async def test_top_returns_fewer_when_aggregate_is_small(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 1.0, "a", on=DAY)
        assert len(await leaderboard_service.top("daily", 10, on=DAY)) == 1

    async def test_top_of_missing_aggregate_is_empty(self, leaderboard_service):
        assert await leaderboard_service.top("weekly", on=DAY) == []

    @pytest.mark.parametrize("limit", [0, 101, -1])
    async def test_top_rejects_out_of_range_limit(self, leaderboard_service, limit):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.top("daily", limit, on=DAY)
        assert exc_info.value.field == "limit"


class TestRankAndAround:
    """Single-actor queries."""

    async def test_ghost_has_no_rank(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 5.0, "a", on=DAY)

        ghost = await leaderboard_service.rank_of("daily", "ghost", on=DAY)

        assert ghost.rank == -1
        assert ghost.score == 0.0
        assert ghost.to_dict() == {"actorId": "ghost", "scope": "daily", "rank": -1, "score": 0.0}

    async def test_around_absent_actor_is_empty(self, leaderboard_service):
        await leaderboard_service.submit("u2", ["daily"], 5.0, "a", on=DAY)
        assert await leaderboard_service.around("daily", "u1", 2, on=DAY) == []

    async def test_around_is_centred_and_clipped(self, leaderboard_service):
        for i in range(10):
            await leaderboard_service.submit(f"u{i}", ["daily"], float(10 - i), f"ev{i}", on=DAY)

        middle = await leaderboard_service.around("daily", "u5", 2, on=DAY)
        head = await leaderboard_service.around("daily", "u0", 2, on=DAY)
        tail = await leaderboard_service.around("daily", "u9", 3, on=DAY)

        assert [e.actor_id for e in middle] == ["u3", "u4", "u5", "u6", "u7"]
        assert [e.rank for e in middle] == [3, 4, 5, 6, 7]
        assert [e.actor_id for e in head] == ["u0", "u1", "u2"]
        assert [e.rank for e in tail] == [6, 7, 8, 9]

    async def test_around_window_size(self, leaderboard_service):
        for i in range(4):
            await leaderboard_service.submit(f"u{i}", ["daily"], float(i + 1), f"ev{i}", on=DAY)

        for k in range(0, 5):
            window = await leaderboard_service.around("daily", "u2", k, on=DAY)
            assert len(window) <= min(2 * k + 1, 4)
            assert "u2" in [entry.actor_id for entry in window]
        assert len(await leaderboard_service.around("daily", "u2", 4, on=DAY)) == 4

    async def test_around_uses_default_radius(self, leaderboard_service):
        for i in range(10):
            await leaderboard_service.submit(f"u{i}", ["daily"], float(10 - i), f"ev{i}", on=DAY)

        window = await leaderboard_service.around("daily", "u5", on=DAY)
        assert len(window) == 2 * leaderboard_service.default_around_radius + 1

    @pytest.mark.parametrize("radius", [-1, 21])
    async def test_around_rejects_out_of_range_radius(self, leaderboard_service, radius):
        with pytest.raises(ValidationError) as exc_info:
            await leaderboard_service.around("daily", "u1", radius, on=DAY)
        assert exc_info.value.field == "radius"

    async def test_member_count(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 1.0, "a", on=DAY)
        await leaderboard_service.submit("u2", ["daily"], 1.0, "b", on=DAY)
        await leaderboard_service.submit("u1", ["daily"], 1.0, "c", on=DAY)

        assert await leaderboard_service.member_count("daily", on=DAY) == 2
        assert await leaderboard_service.member_count("weekly", on=DAY) == 0


class TestClearAndSeed:
    """Admin / test-data operations."""

    async def test_clear_removes_aggregate(self, leaderboard_service):
        await leaderboard_service.submit("u1", ["daily"], 1.0, "a", on=DAY)

        first = await leaderboard_service.clear("daily", on=DAY)
        second = await leaderboard_service.clear("daily", on=DAY)

        assert first.cleared is True
        assert first.key == DAILY_KEY
        assert second.cleared is False
        assert await leaderboard_service.member_count("daily", on=DAY) == 0

    async def test_seed_creates_members(self, leaderboard_service):
        result = await leaderboard_service.seed("weekly", 5, on=DAY)

        assert result.created == 5
        assert result.failed == 0
        assert result.total_members == 5
        assert result.members == ["user001", "user002", "user003", "user004", "user005"]
        assert await leaderboard_service.member_count("weekly", on=DAY) == 5

        top = await leaderboard_service.top("weekly", 5, on=DAY)
        for entry in top:
            assert 0.1 <= entry.score <= 50.0
            assert round(entry.score, 1) == entry.score

    async def test_reseeding_adds_to_totals(self, leaderboard_service):
        await leaderboard_service.seed("daily", 3, on=DAY)
        before = await leaderboard_service.rank_of("daily", "user001", on=DAY)
        await leaderboard_service.seed("daily", 3, on=DAY)
        after = await leaderboard_service.rank_of("daily", "user001", on=DAY)

        assert after.score > before.score
        assert await leaderboard_service.member_count("daily", on=DAY) == 3

    async def test_seed_counts_failures(self, leaderboard_service, fake_store):
        fake_store.failing_members.add("user002")

        result = await leaderboard_service.seed("daily", 3, on=DAY)

        assert result.created == 2
        assert result.failed == 1
        assert result.unknown == 0
        assert "user002" not in result.members

    async def test_seed_lost_reply_is_unknown_not_failed(self, leaderboard_service, fake_store):
        fake_store.lost_reply_members.add("user002")

        result = await leaderboard_service.seed("daily", 3, on=DAY)

        assert result.failed == 0
        assert result.unknown == 1
        assert result.members == ["user001", "user003"]
        # The write committed even though the caller never saw the reply
        assert result.total_members == 3
        assert result.to_dict()["unknown"] == 1

    async def test_seed_reports_aggregate_total(self, leaderboard_service):
        await leaderboard_service.submit("runner", ["daily"], 4.0, "ev-runner", on=DAY)

        result = await leaderboard_service.seed("daily", 3, on=DAY)

        assert result.created == 3
        assert result.total_members == 4
        assert result.to_dict()["totalMembers"] == 4

    @pytest.mark.parametrize("count", [0, 101])
    async def test_seed_rejects_out_of_range_count(self, leaderboard_service, count):
        with pytest.raises(ValidationError):
            await leaderboard_service.seed("daily", count, on=DAY)

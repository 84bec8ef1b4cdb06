"""Tests for the concurrency limiter, candidate dedupe and the persistence gate."""

import asyncio
from datetime import timedelta

import pytest

from models.achievement import Achievement, AchievementType, Tier
from services.limiter import ConcurrencyLimiter
from services.persistence_gate import PersistenceGate, dedupe_candidates

from fakes import T0


def achievement(
    achievement_id: str,
    achievement_type: AchievementType,
    achieved_at=T0,
    player_name: str = "Alice",
) -> Achievement:
    return Achievement(
        player_name=player_name,
        achievement_type=achievement_type,
        achievement_id=achievement_id,
        achievement_name=achievement_id,
        tier=Tier.BRONZE,
        value=1,
        achieved_at=achieved_at,
    )


# =============================================================================
# ConcurrencyLimiter
# =============================================================================

class TestConcurrencyLimiter:
    def test_rejects_non_positive_limit(self):
        with pytest.raises(ValueError):
            ConcurrencyLimiter(0)

    @pytest.mark.asyncio
    async def test_map_preserves_order_and_bounds_concurrency(self):
        limiter = ConcurrencyLimiter(2)

        async def work(n):
            await asyncio.sleep(0.01 * (5 - n))
            return n * n

        results = await limiter.map(work, range(5))

        assert results == [0, 1, 4, 9, 16]
        assert limiter.peak_active == 2
        assert limiter.active == 0

    @pytest.mark.asyncio
    async def test_exception_propagates_and_releases_slot(self):
        limiter = ConcurrencyLimiter(1)

        async def boom():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await limiter.run(boom)

        async def ok():
            return "ok"

        assert await limiter.run(ok) == "ok"
        assert limiter.active == 0


# =============================================================================
# Dedupe and Persist
# =============================================================================

class TestDedupeCandidates:
    def test_repeatable_types_keyed_by_time(self):
        first = achievement("kill_streak_5", AchievementType.KILL_STREAK, T0)
        later = achievement("kill_streak_5", AchievementType.KILL_STREAK, T0 + timedelta(minutes=5))
        repeat = achievement("kill_streak_5", AchievementType.KILL_STREAK, T0)

        assert dedupe_candidates([first, later, repeat]) == [first, later]

    def test_one_off_types_keyed_by_id(self):
        first = achievement("total_kills_100", AchievementType.MILESTONE, T0)
        second = achievement("total_kills_100", AchievementType.MILESTONE, T0 + timedelta(days=1))

        assert dedupe_candidates([first, second]) == [first]

    def test_players_are_independent(self):
        alice = achievement("total_kills_100", AchievementType.MILESTONE)
        bob = achievement("total_kills_100", AchievementType.MILESTONE, player_name="Bob")

        assert dedupe_candidates([alice, bob]) == [alice, bob]


class TestPersistenceGate:
    @pytest.mark.asyncio
    async def test_persist_counts(self, achievement_store):
        gate = PersistenceGate(achievement_store)
        milestone = achievement("total_kills_100", AchievementType.MILESTONE)

        result = await gate.persist([milestone, milestone])

        assert (result.candidates, result.unique, result.inserted) == (2, 1, 1)
        assert result.duplicates == 1

    @pytest.mark.asyncio
    async def test_existing_rows_are_ignored(self, achievement_store):
        gate = PersistenceGate(achievement_store)
        streak = achievement("kill_streak_5", AchievementType.KILL_STREAK)
        await gate.persist([streak])

        result = await gate.persist([streak])

        assert result.inserted == 0
        assert len(achievement_store.rows) == 1

    @pytest.mark.asyncio
    async def test_empty_batch_skips_store(self, achievement_store):
        result = await PersistenceGate(achievement_store).persist([])

        assert result.inserted == 0
        assert achievement_store.insert_calls == 0

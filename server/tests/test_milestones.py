"""Tests for career milestones and their invalidation."""

from datetime import timedelta

import pytest

from models.achievement import Achievement, AchievementType, Tier
from models.rounds import PlayerTotals
from services.milestones import (
    MilestoneCalculator,
    dedupe_by_id,
    find_crossings,
    milestone_threshold,
)

from fakes import T0, make_player_round


def _milestone(player_name: str, achievement_id: str) -> Achievement:
    return Achievement(
        player_name=player_name,
        achievement_type=AchievementType.MILESTONE,
        achievement_id=achievement_id,
        achievement_name=achievement_id,
        tier=Tier.BRONZE,
        value=0,
        achieved_at=T0,
    )


class TestFindCrossings:
    def test_kill_threshold(self):
        crossings = find_crossings(PlayerTotals(kills=95), PlayerTotals(kills=105))
        assert [c.achievement_id for c in crossings] == ["total_kills_100"]
        assert crossings[0].previous == 95
        assert crossings[0].new == 105

    def test_exact_threshold_counts(self):
        crossings = find_crossings(PlayerTotals(kills=99), PlayerTotals(kills=100))
        assert [c.achievement_id for c in crossings] == ["total_kills_100"]

    def test_already_past_threshold(self):
        assert find_crossings(PlayerTotals(kills=100), PlayerTotals(kills=120)) == []

    def test_multiple_thresholds_in_one_round(self):
        crossings = find_crossings(PlayerTotals(kills=90), PlayerTotals(kills=520))
        assert [c.achievement_id for c in crossings] == ["total_kills_100", "total_kills_500"]

    def test_playtime_compared_in_minutes(self):
        crossings = find_crossings(
            PlayerTotals(play_time_minutes=590),
            PlayerTotals(play_time_minutes=620),
        )
        assert [c.achievement_id for c in crossings] == ["milestone_playtime_10h"]
        assert crossings[0].kind == "hours"
        assert crossings[0].threshold == 10

    def test_score_threshold(self):
        crossings = find_crossings(PlayerTotals(score=9_990), PlayerTotals(score=10_040))
        assert [c.achievement_id for c in crossings] == ["total_score_10000"]


class TestMilestoneThreshold:
    def test_parses_known_ids(self):
        assert milestone_threshold("total_kills_500") == ("kills", 500.0)
        assert milestone_threshold("total_score_10000") == ("score", 10000.0)
        assert milestone_threshold("milestone_playtime_10h") == ("minutes", 600.0)

    def test_unknown_ids(self):
        assert milestone_threshold("kill_streak_5") is None
        assert milestone_threshold("total_kills_many") is None


def test_dedupe_by_id_is_case_insensitive():
    first = _milestone("Alice", "total_kills_100")
    second = _milestone("Alice", "TOTAL_KILLS_100")
    assert dedupe_by_id([first, second]) == [first]


class TestMilestoneCalculator:
    @pytest.fixture
    def calculator(self, rollup_source, achievement_store, catalog):
        return MilestoneCalculator(rollup_source, achievement_store, catalog)

    @pytest.mark.asyncio
    async def test_round_crossing_kills(self, calculator, rollup_source, processed_at):
        rollup_source.before["Alice"] = PlayerTotals(kills=95, score=500, play_time_minutes=100)
        player_round = make_player_round(kills=10)

        result = await calculator.check_round(player_round, processed_at)

        assert [a.achievement_id for a in result] == ["total_kills_100"]
        achievement = result[0]
        assert achievement.achievement_type == AchievementType.MILESTONE
        assert achievement.achievement_name == "Centurion (100 Kills)"
        assert achievement.value == 100
        assert achievement.achieved_at == T0 + timedelta(minutes=30)
        assert achievement.metadata_dict() == {"previous_kills": 95, "new_kills": 105}

    @pytest.mark.asyncio
    async def test_playtime_metadata_in_hours(self, calculator, rollup_source, processed_at):
        rollup_source.before["Alice"] = PlayerTotals(play_time_minutes=590)
        player_round = make_player_round(kills=0, score=0, minutes=30)

        result = await calculator.check_round(player_round, processed_at)

        assert [a.achievement_id for a in result] == ["milestone_playtime_10h"]
        assert result[0].metadata_dict() == {"previous_hours": 9.8, "new_hours": 10.3}

    @pytest.mark.asyncio
    async def test_owned_milestones_are_skipped(
        self, calculator, rollup_source, achievement_store, processed_at
    ):
        rollup_source.before["Alice"] = PlayerTotals(kills=95)
        achievement_store.rows.append(_milestone("Alice", "total_kills_100"))

        result = await calculator.check_round(make_player_round(kills=10, score=0), processed_at)

        assert result == []

    @pytest.mark.asyncio
    async def test_no_crossing(self, calculator, rollup_source, processed_at):
        rollup_source.before["Alice"] = PlayerTotals(kills=10)
        result = await calculator.check_round(make_player_round(kills=5, score=10), processed_at)
        assert result == []


class TestRemoveInvalidMilestones:
    @pytest.fixture
    def calculator(self, rollup_source, achievement_store, catalog):
        return MilestoneCalculator(rollup_source, achievement_store, catalog)

    @pytest.mark.asyncio
    async def test_removes_milestones_above_current_totals(
        self, calculator, rollup_source, achievement_store
    ):
        rollup_source.current["Alice"] = PlayerTotals(kills=480, score=12_000, play_time_minutes=700)
        for achievement_id in (
            "total_kills_100",
            "total_kills_500",
            "total_score_10000",
            "milestone_playtime_10h",
            "milestone_playtime_50h",
        ):
            achievement_store.rows.append(_milestone("Alice", achievement_id))

        removed = await calculator.remove_invalid_milestones(["Alice"])

        assert removed == 2
        assert achievement_store.ids_for("Alice") == [
            "milestone_playtime_10h",
            "total_kills_100",
            "total_score_10000",
        ]

    @pytest.mark.asyncio
    async def test_player_without_rollup_loses_everything(self, calculator, achievement_store):
        achievement_store.rows.append(_milestone("Bob", "total_kills_100"))

        removed = await calculator.remove_invalid_milestones(["Bob"])

        assert removed == 1
        assert achievement_store.ids_for("Bob") == []

    @pytest.mark.asyncio
    async def test_other_players_untouched(self, calculator, rollup_source, achievement_store):
        achievement_store.rows.append(_milestone("Alice", "total_kills_100"))
        achievement_store.rows.append(_milestone("Bob", "total_kills_100"))

        await calculator.remove_invalid_milestones(["Bob"])

        assert achievement_store.ids_for("Alice") == ["total_kills_100"]

    @pytest.mark.asyncio
    async def test_empty_input(self, calculator):
        assert await calculator.remove_invalid_milestones([]) == 0

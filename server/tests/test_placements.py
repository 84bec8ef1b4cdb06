"""Tests for round placement achievements."""

from datetime import timedelta

import pytest

from models.achievement import AchievementType, MIN_TIMESTAMP, Tier
from services.placements import PlacementProcessor, rank_sessions

from fakes import T0, make_round, make_session


class TestRankSessions:
    def test_score_then_kills_then_session_id(self):
        sessions = [
            make_session(3, "Alice", score=100, kills=10),
            make_session(4, "Bob", score=100, kills=12),
            make_session(1, "Carol", score=80, kills=1),
            make_session(2, "Dave", score=80, kills=1),
        ]

        ranked = rank_sessions(sessions)

        assert [s.player_name for s in ranked] == ["Bob", "Alice", "Carol", "Dave"]

    def test_bots_are_excluded(self):
        sessions = [
            make_session(1, "BOT_Sniper", score=500, is_bot=True),
            make_session(2, "Alice", score=10),
        ]
        assert [s.player_name for s in rank_sessions(sessions)] == ["Alice"]


class TestPlacementProcessor:
    @pytest.fixture
    def processor(self, round_source, catalog):
        return PlacementProcessor(round_source, catalog, batch_size=2)

    def test_top_three(self, processor, processed_at):
        round_result = make_round()
        sessions = [
            make_session(1, "Alice", score=300),
            make_session(2, "Bob", score=200),
            make_session(3, "Carol", score=100),
            make_session(4, "Dave", score=50),
        ]

        result = processor.achievements_for_round(round_result, sessions, processed_at)

        assert [(a.player_name, a.achievement_id, a.tier) for a in result] == [
            ("Alice", "round_placement_1", Tier.GOLD),
            ("Bob", "round_placement_2", Tier.SILVER),
            ("Carol", "round_placement_3", Tier.BRONZE),
        ]
        first = result[0]
        assert first.achievement_type == AchievementType.PLACEMENT
        assert first.achievement_name == "1st Place"
        assert first.value == 1
        assert first.achieved_at == round_result.end_time
        assert first.metadata_dict()["server_name"] == "Frontline Wake"
        assert first.metadata_dict()["total_players"] == 8

    def test_fewer_than_three_players(self, processor, processed_at):
        result = processor.achievements_for_round(
            make_round(), [make_session(1, "Alice", score=10)], processed_at
        )
        assert [a.achievement_id for a in result] == ["round_placement_1"]

    def test_round_without_end_time_uses_last_seen(self, processor, processed_at):
        session = make_session(1, "Alice", score=10)
        result = processor.achievements_for_round(make_round(end=None), [session], processed_at)
        assert result[0].achieved_at == session.last_seen_time

    @pytest.mark.asyncio
    async def test_process_since_pages_through_rounds(
        self, processor, round_source, processed_at
    ):
        for i in range(3):
            round_id = f"round-{i}"
            round_source.rounds[round_id] = make_round(
                round_id=round_id, end=T0 + timedelta(minutes=30 + i)
            )
            round_source.sessions[round_id] = [
                make_session(i * 10 + 1, f"Player{i}", score=100, round_id=round_id)
            ]

        result = await processor.process_since(MIN_TIMESTAMP, processed_at)

        assert sorted(a.player_name for a in result) == ["Player0", "Player1", "Player2"]
        assert [call[2] for call in round_source.completed_calls] == [0, 2]

    @pytest.mark.asyncio
    async def test_process_since_respects_watermark(self, processor, round_source, processed_at):
        round_source.rounds["old"] = make_round(round_id="old", end=T0)
        round_source.sessions["old"] = [make_session(1, "Alice", score=10, round_id="old")]

        result = await processor.process_since(T0 + timedelta(minutes=1), processed_at)

        assert result == []

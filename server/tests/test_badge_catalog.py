"""Tests for the badge catalog and achievement model serialization."""

import json

import pytest

from models.achievement import (
    Achievement,
    AchievementType,
    BadgeCategory,
    KillStreakMetadata,
    Tier,
    WatermarkFamily,
)
from models.badges import BadgeDefinition
from services.badge_catalog import BadgeCatalog, default_definitions

from fakes import T0


class TestBadgeCatalog:
    def test_every_emitted_id_has_a_definition(self, catalog):
        expected = (
            [f"kill_streak_{n}" for n in (5, 10, 15, 20, 25, 30, 50)]
            + ["total_kills_100", "total_kills_50000", "milestone_playtime_10h",
               "milestone_playtime_1000h", "total_score_10000", "total_score_1000000"]
            + ["round_placement_1", "round_placement_2", "round_placement_3"]
            + ["team_victory", "team_victory_switched"]
            + ["sharpshooter_bronze", "sharpshooter_legend",
               "elite_warrior_bronze", "elite_warrior_legend"]
        )
        missing = [i for i in expected if i not in catalog]
        assert missing == []

    def test_lookup_is_case_insensitive(self, catalog):
        assert catalog.get("KILL_STREAK_5").name == "First Blood"
        assert catalog.get("unknown") is None

    def test_filters(self, catalog):
        legends = catalog.all_by_tier(Tier.LEGEND)
        assert all(d.tier == Tier.LEGEND for d in legends)
        assert "kill_streak_50" in {d.id for d in legends}

        social = catalog.all_by_category(BadgeCategory.SOCIAL)
        assert {d.id for d in social} >= {"night_owl", "early_bird"}

    def test_duplicate_ids_are_rejected(self):
        definition = BadgeDefinition(
            id="dup", name="Dup", description="", tier=Tier.BRONZE,
            category=BadgeCategory.SOCIAL, requirements={},
        )
        with pytest.raises(ValueError):
            BadgeCatalog([definition, definition])

    def test_default_definitions_are_unique(self):
        ids = [d.id.lower() for d in default_definitions()]
        assert len(ids) == len(set(ids))
        assert len(BadgeCatalog()) == len(ids)


class TestAchievementModel:
    def test_identity_depends_on_repeatability(self):
        streak = Achievement(
            player_name="Alice", achievement_type=AchievementType.KILL_STREAK,
            achievement_id="kill_streak_5", achievement_name="First Blood",
            tier=Tier.BRONZE, value=5, achieved_at=T0,
        )
        milestone = Achievement(
            player_name="Alice", achievement_type=AchievementType.MILESTONE,
            achievement_id="total_kills_100", achievement_name="Centurion",
            tier=Tier.BRONZE, value=100, achieved_at=T0,
        )
        assert streak.identity == ("Alice", "kill_streak_5", T0)
        assert milestone.identity == ("Alice", "total_kills_100")
        assert streak.version == T0

    def test_row_round_trip_keeps_metadata(self):
        achievement = Achievement(
            player_name="Alice", achievement_type=AchievementType.KILL_STREAK,
            achievement_id="kill_streak_5", achievement_name="First Blood",
            tier=Tier.BRONZE, value=5, achieved_at=T0, processed_at=T0,
            metadata=KillStreakMetadata(actual_streak=6, round_kills=20),
        )
        row = {
            **achievement.to_dict(),
            "achieved_at": T0.replace(tzinfo=None),
            "processed_at": T0,
            "metadata": achievement.metadata_json(),
        }

        loaded = Achievement.from_row(row)

        assert loaded.achieved_at == T0
        assert loaded.metadata == {"actual_streak": 6, "round_kills": 20}
        assert json.loads(achievement.metadata_json()) == loaded.metadata

    def test_watermark_families_cover_every_type(self):
        covered = [t for family in WatermarkFamily for t in family.achievement_types]
        assert sorted(t.value for t in covered) == sorted(t.value for t in AchievementType)

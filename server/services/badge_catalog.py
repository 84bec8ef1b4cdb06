"""
Badge catalog: the static table of achievement definitions.

Every achievement id a calculator can emit has an entry here. The catalog is
built once from the thresholds in constants.py and is read-only afterwards.
"""

import logging
from typing import Iterable, Optional

from constants import (
    KILL_MILESTONES,
    KILL_MILESTONE_PREFIX,
    KILL_STREAK_THRESHOLDS,
    PLACEMENT_PREFIX,
    PLAYTIME_MILESTONE_HOURS,
    PLAYTIME_MILESTONE_PREFIX,
    SCORE_MILESTONES,
    SCORE_MILESTONE_PREFIX,
    TEAM_VICTORY_ID,
    TEAM_VICTORY_SWITCHED_ID,
)
from models.achievement import BadgeCategory, Tier
from models.badges import BadgeDefinition

logger = logging.getLogger(__name__)


_STREAK_NAMES = {
    5: ("First Blood", Tier.BRONZE),
    10: ("Double Digits", Tier.BRONZE),
    15: ("Killing Spree", Tier.SILVER),
    20: ("Rampage", Tier.SILVER),
    25: ("Unstoppable", Tier.GOLD),
    30: ("Godlike", Tier.GOLD),
    50: ("Legendary", Tier.LEGEND),
}

_KILL_MILESTONE_NAMES = {
    100: ("Centurion", Tier.BRONZE),
    500: ("Veteran", Tier.BRONZE),
    1000: ("Elite", Tier.SILVER),
    2500: ("Master", Tier.SILVER),
    5000: ("Warlord", Tier.GOLD),
    10000: ("Legend", Tier.GOLD),
    25000: ("Immortal", Tier.LEGEND),
    50000: ("God of War", Tier.LEGEND),
}

_PLAYTIME_NAMES = {
    10: ("Recruit", Tier.BRONZE),
    50: ("Soldier", Tier.BRONZE),
    100: ("Veteran", Tier.SILVER),
    500: ("Elite", Tier.GOLD),
    1000: ("Legend", Tier.LEGEND),
}

_SCORE_NAMES = {
    10000: ("Bronze Scorer", Tier.BRONZE),
    50000: ("Silver Scorer", Tier.SILVER),
    100000: ("Gold Scorer", Tier.SILVER),
    500000: ("Master Scorer", Tier.GOLD),
    1000000: ("Legendary Scorer", Tier.LEGEND),
}

_PLACEMENTS = {
    1: ("1st Place", Tier.GOLD),
    2: ("2nd Place", Tier.SILVER),
    3: ("3rd Place", Tier.BRONZE),
}


def _streak_badges() -> Iterable[BadgeDefinition]:
    for threshold in KILL_STREAK_THRESHOLDS:
        name, tier = _STREAK_NAMES[threshold]
        yield BadgeDefinition(
            id=f"kill_streak_{threshold}",
            name=name,
            description=f"Achieve {threshold} kills without dying",
            tier=tier,
            category=BadgeCategory.PERFORMANCE,
            requirements={"streak_count": threshold},
        )


def _milestone_badges() -> Iterable[BadgeDefinition]:
    for kills in KILL_MILESTONES:
        name, tier = _KILL_MILESTONE_NAMES[kills]
        yield BadgeDefinition(
            id=f"{KILL_MILESTONE_PREFIX}{kills}",
            name=f"{name} ({kills:,} Kills)",
            description=f"Achieve {kills:,} total kills",
            tier=tier,
            category=BadgeCategory.MILESTONE,
            requirements={"total_kills": kills},
        )

    for hours in PLAYTIME_MILESTONE_HOURS:
        name, tier = _PLAYTIME_NAMES[hours]
        yield BadgeDefinition(
            id=f"{PLAYTIME_MILESTONE_PREFIX}{hours}h",
            name=f"{name} ({hours}h Played)",
            description=f"Play for {hours} hours total",
            tier=tier,
            category=BadgeCategory.MILESTONE,
            requirements={"playtime_hours": hours},
        )

    for score in SCORE_MILESTONES:
        name, tier = _SCORE_NAMES[score]
        yield BadgeDefinition(
            id=f"{SCORE_MILESTONE_PREFIX}{score}",
            name=name,
            description=f"Achieve {score:,} total score",
            tier=tier,
            category=BadgeCategory.MILESTONE,
            requirements={"total_score": score},
        )


def _round_badges() -> Iterable[BadgeDefinition]:
    for placement, (name, tier) in _PLACEMENTS.items():
        yield BadgeDefinition(
            id=f"{PLACEMENT_PREFIX}{placement}",
            name=name,
            description=f"Finish a round in position {placement} by score",
            tier=tier,
            category=BadgeCategory.PERFORMANCE,
            requirements={"placement": placement},
        )

    yield BadgeDefinition(
        id=TEAM_VICTORY_ID,
        name="Team Victory",
        description="Finish a round on the winning team",
        tier=Tier.BRONZE,
        category=BadgeCategory.TEAM_PLAY,
        requirements={"presence_window_minutes": 2},
    )
    yield BadgeDefinition(
        id=TEAM_VICTORY_SWITCHED_ID,
        name="Team Victory (Team Switched)",
        description="Spend most of a round on the winning team before switching sides",
        tier=Tier.BRONZE,
        category=BadgeCategory.TEAM_PLAY,
        requirements={"presence_window_minutes": 2},
    )


def _performance_badges() -> Iterable[BadgeDefinition]:
    sharpshooter = (
        (Tier.BRONZE, 1.0, 10),
        (Tier.SILVER, 1.5, 25),
        (Tier.GOLD, 2.0, 50),
        (Tier.LEGEND, 2.5, 100),
    )
    for tier, kpm, rounds in sharpshooter:
        yield BadgeDefinition(
            id=f"sharpshooter_{tier.value}",
            name=f"{tier.value.title()} Sharpshooter",
            description=f"Maintain {kpm}+ kills per minute over {rounds} rounds",
            tier=tier,
            category=BadgeCategory.PERFORMANCE,
            requirements={"min_kpm": kpm, "min_rounds": rounds},
        )

    elite = (
        (Tier.BRONZE, 2.0, 25),
        (Tier.SILVER, 3.0, 50),
        (Tier.GOLD, 4.0, 100),
        (Tier.LEGEND, 5.0, 200),
    )
    for tier, kd, rounds in elite:
        yield BadgeDefinition(
            id=f"elite_warrior_{tier.value}",
            name=f"{tier.value.title()} Elite Warrior",
            description=f"Maintain a {kd:g}+ K/D ratio over {rounds} rounds",
            tier=tier,
            category=BadgeCategory.PERFORMANCE,
            requirements={"min_kd": kd, "min_rounds": rounds},
        )


def _catalog_only_badges() -> Iterable[BadgeDefinition]:
    """Badges that are displayed but not awarded by the pipelines here."""
    yield BadgeDefinition(
        id="map_specialist", name="Map Specialist",
        description="Top 10% performance on a specific map (min 25 rounds)",
        tier=Tier.SILVER, category=BadgeCategory.MAP_MASTERY,
        requirements={"percentile": 90, "min_rounds": 25},
    )
    yield BadgeDefinition(
        id="map_dominator", name="Map Dominator",
        description="Top 5% performance on a specific map (min 50 rounds)",
        tier=Tier.GOLD, category=BadgeCategory.MAP_MASTERY,
        requirements={"percentile": 95, "min_rounds": 50},
    )
    yield BadgeDefinition(
        id="map_legend", name="Map Legend",
        description="Top 1% performance on a specific map (min 100 rounds)",
        tier=Tier.LEGEND, category=BadgeCategory.MAP_MASTERY,
        requirements={"percentile": 99, "min_rounds": 100},
    )
    yield BadgeDefinition(
        id="consistent_killer", name="Consistent Killer",
        description="Positive K/D in 80% of last 50 rounds",
        tier=Tier.GOLD, category=BadgeCategory.CONSISTENCY,
        requirements={"positive_kd_percentage": 80, "min_rounds": 50},
    )
    yield BadgeDefinition(
        id="comeback_king", name="Comeback King",
        description="Finish 5 rounds with positive K/D after a negative first half",
        tier=Tier.SILVER, category=BadgeCategory.CONSISTENCY,
        requirements={"comeback_rounds": 5},
    )
    yield BadgeDefinition(
        id="rock_solid", name="Rock Solid",
        description="Keep K/D variance low over 30 rounds",
        tier=Tier.GOLD, category=BadgeCategory.CONSISTENCY,
        requirements={"max_variance": 0.5, "min_rounds": 30},
    )
    yield BadgeDefinition(
        id="server_regular", name="Server Regular",
        description="Play 50+ hours on a single server",
        tier=Tier.SILVER, category=BadgeCategory.SOCIAL,
        requirements={"server_hours": 50},
    )
    yield BadgeDefinition(
        id="night_owl", name="Night Owl",
        description="80% of playtime between 22:00 and 06:00",
        tier=Tier.BRONZE, category=BadgeCategory.SOCIAL,
        requirements={"night_percentage": 80, "min_hours": 20},
    )
    yield BadgeDefinition(
        id="early_bird", name="Early Bird",
        description="80% of playtime between 06:00 and 12:00",
        tier=Tier.BRONZE, category=BadgeCategory.SOCIAL,
        requirements={"morning_percentage": 80, "min_hours": 20},
    )
    yield BadgeDefinition(
        id="marathon_warrior", name="Marathon Warrior",
        description="Play for 6+ hours in a single day",
        tier=Tier.SILVER, category=BadgeCategory.SOCIAL,
        requirements={"session_hours": 6},
    )


class BadgeCatalog:
    """
    In-memory lookup of badge definitions.

    Lookups are case-insensitive on the id. Construct with a custom list of
    definitions in tests; the module-level catalog is used everywhere else.
    """

    def __init__(self, definitions: Optional[Iterable[BadgeDefinition]] = None):
        if definitions is None:
            definitions = default_definitions()
        self._by_id: dict[str, BadgeDefinition] = {}
        for definition in definitions:
            key = definition.id.lower()
            if key in self._by_id:
                raise ValueError(f"Duplicate badge id: {definition.id}")
            self._by_id[key] = definition
        logger.debug(f"Badge catalog loaded with {len(self._by_id)} definitions")

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, achievement_id: str) -> bool:
        return achievement_id.lower() in self._by_id

    def get(self, achievement_id: str) -> Optional[BadgeDefinition]:
        return self._by_id.get(achievement_id.lower())

    def all(self) -> list[BadgeDefinition]:
        return list(self._by_id.values())

    def all_by_category(self, category: BadgeCategory) -> list[BadgeDefinition]:
        return [d for d in self._by_id.values() if d.category == category]

    def all_by_tier(self, tier: Tier) -> list[BadgeDefinition]:
        return [d for d in self._by_id.values() if d.tier == tier]


def default_definitions() -> list[BadgeDefinition]:
    """Build the full static definition set."""
    definitions: list[BadgeDefinition] = []
    definitions.extend(_streak_badges())
    definitions.extend(_milestone_badges())
    definitions.extend(_round_badges())
    definitions.extend(_performance_badges())
    definitions.extend(_catalog_only_badges())
    return definitions


# Global catalog instance (built on first use)
_badge_catalog: Optional[BadgeCatalog] = None


def get_badge_catalog() -> BadgeCatalog:
    """Get or create the global badge catalog."""
    global _badge_catalog
    if _badge_catalog is None:
        _badge_catalog = BadgeCatalog()
    return _badge_catalog

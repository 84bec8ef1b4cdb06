"""
Achievement rule constants.

This module is the single source of truth for every threshold, tolerance and
tier cut-off used by the incremental calculators, the historical backfill and
the badge catalog. Nothing else should hard-code these numbers.
"""

from datetime import timedelta


# =============================================================================
# Kill Streaks
# =============================================================================

KILL_STREAK_THRESHOLDS: tuple[int, ...] = (5, 10, 15, 20, 25, 30, 50)

# Window added on both sides of a round when loading its snapshots
SNAPSHOT_BUFFER = timedelta(minutes=2)

# Persisted streaks this close to a candidate are the same in-round instance
STREAK_DUPLICATE_TOLERANCE = timedelta(minutes=2)


# =============================================================================
# Milestones
# =============================================================================

KILL_MILESTONES: tuple[int, ...] = (100, 500, 1000, 2500, 5000, 10000, 25000, 50000)
PLAYTIME_MILESTONE_HOURS: tuple[int, ...] = (10, 50, 100, 500, 1000)
SCORE_MILESTONES: tuple[int, ...] = (10000, 50000, 100000, 500000, 1000000)

KILL_MILESTONE_PREFIX = "total_kills_"
PLAYTIME_MILESTONE_PREFIX = "milestone_playtime_"
SCORE_MILESTONE_PREFIX = "total_score_"


# =============================================================================
# Placements
# =============================================================================

PLACEMENT_PREFIX = "round_placement_"
MAX_PLACEMENT = 3


# =============================================================================
# Team Victory
# =============================================================================

TEAM_VICTORY_ID = "team_victory"
TEAM_VICTORY_SWITCHED_ID = "team_victory_switched"

# Players must have been seen this close to round end to count as present
PRESENCE_WINDOW = timedelta(minutes=2)

MEDIAN_OBSERVATION_FLOOR = 1.0

# (minimum final score, tier) checked top-down; anything lower is bronze
VICTORY_TIER_CUTOFFS: tuple[tuple[float, str], ...] = (
    (1.2, "legend"),
    (1.0, "gold"),
    (0.7, "silver"),
)
SWITCHED_VICTORY_TIER_CUTOFFS: tuple[tuple[float, str], ...] = (
    (1.0, "gold"),
    (0.7, "silver"),
)


# =============================================================================
# Performance Badges
# =============================================================================

# (badge id, minimum metric, minimum rounds analysed), highest tier first
KPM_BADGES: tuple[tuple[str, float, int], ...] = (
    ("sharpshooter_legend", 2.5, 100),
    ("sharpshooter_gold", 2.0, 50),
    ("sharpshooter_silver", 1.5, 25),
    ("sharpshooter_bronze", 1.0, 10),
)
KPM_SAMPLE_ROUNDS = 100
KPM_MIN_ROUNDS = 10

KD_BADGES: tuple[tuple[str, float, int], ...] = (
    ("elite_warrior_legend", 5.0, 200),
    ("elite_warrior_gold", 4.0, 100),
    ("elite_warrior_silver", 3.0, 50),
    ("elite_warrior_bronze", 2.0, 25),
)
KD_SAMPLE_ROUNDS = 200
KD_MIN_ROUNDS = 25


# =============================================================================
# Historical Backfill
# =============================================================================

# Snapshot gap that starts a new reconstructed round
ROUND_GAP_SECONDS = 300

# Each monthly chunk reads this far back so straddling streaks stay whole
CHUNK_OVERLAP = timedelta(days=1)

"""
Set-oriented queries for the historical backfill.

Instead of walking rounds one by one, the backfill asks PostgreSQL for
threshold crossings over running totals and for kill-streak groups built
with window functions. Both return compact rows; achievement construction
happens in services/historical_processor.py.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import asyncpg

from constants import (
    KILL_MILESTONES,
    PLAYTIME_MILESTONE_HOURS,
    ROUND_GAP_SECONDS,
    SCORE_MILESTONES,
)
from models.achievement import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MilestoneCrossing:
    """First round in which a player's running total reached a threshold."""
    player_name: str
    kind: str  # "kills", "minutes" or "score"
    threshold: float
    cumulative: float
    achieved_at: datetime
    round_id: str
    server_guid: str
    map_name: str


@dataclass(frozen=True)
class StreakGroup:
    """An uninterrupted run of kills inside one reconstructed round."""
    player_name: str
    server_guid: str
    map_name: str
    round_id: str
    streak_kills: int
    streak_start: datetime
    streak_end: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.streak_end - self.streak_start).total_seconds()


MILESTONE_CROSSINGS_SQL = """
WITH player_rounds AS (
    SELECT s.player_name, s.round_id, s.server_guid, s.map_name, s.session_id,
           s.last_seen_time AS round_end,
           s.total_kills::double precision AS kills,
           s.total_score::double precision AS score,
           EXTRACT(EPOCH FROM (s.last_seen_time - s.start_time)) / 60.0 AS minutes
    FROM player_sessions s
    WHERE s.round_id IS NOT NULL
      AND NOT s.is_active
      AND NOT s.is_deleted
      AND s.last_seen_time < $2
),
running AS (
    SELECT pr.*,
           SUM(kills) OVER w AS cum_kills,
           SUM(score) OVER w AS cum_score,
           SUM(minutes) OVER w AS cum_minutes
    FROM player_rounds pr
    WINDOW w AS (
        PARTITION BY player_name
        ORDER BY round_end, session_id
        ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW
    )
),
totals AS (
    SELECT r.*, 'kills' AS kind, cum_kills AS cumulative, kills AS contribution FROM running r
    UNION ALL
    SELECT r.*, 'score', cum_score, score FROM running r
    UNION ALL
    SELECT r.*, 'minutes', cum_minutes, minutes FROM running r
),
thresholds AS (
    SELECT 'kills' AS kind, t::double precision AS threshold FROM unnest($3::int[]) AS t
    UNION ALL
    SELECT 'score', t::double precision FROM unnest($4::int[]) AS t
    UNION ALL
    SELECT 'minutes', t * 60.0 FROM unnest($5::int[]) AS t
)
SELECT t.player_name, t.kind, th.threshold, t.cumulative,
       t.round_end AS achieved_at, t.round_id, t.server_guid, t.map_name
FROM totals t
JOIN thresholds th ON th.kind = t.kind
WHERE t.cumulative - t.contribution < th.threshold
  AND t.cumulative >= th.threshold
  AND t.round_end >= $1
ORDER BY t.player_name, t.round_end
"""


STREAK_GROUPS_SQL = """
WITH obs AS (
    SELECT s.player_name, s.server_guid, s.map_name, s.round_id,
           o.observation_id, o.timestamp, o.kills, o.deaths
    FROM player_observations o
    JOIN player_sessions s ON s.session_id = o.session_id
    WHERE o.timestamp >= $1 AND o.timestamp < $2
      AND NOT s.is_deleted
),
marked AS (
    SELECT obs.*,
           CASE
               WHEN LAG(timestamp) OVER w IS NULL THEN 1
               WHEN EXTRACT(EPOCH FROM (timestamp - LAG(timestamp) OVER w)) > $3 THEN 1
               WHEN map_name <> LAG(map_name) OVER w THEN 1
               ELSE 0
           END AS new_round
    FROM obs
    WINDOW w AS (PARTITION BY player_name, server_guid ORDER BY timestamp, observation_id)
),
rounds AS (
    SELECT marked.*,
           SUM(new_round) OVER (
               PARTITION BY player_name, server_guid
               ORDER BY timestamp, observation_id
           ) AS round_seq
    FROM marked
),
deltas AS (
    SELECT rounds.*,
           kills - LAG(kills) OVER r AS kills_delta,
           deaths - LAG(deaths) OVER r AS deaths_delta
    FROM rounds
    WINDOW r AS (PARTITION BY player_name, server_guid, round_seq ORDER BY timestamp, observation_id)
),
steps AS (
    SELECT * FROM deltas
    WHERE kills_delta IS NOT NULL
      AND kills_delta >= 0
      AND deaths_delta >= 0
),
grouped AS (
    SELECT steps.*,
           SUM(CASE WHEN deaths_delta > 0 THEN 1 ELSE 0 END) OVER (
               PARTITION BY player_name, server_guid, round_seq
               ORDER BY timestamp, observation_id
           ) AS streak_seq
    FROM steps
)
SELECT player_name, server_guid,
       MAX(map_name) AS map_name,
       COALESCE(MAX(round_id), '') AS round_id,
       SUM(kills_delta) AS streak_kills,
       MIN(timestamp) AS streak_start,
       MAX(timestamp) AS streak_end
FROM grouped
WHERE deaths_delta = 0
GROUP BY player_name, server_guid, round_seq, streak_seq
HAVING SUM(kills_delta) >= $4
ORDER BY player_name, MIN(timestamp)
"""


class HistoryStore:
    """Bulk analytical queries over the tracker's tables."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_milestone_crossings(
        self, start: datetime, end: datetime
    ) -> list[MilestoneCrossing]:
        """
        Threshold crossings that happened in [start, end).

        Running totals are computed over every round before `end`, so a
        crossing is attributed to the right round even when earlier history
        lies outside the window.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                MILESTONE_CROSSINGS_SQL,
                start,
                end,
                list(KILL_MILESTONES),
                list(SCORE_MILESTONES),
                list(PLAYTIME_MILESTONE_HOURS),
            )
        crossings = [
            MilestoneCrossing(
                player_name=row["player_name"],
                kind=row["kind"],
                threshold=float(row["threshold"]),
                cumulative=float(row["cumulative"]),
                achieved_at=as_utc(row["achieved_at"]),
                round_id=row["round_id"] or "",
                server_guid=row["server_guid"] or "",
                map_name=row["map_name"] or "",
            )
            for row in rows
        ]
        logger.info(f"Found {len(crossings)} milestone crossings between {start.date()} and {end.date()}")
        return crossings

    async def get_streak_groups(
        self,
        start: datetime,
        end: datetime,
        min_streak: int,
        gap_seconds: Optional[int] = None,
    ) -> list[StreakGroup]:
        """
        Kill streaks of at least `min_streak` kills from observations in [start, end).

        Rounds are reconstructed from the observation stream: a gap longer
        than `gap_seconds` or a map change starts a new round.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                STREAK_GROUPS_SQL,
                start,
                end,
                gap_seconds if gap_seconds is not None else ROUND_GAP_SECONDS,
                min_streak,
            )
        return [
            StreakGroup(
                player_name=row["player_name"],
                server_guid=row["server_guid"],
                map_name=row["map_name"] or "",
                round_id=row["round_id"],
                streak_kills=int(row["streak_kills"]),
                streak_start=as_utc(row["streak_start"]),
                streak_end=as_utc(row["streak_end"]),
            )
            for row in rows
        ]

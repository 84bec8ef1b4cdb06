"""
Read-only access to tracked match data.

Rounds, player sessions, per-session observations and the monthly player
rollup are written by the stats tracker; this store only queries them.
SCHEMA_SQL describes the tables this module relies on and is used to create
them for local development and integration testing.

Implements the RoundSource, SnapshotSource and RollupSource capabilities.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

import asyncpg

from constants import SNAPSHOT_BUFFER
from models.rounds import (
    PlayerRound,
    PlayerTotals,
    RoundResult,
    SessionResult,
    SessionTeamStats,
    Snapshot,
)
from models.achievement import as_utc

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS servers (
    guid VARCHAR(64) PRIMARY KEY,
    name TEXT NOT NULL DEFAULT '',
    game VARCHAR(32) NOT NULL DEFAULT 'bf1942'
);

CREATE TABLE IF NOT EXISTS players (
    name TEXT PRIMARY KEY,
    ai_bot BOOLEAN NOT NULL DEFAULT FALSE,
    first_seen TIMESTAMPTZ DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS rounds (
    round_id VARCHAR(64) PRIMARY KEY,
    server_guid VARCHAR(64) NOT NULL REFERENCES servers(guid),
    map_name TEXT NOT NULL DEFAULT '',
    start_time TIMESTAMPTZ NOT NULL,
    end_time TIMESTAMPTZ,
    is_active BOOLEAN NOT NULL DEFAULT FALSE,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    tickets1 INT,
    tickets2 INT,
    team1_label TEXT,
    team2_label TEXT,
    participant_count INT NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS player_sessions (
    session_id BIGSERIAL PRIMARY KEY,
    player_name TEXT NOT NULL REFERENCES players(name),
    server_guid VARCHAR(64) NOT NULL REFERENCES servers(guid),
    map_name TEXT NOT NULL DEFAULT '',
    round_id VARCHAR(64) REFERENCES rounds(round_id),
    game_id VARCHAR(32) NOT NULL DEFAULT 'bf1942',
    start_time TIMESTAMPTZ NOT NULL,
    last_seen_time TIMESTAMPTZ NOT NULL,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    is_deleted BOOLEAN NOT NULL DEFAULT FALSE,
    total_kills INT NOT NULL DEFAULT 0,
    total_deaths INT NOT NULL DEFAULT 0,
    total_score INT NOT NULL DEFAULT 0,
    current_team_label TEXT
);

CREATE TABLE IF NOT EXISTS player_observations (
    observation_id BIGSERIAL PRIMARY KEY,
    session_id BIGINT NOT NULL REFERENCES player_sessions(session_id),
    timestamp TIMESTAMPTZ NOT NULL,
    score INT NOT NULL DEFAULT 0,
    kills INT NOT NULL DEFAULT 0,
    deaths INT NOT NULL DEFAULT 0,
    ping INT NOT NULL DEFAULT 0,
    team INT,
    team_label TEXT
);

CREATE TABLE IF NOT EXISTS player_stats_monthly (
    player_name TEXT NOT NULL,
    year INT NOT NULL,
    month INT NOT NULL,
    total_rounds INT NOT NULL DEFAULT 0,
    total_kills BIGINT NOT NULL DEFAULT 0,
    total_deaths BIGINT NOT NULL DEFAULT 0,
    total_score BIGINT NOT NULL DEFAULT 0,
    total_play_time_minutes DOUBLE PRECISION NOT NULL DEFAULT 0,
    first_round_time TIMESTAMPTZ,
    last_round_time TIMESTAMPTZ,
    PRIMARY KEY (player_name, year, month)
);

CREATE INDEX IF NOT EXISTS idx_rounds_end ON rounds(end_time) WHERE NOT is_deleted;
CREATE INDEX IF NOT EXISTS idx_sessions_round ON player_sessions(round_id);
CREATE INDEX IF NOT EXISTS idx_sessions_last_seen ON player_sessions(last_seen_time);
CREATE INDEX IF NOT EXISTS idx_sessions_player ON player_sessions(player_name, server_guid, map_name);
CREATE INDEX IF NOT EXISTS idx_observations_session_time ON player_observations(session_id, timestamp);
"""

# Shared projection for PlayerRound rows
_PLAYER_ROUND_COLUMNS = """
    s.player_name, s.round_id, s.server_guid, s.map_name, s.game_id,
    s.start_time, s.last_seen_time,
    s.total_kills, s.total_deaths, s.total_score,
    EXTRACT(EPOCH FROM (s.last_seen_time - s.start_time)) / 60.0 AS play_time_minutes,
    COALESCE(s.current_team_label, '') AS team_label,
    COALESCE(p.ai_bot, FALSE) AS is_bot
"""

_ROUND_COLUMNS = """
    r.round_id, r.server_guid, r.map_name, r.start_time, r.end_time,
    r.tickets1, r.tickets2, r.team1_label, r.team2_label,
    r.participant_count, r.is_active, COALESCE(sv.name, '') AS server_name
"""


class TrackingStore:
    """
    Query layer over the tracker's tables.

    Uses asyncpg for async database access; the pool is shared with the
    achievement store.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def initialize_schema(self) -> None:
        """Create tracking tables if they don't exist (development only)."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Tracking schema initialized")

    # -------------------------------------------------------------------------
    # Player Rounds
    # -------------------------------------------------------------------------

    async def get_player_rounds_since(self, since: datetime) -> list[PlayerRound]:
        """
        Closed player sessions with a round that ended at or after `since`.

        Args:
            since: Lower bound on the session's last_seen_time.

        Returns:
            PlayerRounds ordered by end time.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_PLAYER_ROUND_COLUMNS}
                FROM player_sessions s
                LEFT JOIN players p ON p.name = s.player_name
                WHERE s.last_seen_time >= $1
                  AND s.round_id IS NOT NULL
                  AND NOT s.is_active
                  AND NOT s.is_deleted
                  AND s.total_kills >= 0
                ORDER BY s.last_seen_time, s.session_id
                """,
                since,
            )
        rounds = [PlayerRound.from_row(row) for row in rows]
        logger.info(f"Found {len(rounds)} player rounds since {since.isoformat()}")
        return rounds

    async def get_player_rounds_for_round(self, round_id: str) -> list[PlayerRound]:
        """All non-deleted player sessions of one round."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_PLAYER_ROUND_COLUMNS}
                FROM player_sessions s
                LEFT JOIN players p ON p.name = s.player_name
                WHERE s.round_id = $1 AND NOT s.is_deleted
                ORDER BY s.player_name
                """,
                round_id,
            )
        return [PlayerRound.from_row(row) for row in rows]

    async def get_recent_rounds(
        self, player_name: str, before: datetime, limit: int
    ) -> list[PlayerRound]:
        """A player's most recent closed rounds ending at or before `before`."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_PLAYER_ROUND_COLUMNS}
                FROM player_sessions s
                LEFT JOIN players p ON p.name = s.player_name
                WHERE s.player_name = $1
                  AND s.last_seen_time <= $2
                  AND s.round_id IS NOT NULL
                  AND NOT s.is_active
                  AND NOT s.is_deleted
                ORDER BY s.last_seen_time DESC
                LIMIT $3
                """,
                player_name,
                before,
                limit,
            )
        return [PlayerRound.from_row(row) for row in rows]

    # -------------------------------------------------------------------------
    # Rounds
    # -------------------------------------------------------------------------

    async def get_completed_rounds(
        self,
        since: datetime,
        limit: int,
        offset: int = 0,
        decisive_only: bool = False,
    ) -> list[RoundResult]:
        """
        One page of rounds with end_time >= since, ordered by end_time.

        Args:
            since: Lower bound on end_time.
            limit: Page size.
            offset: Rows to skip.
            decisive_only: Only closed rounds with both ticket counts set
                and different.
        """
        decisive = ""
        if decisive_only:
            decisive = """
                  AND NOT r.is_active
                  AND r.tickets1 IS NOT NULL
                  AND r.tickets2 IS NOT NULL
                  AND r.tickets1 <> r.tickets2
            """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_ROUND_COLUMNS}
                FROM rounds r
                LEFT JOIN servers sv ON sv.guid = r.server_guid
                WHERE r.end_time IS NOT NULL
                  AND r.end_time >= $1
                  AND NOT r.is_deleted
                  {decisive}
                ORDER BY r.end_time, r.round_id
                LIMIT $2 OFFSET $3
                """,
                since,
                limit,
                offset,
            )
        return [RoundResult.from_row(row) for row in rows]

    async def get_round(self, round_id: str) -> Optional[RoundResult]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_ROUND_COLUMNS}
                FROM rounds r
                LEFT JOIN servers sv ON sv.guid = r.server_guid
                WHERE r.round_id = $1 AND NOT r.is_deleted
                """,
                round_id,
            )
        return RoundResult.from_row(row) if row else None

    async def get_top_sessions(
        self, round_ids: list[str], limit: int = 3
    ) -> dict[str, list[SessionResult]]:
        """
        Top sessions of each round by score, kills, then session id.

        Ranking and the final-team lookup are done in one query for the whole
        batch of rounds.
        """
        if not round_ids:
            return {}

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                WITH ranked AS (
                    SELECT s.session_id, s.player_name, s.round_id,
                           s.total_score, s.total_kills, s.total_deaths,
                           s.last_seen_time,
                           ROW_NUMBER() OVER (
                               PARTITION BY s.round_id
                               ORDER BY s.total_score DESC, s.total_kills DESC, s.session_id ASC
                           ) AS placement
                    FROM player_sessions s
                    JOIN players p ON p.name = s.player_name
                    WHERE s.round_id = ANY($1::text[])
                      AND NOT s.is_deleted
                      AND NOT p.ai_bot
                )
                SELECT ranked.*, last_obs.team, last_obs.team_label, FALSE AS is_bot
                FROM ranked
                LEFT JOIN LATERAL (
                    SELECT o.team, o.team_label
                    FROM player_observations o
                    WHERE o.session_id = ranked.session_id
                    ORDER BY o.timestamp DESC, o.observation_id DESC
                    LIMIT 1
                ) last_obs ON TRUE
                WHERE ranked.placement <= $2
                ORDER BY ranked.round_id, ranked.placement
                """,
                round_ids,
                limit,
            )

        result: dict[str, list[SessionResult]] = {}
        for row in rows:
            result.setdefault(row["round_id"], []).append(SessionResult.from_row(row))
        return result

    async def get_session_team_stats(
        self, round_ids: list[str]
    ) -> dict[str, list[SessionTeamStats]]:
        """Observation counts per team for every non-bot session of the rounds."""
        if not round_ids:
            return {}

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT s.session_id, s.player_name, s.round_id, s.last_seen_time,
                       s.total_score, s.total_kills, s.total_deaths,
                       COUNT(o.observation_id) AS total_observations,
                       COUNT(o.observation_id) FILTER (WHERE o.team = 1) AS team1_observations,
                       COUNT(o.observation_id) FILTER (WHERE o.team = 2) AS team2_observations,
                       MAX(o.timestamp) AS last_observation_time,
                       (ARRAY_AGG(o.team ORDER BY o.timestamp DESC, o.observation_id DESC)
                           FILTER (WHERE o.observation_id IS NOT NULL))[1] AS final_team,
                       (ARRAY_AGG(o.team_label ORDER BY o.timestamp DESC, o.observation_id DESC)
                           FILTER (WHERE o.observation_id IS NOT NULL))[1] AS final_team_label
                FROM player_sessions s
                JOIN players p ON p.name = s.player_name
                LEFT JOIN player_observations o ON o.session_id = s.session_id
                WHERE s.round_id = ANY($1::text[])
                  AND NOT s.is_deleted
                  AND NOT p.ai_bot
                GROUP BY s.session_id
                ORDER BY s.round_id, s.session_id
                """,
                round_ids,
            )

        result: dict[str, list[SessionTeamStats]] = {}
        for row in rows:
            result.setdefault(row["round_id"], []).append(SessionTeamStats.from_row(row))
        return result

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def get_round_snapshots(self, player_round: PlayerRound) -> list[Snapshot]:
        """
        Observations of a player on the round's server and map.

        The window is padded by SNAPSHOT_BUFFER on both sides of the round.
        Rows are ordered by timestamp, ties by insertion order.
        """
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT o.timestamp, o.kills, o.deaths, o.score,
                       COALESCE(o.team, 0) AS team, COALESCE(o.team_label, '') AS team_label
                FROM player_observations o
                JOIN player_sessions s ON s.session_id = o.session_id
                WHERE s.player_name = $1
                  AND s.server_guid = $2
                  AND s.map_name = $3
                  AND NOT s.is_deleted
                  AND o.timestamp BETWEEN $4 AND $5
                ORDER BY o.timestamp, o.observation_id
                """,
                player_round.player_name,
                player_round.server_guid,
                player_round.map_name,
                player_round.round_start_time - SNAPSHOT_BUFFER,
                player_round.round_end_time + SNAPSHOT_BUFFER,
            )
        return [
            Snapshot(
                timestamp=as_utc(row["timestamp"]),
                kills=row["kills"],
                deaths=row["deaths"],
                score=row["score"],
                team=row["team"],
                team_label=row["team_label"],
            )
            for row in rows
        ]

    # -------------------------------------------------------------------------
    # Rollups
    # -------------------------------------------------------------------------

    async def get_totals_before(self, player_name: str, before: datetime) -> PlayerTotals:
        """Career totals from monthly rollups whose last round precedes `before`."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT COALESCE(SUM(total_kills), 0) AS kills,
                       COALESCE(SUM(total_score), 0) AS score,
                       COALESCE(SUM(total_play_time_minutes), 0) AS minutes
                FROM player_stats_monthly
                WHERE player_name = $1 AND last_round_time < $2
                """,
                player_name,
                before,
            )
        return PlayerTotals(
            kills=int(row["kills"]),
            score=int(row["score"]),
            play_time_minutes=float(row["minutes"]),
        )

    async def get_current_totals(self, player_names: Iterable[str]) -> dict[str, PlayerTotals]:
        """Career totals for each player; players without rollups get zeros."""
        names = list(player_names)
        if not names:
            return {}

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT player_name,
                       SUM(total_kills) AS kills,
                       SUM(total_score) AS score,
                       SUM(total_play_time_minutes) AS minutes
                FROM player_stats_monthly
                WHERE player_name = ANY($1::text[])
                GROUP BY player_name
                """,
                names,
            )

        totals = {name: PlayerTotals() for name in names}
        for row in rows:
            totals[row["player_name"]] = PlayerTotals(
                kills=int(row["kills"] or 0),
                score=int(row["score"] or 0),
                play_time_minutes=float(row["minutes"] or 0),
            )
        return totals

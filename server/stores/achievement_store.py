"""
PostgreSQL-backed achievement store.

Achievements are insert-only. Uniqueness is enforced by two unique indexes
that mirror Achievement.identity:
- repeatable types (kill streaks, placements, team victories) on
  (player_name, achievement_id, achieved_at)
- one-off types (milestones, badges) on (player_name, achievement_id)

Inserts use ON CONFLICT DO NOTHING, so re-running a cycle is always safe.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

import asyncpg

from models.achievement import Achievement, AchievementType, WatermarkFamily, as_utc

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS player_achievements (
    id BIGSERIAL PRIMARY KEY,
    player_name TEXT NOT NULL,
    achievement_type VARCHAR(32) NOT NULL,
    achievement_id VARCHAR(64) NOT NULL,
    achievement_name TEXT NOT NULL,
    tier VARCHAR(16) NOT NULL,
    value BIGINT NOT NULL DEFAULT 0,
    achieved_at TIMESTAMPTZ NOT NULL,
    processed_at TIMESTAMPTZ NOT NULL,
    server_guid VARCHAR(64) NOT NULL DEFAULT '',
    map_name TEXT NOT NULL DEFAULT '',
    round_id VARCHAR(64) NOT NULL DEFAULT '',
    metadata JSONB NOT NULL DEFAULT '{}',
    game VARCHAR(32) NOT NULL DEFAULT 'bf1942',
    version TIMESTAMPTZ NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_achievements_occurrence
    ON player_achievements(player_name, achievement_id, achieved_at);
CREATE UNIQUE INDEX IF NOT EXISTS uq_achievements_once
    ON player_achievements(player_name, achievement_id)
    WHERE achievement_type IN ('milestone', 'badge');

CREATE INDEX IF NOT EXISTS idx_achievements_player_type
    ON player_achievements(player_name, achievement_type);
CREATE INDEX IF NOT EXISTS idx_achievements_type_processed
    ON player_achievements(achievement_type, processed_at);
CREATE INDEX IF NOT EXISTS idx_achievements_round
    ON player_achievements(round_id) WHERE round_id <> '';
"""

INSERT_SQL = """
INSERT INTO player_achievements (
    player_name, achievement_type, achievement_id, achievement_name, tier,
    value, achieved_at, processed_at, server_guid, map_name, round_id,
    metadata, game, version
)
SELECT p, t, i, n, tr, v, a, pr, s, m, r, md::jsonb, g, ver
FROM unnest(
    $1::text[], $2::text[], $3::text[], $4::text[], $5::text[],
    $6::bigint[], $7::timestamptz[], $8::timestamptz[], $9::text[], $10::text[], $11::text[],
    $12::text[], $13::text[], $14::timestamptz[]
) AS x(p, t, i, n, tr, v, a, pr, s, m, r, md, g, ver)
ON CONFLICT DO NOTHING
"""


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg command status such as 'INSERT 0 5'."""
    try:
        return int(status.split()[-1])
    except (IndexError, ValueError):
        return 0


class PostgresAchievementStore:
    """
    PostgreSQL-backed achievement store.

    Shares the application's asyncpg pool with the tracking stores.
    """

    def __init__(self, pool: asyncpg.Pool, batch_size: int = 10000):
        """
        Initialize achievement store with connection pool.

        Args:
            pool: asyncpg connection pool.
            batch_size: Rows per INSERT statement.
        """
        self.pool = pool
        self.batch_size = batch_size

    async def initialize_schema(self) -> None:
        """Create the achievements table and indexes if they don't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Achievement store schema initialized")

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def insert_batch(self, achievements: list[Achievement]) -> int:
        """
        Insert achievements, ignoring any that already exist.

        All chunks run in one transaction: either the whole batch is applied
        or none of it is.

        Returns:
            Number of rows actually inserted.
        """
        if not achievements:
            return 0

        inserted = 0
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                for start in range(0, len(achievements), self.batch_size):
                    chunk = achievements[start:start + self.batch_size]
                    status = await conn.execute(INSERT_SQL, *self._columns(chunk))
                    inserted += _affected_rows(status)

        logger.info(f"Inserted {inserted} of {len(achievements)} achievements")
        return inserted

    async def delete_achievements(
        self,
        player_name: str,
        achievement_type: AchievementType,
        achievement_ids: Iterable[str],
    ) -> int:
        """Delete specific achievements of one player. Returns rows deleted."""
        ids = list(achievement_ids)
        if not ids:
            return 0

        async with self.pool.acquire() as conn:
            status = await conn.execute(
                """
                DELETE FROM player_achievements
                WHERE player_name = $1
                  AND achievement_type = $2
                  AND achievement_id = ANY($3::text[])
                """,
                player_name,
                achievement_type.value,
                ids,
            )
        return _affected_rows(status)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def existing_achievement_ids(
        self, player_name: str, achievement_type: AchievementType
    ) -> set[str]:
        """Ids a player already owns for one type (ids only, no full rows)."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT achievement_id
                FROM player_achievements
                WHERE player_name = $1 AND achievement_type = $2
                """,
                player_name,
                achievement_type.value,
            )
        return {row["achievement_id"] for row in rows}

    async def existing_ids_by_player(
        self,
        achievement_types: Iterable[AchievementType],
        player_names: Optional[Iterable[str]] = None,
    ) -> dict[str, set[str]]:
        """Owned ids grouped by player, optionally restricted to some players."""
        types = [t.value for t in achievement_types]
        names = list(player_names) if player_names is not None else None

        async with self.pool.acquire() as conn:
            if names is None:
                rows = await conn.fetch(
                    """
                    SELECT DISTINCT player_name, achievement_id
                    FROM player_achievements
                    WHERE achievement_type = ANY($1::text[])
                    """,
                    types,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT DISTINCT player_name, achievement_id
                    FROM player_achievements
                    WHERE achievement_type = ANY($1::text[])
                      AND player_name = ANY($2::text[])
                    """,
                    types,
                    names,
                )

        result: dict[str, set[str]] = {}
        for row in rows:
            result.setdefault(row["player_name"], set()).add(row["achievement_id"])
        return result

    async def existing_round_keys(
        self, achievement_type: AchievementType
    ) -> dict[str, set[tuple[str, str]]]:
        """(achievement_id, round_id) pairs per player, for repeatable types."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT DISTINCT player_name, achievement_id, round_id
                FROM player_achievements
                WHERE achievement_type = $1 AND round_id <> ''
                """,
                achievement_type.value,
            )

        result: dict[str, set[tuple[str, str]]] = {}
        for row in rows:
            result.setdefault(row["player_name"], set()).add((row["achievement_id"], row["round_id"]))
        return result

    async def get_round_achievements(
        self, player_name: str, round_id: str, achievement_type: AchievementType
    ) -> list[Achievement]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM player_achievements
                WHERE player_name = $1 AND round_id = $2 AND achievement_type = $3
                ORDER BY achieved_at
                """,
                player_name,
                round_id,
                achievement_type.value,
            )
        return [Achievement.from_row(row) for row in rows]

    async def max_processed_at(self, family: WatermarkFamily) -> Optional[datetime]:
        """Watermark: latest processed_at among rows of the family's types."""
        async with self.pool.acquire() as conn:
            value = await conn.fetchval(
                """
                SELECT MAX(processed_at) FROM player_achievements
                WHERE achievement_type = ANY($1::text[])
                """,
                [t.value for t in family.achievement_types],
            )
        return as_utc(value) if value else None

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _columns(chunk: list[Achievement]) -> list[list]:
        """Transpose achievements into the column arrays INSERT_SQL expects."""
        return [
            [a.player_name for a in chunk],
            [a.achievement_type.value for a in chunk],
            [a.achievement_id for a in chunk],
            [a.achievement_name for a in chunk],
            [a.tier.value for a in chunk],
            [int(a.value) for a in chunk],
            [a.achieved_at for a in chunk],
            [a.processed_at for a in chunk],
            [a.server_guid for a in chunk],
            [a.map_name for a in chunk],
            [a.round_id for a in chunk],
            [a.metadata_json() for a in chunk],
            [a.game for a in chunk],
            [a.version for a in chunk],
        ]

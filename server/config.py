"""
Centralized configuration for the gamification server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.POSTGRES_URL)
    print(config.processing.max_concurrent_rounds)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env file if it exists
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class ProcessingSettings:
    """Settings for the incremental and historical achievement pipelines."""
    enabled: bool = True
    interval_seconds: int = 300
    max_concurrent_rounds: int = 10
    performance_badges: bool = False
    placement_batch_size: int = 2000
    team_victory_batch_size: int = 1000
    insert_batch_size: int = 10000
    backfill_default_months: int = 6


@dataclass
class GamificationConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Database
    POSTGRES_URL: str = ""
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_COMMAND_TIMEOUT: int = 60

    # Error tracking
    SENTRY_DSN: str = ""

    # Admin endpoints are disabled when empty
    ADMIN_TOKEN: str = ""

    processing: ProcessingSettings = field(default_factory=ProcessingSettings)

    @classmethod
    def from_env(cls) -> "GamificationConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            POSTGRES_URL=get_env("POSTGRES_URL", ""),
            DB_POOL_MIN_SIZE=get_env_int("DB_POOL_MIN_SIZE", 2),
            DB_POOL_MAX_SIZE=get_env_int("DB_POOL_MAX_SIZE", 10),
            DB_COMMAND_TIMEOUT=get_env_int("DB_COMMAND_TIMEOUT", 60),
            SENTRY_DSN=get_env("SENTRY_DSN", ""),
            ADMIN_TOKEN=get_env("ADMIN_TOKEN", ""),
            processing=ProcessingSettings(
                enabled=get_env_bool("ENABLE_GAMIFICATION_PROCESSING", True),
                interval_seconds=get_env_int("GAMIFICATION_INTERVAL_SECONDS", 300),
                max_concurrent_rounds=get_env_int("GAMIFICATION_MAX_CONCURRENT_ROUNDS", 10),
                performance_badges=get_env_bool("ENABLE_PERFORMANCE_BADGES", False),
                placement_batch_size=get_env_int("PLACEMENT_BATCH_SIZE", 2000),
                team_victory_batch_size=get_env_int("TEAM_VICTORY_BATCH_SIZE", 1000),
                insert_batch_size=get_env_int("INSERT_BATCH_SIZE", 10000),
                backfill_default_months=get_env_int("BACKFILL_DEFAULT_MONTHS", 6),
            ),
        )


# Global config instance - loaded once at module import
config = GamificationConfig.from_env()


def reload_config() -> GamificationConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = GamificationConfig.from_env()
    return config

"""Tests for configuration loading and logging context."""

import asyncio
import json
import logging

from config import GamificationConfig, ProcessingSettings
from logging_config import JSONFormatter, bind_round, cycle_context, get_logger


class TestConfig:
    def test_defaults(self, monkeypatch):
        for key in (
            "ENABLE_GAMIFICATION_PROCESSING",
            "GAMIFICATION_INTERVAL_SECONDS",
            "GAMIFICATION_MAX_CONCURRENT_ROUNDS",
            "ENABLE_PERFORMANCE_BADGES",
        ):
            monkeypatch.delenv(key, raising=False)

        processing = GamificationConfig.from_env().processing

        assert processing == ProcessingSettings()
        assert processing.max_concurrent_rounds == 10
        assert processing.interval_seconds == 300
        assert processing.performance_badges is False

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("ENABLE_GAMIFICATION_PROCESSING", "false")
        monkeypatch.setenv("GAMIFICATION_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("GAMIFICATION_MAX_CONCURRENT_ROUNDS", "4")
        monkeypatch.setenv("ENABLE_PERFORMANCE_BADGES", "yes")
        monkeypatch.setenv("ADMIN_TOKEN", "secret")

        loaded = GamificationConfig.from_env()

        assert loaded.processing.enabled is False
        assert loaded.processing.interval_seconds == 60
        assert loaded.processing.max_concurrent_rounds == 4
        assert loaded.processing.performance_badges is True
        assert loaded.ADMIN_TOKEN == "secret"

    def test_invalid_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("GAMIFICATION_MAX_CONCURRENT_ROUNDS", "lots")
        assert GamificationConfig.from_env().processing.max_concurrent_rounds == 10


class TestLoggingContext:
    def _format(self, record_logger, message: str, **extra) -> dict:
        record = record_logger.makeRecord(
            record_logger.name, logging.INFO, __file__, 1, message, None, None, extra=extra
        )
        return json.loads(JSONFormatter().format(record))

    def test_cycle_id_is_attached_and_reset(self):
        base = logging.getLogger("test.cycle")
        with cycle_context("cycle-123") as cycle_id:
            inside = self._format(base, "inside")
        outside = self._format(base, "outside")

        assert cycle_id == "cycle-123"
        assert inside["cycle_id"] == "cycle-123"
        assert "cycle_id" not in outside

    def test_generated_cycle_id(self):
        with cycle_context() as cycle_id:
            assert len(cycle_id) == 32

    def test_extra_context_wins(self):
        base = logging.getLogger("test.extra")
        with cycle_context("cycle-1"):
            data = self._format(base, "msg", player_name="Alice", round_id="r-1")
        assert data["player_name"] == "Alice"
        assert data["round_id"] == "r-1"

    def test_context_logger_adds_extra(self, caplog):
        logger = get_logger("test.adapter").with_context(player_name="Bob")
        with caplog.at_level(logging.INFO, logger="test.adapter"):
            logger.info("hello")
        assert caplog.records[0].player_name == "Bob"

    def test_bind_round_sets_context(self):
        async def task():
            bind_round("r-7", "Carol")
            return self._format(logging.getLogger("test.round"), "in task")

        data = asyncio.run(task())
        outside = self._format(logging.getLogger("test.round"), "outside")

        assert data["round_id"] == "r-7"
        assert data["player_name"] == "Carol"
        assert "round_id" not in outside

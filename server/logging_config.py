"""
Structured logging configuration for the gamification server.

Provides:
- JSONFormatter for production (machine-readable logs)
- Human-readable formatter for development
- Contextual logging (cycle_id, round_id, player_name)
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

# Context variables for cycle- and round-scoped data
cycle_id_var: ContextVar[Optional[str]] = ContextVar("cycle_id", default=None)
round_id_var: ContextVar[Optional[str]] = ContextVar("round_id", default=None)
player_name_var: ContextVar[Optional[str]] = ContextVar("player_name", default=None)

CONTEXT_FIELDS = ("cycle_id", "round_id", "player_name")


def _context_values(record: logging.LogRecord) -> dict:
    """Collect context from context variables, letting record extras win."""
    values = {
        "cycle_id": cycle_id_var.get(),
        "round_id": round_id_var.get(),
        "player_name": player_name_var.get(),
    }
    for name in CONTEXT_FIELDS:
        extra = getattr(record, name, None)
        if extra:
            values[name] = extra
    return {k: v for k, v in values.items() if v}


class JSONFormatter(logging.Formatter):
    """
    Format logs as JSON for production log aggregation.

    Output format is compatible with common log aggregation systems
    (ELK, CloudWatch, Datadog, etc.).
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_data.update(_context_values(record))

        # Add source location for errors
        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Includes colors and context for easy debugging.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]

        context_parts = []
        values = _context_values(record)
        if "cycle_id" in values:
            context_parts.append(f"cycle={values['cycle_id'][:8]}")
        if "round_id" in values:
            context_parts.append(f"round={values['round_id']}")
        if "player_name" in values:
            context_parts.append(f"player={values['player_name']}")

        context = f" [{', '.join(context_parts)}]" if context_parts else ""

        output = f"{timestamp} {color}{record.levelname:8}{reset} {record.name}{context} - {record.getMessage()}"

        if record.exc_info:
            output += "\n" + self.formatException(record.exc_info)

        return output


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        environment: Environment name (production uses JSON, else human-readable).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if environment == "production":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(DevelopmentFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured: level={level}, environment={environment}")


@contextmanager
def cycle_context(cycle_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag every log record emitted inside the block with a processing cycle id.

    Usage:
        with cycle_context() as cycle_id:
            logger.info("Cycle started")
    """
    cycle_id = cycle_id or uuid.uuid4().hex
    token = cycle_id_var.set(cycle_id)
    try:
        yield cycle_id
    finally:
        cycle_id_var.reset(token)


def bind_round(round_id: Optional[str], player_name: Optional[str] = None) -> None:
    """
    Set round/player context for the current task.

    Intended to be called at the top of a per-round asyncio task; tasks run in
    a copy of the parent context, so the values do not leak into siblings.
    """
    round_id_var.set(round_id)
    player_name_var.set(player_name)


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that automatically includes context.

    Usage:
        logger = ContextLogger(logging.getLogger(__name__))
        logger.with_context(round_id="abc", player_name="Alice").info("Streak found")
    """

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def with_context(self, **kwargs) -> "ContextLogger":
        """Create a new logger with additional context."""
        return ContextLogger(self.logger, {**self.extra, **kwargs})

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (typically __name__).

    Returns:
        ContextLogger instance.
    """
    return ContextLogger(logging.getLogger(name))

# src/flowdeck/core/logging.py
"""Structured logging for flowdeck.

The dashboard owns the terminal, so log events never go to stdout/stderr.
They are rendered as key=value lines into a timestamped file under the
state directory. Without an explicit level only WARNING and above are
kept, and the file is not created until the first such event.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

DEFAULT_LEVEL = "WARNING"


def debug_log_path(state_dir: Path, now: datetime | None = None) -> Path:
    """Path of the debug log for a session started at `now`."""
    stamp = (now or datetime.now()).strftime("%Y%m%d%H%M%S")
    return state_dir / "logs" / f"flowdeck-debug-{stamp}.log"


def configure_logging(level: str | None = None, log_file: Path | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Level name (DEBUG, INFO, ...). Defaults to WARNING.
        log_file: File receiving log events; events are discarded when None.

    Raises:
        ValueError: If level is not a known level name
    """
    level_name = (level or DEFAULT_LEVEL).upper()
    numeric_level = logging.getLevelName(level_name)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    handler: logging.Handler
    if log_file is None:
        handler = logging.NullHandler()
    else:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file, delay=True, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(message)s"))

    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(
                key_order=["timestamp", "level", "logger", "event"]
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
    )


def get_logger(name: str | None = None, **initial_values: Any) -> Any:
    """Return a structlog logger, optionally pre-bound with context."""
    return structlog.get_logger(name, **initial_values)

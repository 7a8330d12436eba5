"""
Logging setup for the pipeline service.

Levels come from settings (environment / .env):
- LOG_LEVEL: root level
- LOG_FORMAT: "structured" (default) or "simple"
- LOG_LEVEL_<AREA>: override for one area of the pipeline, where AREA is
  one of PIPELINE, MEDIA, PROGRESS, METRICS, STORAGE, REPOSITORY
"""

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.config import Settings


# Settings suffix -> logger that owns the area
AREA_LOGGERS = {
    "pipeline": "app.services.pipeline",
    "media": "app.services.media",
    "progress": "app.services.progress_tracker",
    "metrics": "app.services.metrics",
    "storage": "app.services.storage",
    "repository": "app.services.repository",
}

# Libraries that log every request or query at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "aiosqlite", "sqlalchemy.engine")

# Longest prefix first
_NAME_PREFIXES = (
    ("app.services.", ""),
    ("app.api.", "api."),
    ("app.", ""),
)

SIMPLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def short_logger_name(name: str) -> str:
    """app.services.media.hls -> media.hls, app.api.routes -> api.routes."""
    for prefix, replacement in _NAME_PREFIXES:
        if name.startswith(prefix):
            return replacement + name[len(prefix):]
    return name


class StructuredFormatter(logging.Formatter):
    """
    One line per record: timestamp | level | logger | message.

    Tracebacks follow on the next lines.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%Y-%m-%d %H:%M:%S")
        line = (
            f"{timestamp} | {record.levelname:8} | "
            f"{short_logger_name(record.name):24} | {record.getMessage()}"
        )
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _parse_level(value: str | None, default: int) -> int:
    if not value:
        return default
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


def setup_logging(settings: "Settings") -> None:
    """
    Install a single stdout handler on the root logger.

    Safe to call more than once: existing root handlers are replaced.
    """
    root_level = _parse_level(settings.log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(root_level)
    if settings.log_format == "structured":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(root_level)
    root_logger.addHandler(handler)

    for area, logger_name in AREA_LOGGERS.items():
        override = getattr(settings, f"log_level_{area}", None)
        if override:
            logging.getLogger(logger_name).setLevel(_parse_level(override, root_level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

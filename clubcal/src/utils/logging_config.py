"""
Structured logging configuration for the ClubCal recurrence engine.

Provides JSON-formatted logging with file rotation for production
environments and human-readable console logging for development.

Loggers:
- services: Occurrence generation, horizon extension, pattern reconciliation
- scheduler: Background maintenance loop (cycles, tenants, retries)
- db: Session and tenant-handle management
"""

import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Dict, Optional

from clubcal.src.utils.time_utils import utc_now


LOGGER_NAMES = ("services", "scheduler", "db")

# Attributes every LogRecord has; anything else arrived through extra={...}
_STANDARD_RECORD_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs one JSON object per record.

    Each record includes timestamp, level, logger, message, module, function
    and line, plus exception text and any fields passed via extra={...}.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": utc_now().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for console output in development.

    Format: [TIMESTAMP] LEVEL - LOGGER - MESSAGE
    Example: [2026-03-02 10:30:45] INFO - clubcal.scheduler - Maintenance cycle completed
    """

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )


def _get_log_level() -> int:
    """
    Log level from CLUBCAL_LOG_LEVEL (DEBUG, INFO, WARNING, ERROR, CRITICAL).

    Defaults to INFO.
    """
    level_str = os.environ.get("CLUBCAL_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def _get_log_dir() -> Path:
    """Log directory from CLUBCAL_LOG_DIR, defaulting to ./logs."""
    log_dir = Path(os.environ.get("CLUBCAL_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _is_production() -> bool:
    """True when CLUBCAL_ENV is 'production'."""
    return os.environ.get("CLUBCAL_ENV", "development").lower() == "production"


def configure_logging() -> Dict[str, logging.Logger]:
    """
    Configure the engine's loggers.

    Behavior:
    - Production (CLUBCAL_ENV=production):
      * JSON-formatted logs to rotating files, one per logger
        (services.log, scheduler.log, db.log)
      * 10MB max size, 5 backup files
    - Development (default):
      * Human-readable console output on stdout

    Returns:
        Dictionary mapping short logger names to Logger instances

    Example:
        >>> loggers = configure_logging()
        >>> loggers["scheduler"].info("Cycle started", extra={"tenants": 3})
    """
    log_level = _get_log_level()
    is_prod = _is_production()
    log_dir = _get_log_dir() if is_prod else None

    loggers = {}
    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(f"clubcal.{logger_name}")
        logger.setLevel(log_level)
        logger.propagate = False
        logger.handlers.clear()

        if is_prod:
            handler = logging.handlers.RotatingFileHandler(
                log_dir / f"{logger_name}.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8"
            )
            handler.setFormatter(JSONFormatter())
        else:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(ConsoleFormatter())

        handler.setLevel(log_level)
        logger.addHandler(handler)
        loggers[logger_name] = logger

    return loggers


_loggers: Optional[Dict[str, logging.Logger]] = None


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger by short name.

    Args:
        name: Logger name (services, scheduler, db)

    Returns:
        Configured Logger instance

    Raises:
        ValueError: If logger name is not recognized
    """
    global _loggers

    if _loggers is None:
        _loggers = configure_logging()

    if name not in _loggers:
        raise ValueError(
            f"Unknown logger name: {name}. "
            f"Valid names: {', '.join(_loggers.keys())}"
        )

    return _loggers[name]


def init_logging() -> Dict[str, logging.Logger]:
    """(Re)configure logging; called once by the maintenance runner at startup."""
    global _loggers
    _loggers = configure_logging()
    return _loggers

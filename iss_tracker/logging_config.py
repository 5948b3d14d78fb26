"""
Logging Configuration

Centralized structured logging configuration for the tracker.
All modules should use this logger for consistent output.

Usage:
    from iss_tracker.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Position resolved", tier="propagated", latitude=12.3)
    logger.warning("TLE data is outdated", age_hours=190.2)
    logger.error("Catalog fetch failed", url=url)
"""

import logging
import os
import sys
from typing import Optional

import structlog

# Default logging format for the stdlib handlers
LOG_FORMAT = "%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    json_output: bool = False,
) -> None:
    """
    Configure logging for the entire application.

    Parameters
    ----------
    level : int
        Logging level (e.g., logging.DEBUG, logging.INFO)
    log_file : str, optional
        Path to log file. If None, logs only to the console.
    json_output : bool
        Render events as JSON lines instead of key=value console output.
    """
    handlers = [logging.StreamHandler(sys.stderr)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Parameters
    ----------
    name : str
        Name of the logger (typically __name__)

    Returns
    -------
    structlog.stdlib.BoundLogger
        Configured logger instance
    """
    return structlog.get_logger(name)


def _level_from_env() -> int:
    name = os.getenv("ISS_TRACKER_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


# Configure default logging on module import
configure_logging(level=_level_from_env(), log_file=os.getenv("ISS_TRACKER_LOG_FILE"))

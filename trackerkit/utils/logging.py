"""Logging configuration for trackerkit.

Library modules log through ``logging.getLogger(__name__)`` and never
configure handlers themselves. The CLI calls ``setup_logging()`` once, which
attaches a file handler to the ``trackerkit`` logger when enabled.

Environment Variables:
    TRACKERKIT_LOG: Set to "true" to enable logging (default: "false")
    TRACKERKIT_LOG_FILE: Path to log file (default: ~/.trackerkit.log)
    TRACKERKIT_LOG_LEVEL: Level name (default: "INFO")
"""

import logging
import os
from pathlib import Path

LOGGER_NAME = "trackerkit"
DEFAULT_LOG_FILE = Path.home() / ".trackerkit.log"

# Module-level logger instance
_logger: logging.Logger | None = None


def _log_enabled() -> bool:
    return os.environ.get("TRACKERKIT_LOG", "false").lower() == "true"


def _log_file() -> Path:
    return Path(os.environ.get("TRACKERKIT_LOG_FILE", str(DEFAULT_LOG_FILE)))


def setup_logging(force: bool = False) -> logging.Logger:
    """Configure the package logger based on environment variables.

    Writes to the configured log file when TRACKERKIT_LOG is "true".
    Otherwise a NullHandler suppresses all output.

    Args:
        force: Re-read the environment and rebuild handlers

    Returns:
        Configured logger instance
    """
    global _logger

    if _logger is not None and not force:
        return _logger

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if _log_enabled():
        log_file = _log_file()
        log_file.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.FileHandler(log_file)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(handler)
        level_name = os.environ.get("TRACKERKIT_LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, level_name, logging.INFO))
    else:
        logger.addHandler(logging.NullHandler())

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured package logger, creating it if necessary."""
    if _logger is None:
        return setup_logging()
    return _logger


def log_message(message: str) -> None:
    """Log a message at INFO level if logging is enabled."""
    get_logger().info(message)


__all__ = [
    "DEFAULT_LOG_FILE",
    "LOGGER_NAME",
    "get_logger",
    "log_message",
    "setup_logging",
]

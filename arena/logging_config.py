"""
Logging configuration for the API.
Sets up structured logging on the 'arena' logger.
"""

import logging
import sys
from datetime import datetime, timezone


class UTCFormatter(logging.Formatter):
    """Formatter that uses UTC ISO-8601 timestamps."""

    def formatTime(self, record, datefmt=None):
        ct = datetime.fromtimestamp(record.created, timezone.utc)
        if datefmt:
            return ct.strftime(datefmt)
        return ct.isoformat()


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Set up logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The configured 'arena' logger
    """
    logger = logging.getLogger("arena")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers so repeated app creation does not duplicate output
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)

    # Format: timestamp | level | module.function | message
    formatter = UTCFormatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s.%(funcName)s | %(message)s",
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Route werkzeug request logs through the same handler
    werkzeug_logger = logging.getLogger("werkzeug")
    werkzeug_logger.handlers.clear()
    werkzeug_logger.addHandler(console_handler)

    return logger


"""
Logging configuration.

Configures loguru sinks for the engine, workers and webhook server.
"""

import sys

from loguru import logger


def setup_logging(
    level: str = "INFO", log_file: str | None = "logs/affiliates.log"
) -> None:
    """
    Configure logger with stderr and rotating file sinks.

    Args:
        level: Minimum log level
        log_file: Path of rotating log file, None to disable
    """
    logger.remove()
    logger.add(sys.stderr, level=level)

    if log_file:
        logger.add(
            log_file,
            rotation="1 day",
            retention="7 days",
            level=level,
            encoding="utf-8",
        )

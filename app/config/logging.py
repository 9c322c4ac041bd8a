"""
Logging configuration.

Configures loguru sinks with rotation and retention policies.
"""

import sys

from loguru import logger

from app.config.settings import Settings, settings


def setup_logging(config: Settings = settings) -> None:
    """Configure logger with console and rotating file sinks."""
    logger.remove()
    logger.add(sys.stderr, level=config.log_level)
    logger.add(
        config.log_file,
        rotation="1 day",
        retention="30 days",
        level=config.log_level,
        encoding="utf-8",
    )

    logger.info("Package approval engine logging configured")

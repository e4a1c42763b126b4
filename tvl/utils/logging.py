"""
Logging setup.

Configures loguru sinks: stderr for the console and a rotating file.
"""

import sys

from loguru import logger

from tvl.config.settings import Settings


def setup_logging(settings: Settings) -> None:
    """Configure logger with file rotation."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)

    if settings.log_file:
        logger.add(
            settings.log_file,
            rotation="1 day",
            retention="7 days",
            level=settings.log_level,
            encoding="utf-8",
        )

    logger.info(f"Starting TVL indexer ({settings.environment})...")

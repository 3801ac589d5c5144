"""
Loguru sink configuration.
"""

import sys
from typing import Optional

from loguru import logger

from .config import Settings, get_settings

HUMAN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def setup_logging(settings: Optional[Settings] = None) -> None:
    """Configure loguru logging."""
    settings = settings or get_settings()
    logger.remove()

    if settings.log_format == "json":
        logger.add(
            sys.stderr,
            format="{message}",
            level=settings.log_level,
            serialize=True,
        )
    else:
        logger.add(
            sys.stderr,
            format=HUMAN_FORMAT,
            level=settings.log_level,
        )

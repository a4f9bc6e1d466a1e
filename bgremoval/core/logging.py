from __future__ import annotations

import sys
from loguru import logger

from bgremoval.core.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(settings: Settings) -> None:
    """stdout sink at LOG_LEVEL, plus a rotating file sink when LOG_FILE is set."""
    logger.remove()
    logger.add(
        sys.stdout,
        level=settings.log_level.upper(),
        format=LOG_FORMAT,
        colorize=settings.app_env == "development",
        backtrace=False,
        diagnose=False,
        enqueue=settings.app_env != "test",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level="DEBUG",
            rotation=settings.log_rotation,
            enqueue=True,
        )

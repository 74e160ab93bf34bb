"""Logging setup for the sonification package."""

import sys

from loguru import logger


def setup_logger(level: str = "INFO") -> None:
    """Setup colored logging with the specified level."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        + "<level>{level: <8}</level> | "
        + "<cyan>{name}</cyan> | "
        + "<level>{message}</level>",
        level=level.upper(),
        colorize=True,
    )

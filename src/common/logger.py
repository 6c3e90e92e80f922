from __future__ import annotations

import sys

from loguru import logger


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(verbose: bool = False) -> None:
    """Route loguru output to stderr so stdout stays reserved for status lines."""
    logger.remove()
    logger.add(
        sys.stderr,
        format=LOG_FORMAT,
        level="DEBUG" if verbose else "WARNING",
        colorize=None,
    )


__all__ = ["setup_logging", "logger"]

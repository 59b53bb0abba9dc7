"""Loguru sink setup for the worker process."""
from __future__ import annotations

import sys

from loguru import logger

_HUMAN_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "{message} {extra}"
)


def configure_logging(level: str = "INFO", *, json_output: bool = False) -> None:
    """Replace loguru's default sink with one that renders the bound event fields."""
    logger.remove()
    if json_output:
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(sys.stderr, level=level.upper(), format=_HUMAN_FORMAT, backtrace=False)

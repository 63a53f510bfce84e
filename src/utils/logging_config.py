"""Loguru setup shared by the command line tools."""

import os
import sys

from loguru import logger as log

LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str | None = None) -> None:
    """Replace loguru's default sink with a stderr sink at ``level``.

    Falls back to the LOG_LEVEL environment variable, then INFO.
    """
    if level is None:
        level = os.environ.get("LOG_LEVEL", "INFO")
    log.remove()
    log.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)

"""Centralized logging configuration."""

import logging
import sys

from backend.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the ``backend`` logger tree once and return it."""
    level_name = (level or settings.log_level).upper()
    resolved = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger("backend")
    logger.setLevel(resolved)

    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(resolved)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(console_handler)

    logger.debug("Logging configured with level: %s", level_name)
    return logger

"""Logging setup for the application."""

import logging

from tuition_ledger.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Attach a single stream handler to the package logger.

    Safe to call more than once; later calls only adjust the level.
    """
    level = (level or get_settings().LOG_LEVEL).upper()
    logger = logging.getLogger("tuition_ledger")
    logger.setLevel(level)

    if not any(getattr(h, "_tuition_ledger", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._tuition_ledger = True
        logger.addHandler(handler)

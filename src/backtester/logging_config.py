"""Logging setup for command-line entry points."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Reduce noise from third-party libraries
NOISY_LOGGERS = ("urllib3", "requests", "yfinance")


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging for a CLI run.

    :param level: Level name (``"DEBUG"``) or number.
    :raises ValueError: If ``level`` is not a known level name.
    """
    if isinstance(level, str):
        name = level.strip().upper()
        resolved = logging.getLevelName(name)
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt="%H:%M:%S")
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

"""
logging_setup.py
Logging configuration for the ``gymhq.*`` loggers.

Modules only call ``logging.getLogger("gymhq.<module>")``; the app entry point
calls ``configure_logging()`` once to attach a single stream handler.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_ROOT_LOGGER_NAME = "gymhq"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv("GYMHQ_LOG_LEVEL")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Accept numeric strings or standard level names (INFO/DEBUG/etc.).
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def configure_logging(level: int | str | None = None, *, stream: IO[str] = sys.stderr) -> None:
    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s %(message)s"))
    logger.setLevel(_parse_level(level))
    logger.addHandler(handler)
    # Streamlit configures the root logger too; avoid double emission.
    logger.propagate = False

    _CONFIGURED = True

"""Logging setup shared by the canvas-history CLI and library."""

import logging
import sys
from typing import TextIO

__all__ = ["LOG_FORMAT", "get_logger", "setup_logging"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

DEFAULT_LOGGER_NAME = "canvas-history"


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(
    level: int | str = logging.INFO, stream: TextIO | None = None
) -> None:
    """Configure root logging once per process.

    Later calls only adjust the level; handlers installed by an earlier
    call, or by a test harness, are left alone.

    Args:
        level: Numeric level or level name ("debug", "INFO"). Unknown
            names fall back to INFO.
        stream: Output stream, stderr by default.
    """
    root = logging.getLogger()
    resolved = _resolve_level(level)
    if root.handlers:
        root.setLevel(resolved)
        return
    logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=stream or sys.stderr)


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger for a CLI component, or the package-wide one."""
    return logging.getLogger(name or DEFAULT_LOGGER_NAME)

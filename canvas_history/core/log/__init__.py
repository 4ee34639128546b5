"""Logging micro API for canvas-history."""

from .lib import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]

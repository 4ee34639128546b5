"""Shared infrastructure for canvas-history."""

from .log import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]

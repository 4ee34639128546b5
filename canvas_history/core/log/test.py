"""Tests for the logging helpers."""

import logging
from io import StringIO

import pytest

from .lib import (
    DEFAULT_LOGGER_NAME,
    LOG_FORMAT,
    _resolve_level,
    get_logger,
    setup_logging,
)


@pytest.fixture
def bare_root():
    """Root logger with its handlers detached for the duration of a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    root.handlers.clear()
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestGetLogger:
    """Logger naming."""

    @pytest.mark.unit
    def test_named(self):
        assert get_logger("cli").name == "cli"

    @pytest.mark.unit
    def test_default_name(self):
        assert get_logger().name == DEFAULT_LOGGER_NAME


class TestSetupLogging:
    """Root logger configuration."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "level, expected",
        [
            (logging.DEBUG, logging.DEBUG),
            ("warning", logging.WARNING),
            (" Error ", logging.ERROR),
            ("not-a-level", logging.INFO),
        ],
    )
    def test_resolve_level(self, level, expected):
        assert _resolve_level(level) == expected

    @pytest.mark.unit
    def test_installs_formatted_handler(self, bare_root):
        stream = StringIO()
        setup_logging("debug", stream=stream)
        get_logger("cli").debug("opened history")

        assert bare_root.level == logging.DEBUG
        assert bare_root.handlers[0].formatter._fmt == LOG_FORMAT
        assert "cli - DEBUG - opened history" in stream.getvalue()

    @pytest.mark.unit
    def test_existing_handlers_only_change_level(self, bare_root):
        setup_logging(logging.INFO, stream=StringIO())
        handler = bare_root.handlers[0]

        setup_logging(logging.ERROR, stream=StringIO())

        assert bare_root.handlers == [handler]
        assert bare_root.level == logging.ERROR

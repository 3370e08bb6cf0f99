"""Tests for core logging module."""

import logging
from io import StringIO

import pytest

from .lib import DEFAULT_LOGGER_NAME, get_logger, parse_level, setup_logging


class TestLogging:
    """Test core logging API."""

    @pytest.mark.unit
    def test_get_logger(self) -> None:
        """Verify logger instance creation."""
        logger = get_logger("test")
        assert logger.name == "test"
        assert isinstance(logger, logging.Logger)

    @pytest.mark.unit
    def test_get_logger_default_name(self) -> None:
        """Verify default logger name."""
        assert get_logger().name == DEFAULT_LOGGER_NAME == "sentencify"

    @pytest.mark.unit
    def test_setup_logging_accepts_level_name(self) -> None:
        """Level names are accepted as well as numbers."""
        stream = StringIO()
        setup_logging(level="debug", stream=stream)
        logger = get_logger("test_setup")
        logger.debug("test message")
        # basicConfig is a no-op when logging is already configured,
        # so only the API contract is checked.
        assert logger.level == logging.NOTSET


class TestParseLevel:
    """Tests for level resolution."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("DEBUG", logging.DEBUG),
            ("warning", logging.WARNING),
            (" error ", logging.ERROR),
            (logging.CRITICAL, logging.CRITICAL),
        ],
    )
    def test_known_levels(self, value, expected) -> None:
        assert parse_level(value) == expected

    @pytest.mark.unit
    def test_unknown_name_uses_default(self) -> None:
        assert parse_level("chatty", default=logging.WARNING) == logging.WARNING

    @pytest.mark.unit
    def test_none_uses_default(self) -> None:
        assert parse_level(None) == logging.INFO

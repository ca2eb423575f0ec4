"""Tests for logging configuration."""

import logging

import pytest
import structlog

from draggynotes.config import Config
from draggynotes.logging import setup_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_renderer_by_default(self):
        """Test that production output is rendered as JSON."""
        setup_logging(Config(_env_file=None))
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert structlog.contextvars.merge_contextvars in processors

    def test_debug_uses_console(self):
        """Test that debug mode renders for humans and leaves third-party loggers alone."""
        logging.getLogger("httpx").setLevel(logging.NOTSET)
        setup_logging(Config(_env_file=None, debug=True))
        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)
        assert logging.getLogger("httpx").level == logging.NOTSET

    def test_quiet_loggers(self):
        """Test that HTTP client request lines are suppressed outside debug mode."""
        setup_logging(Config(_env_file=None, log_level="debug"))
        assert logging.getLogger("httpx").level == logging.WARNING

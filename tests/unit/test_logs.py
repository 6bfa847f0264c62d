"""
Unit tests for logging setup.
"""

import json
import logging

import json_log_formatter
import pytest

from pyrope.config import ObservabilityConfig
from pyrope.logs import NOISY_LOGGERS, setup_logging


@pytest.fixture
def root_logger():
    """Root logger restored after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    noisy = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield root
    root.handlers = handlers
    root.setLevel(level)
    for name, noisy_level in noisy.items():
        logging.getLogger(name).setLevel(noisy_level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_json_format(self, root_logger):
        """JSON format installs a formatter that keeps extra fields."""
        setup_logging(ObservabilityConfig(log_level="DEBUG", log_format="json"))

        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        formatter = root_logger.handlers[0].formatter
        assert isinstance(formatter, json_log_formatter.JSONFormatter)

        record = logging.getLogger("pyrope.test").makeRecord(
            "pyrope.test", logging.INFO, __file__, 1, "Created table", None, None,
            extra={"table": "_test_users"},
        )
        payload = json.loads(formatter.format(record))
        assert payload["message"] == "Created table"
        assert payload["table"] == "_test_users"

    def test_text_format(self, root_logger):
        """Text format uses a plain formatter."""
        setup_logging(ObservabilityConfig(log_level="warning", log_format="text"))

        formatter = root_logger.handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)
        assert root_logger.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, root_logger):
        """Unknown level names default to INFO."""
        setup_logging(ObservabilityConfig(log_level="chatty", log_format="text"))

        assert root_logger.level == logging.INFO

    def test_quiets_aws_libraries(self, root_logger):
        """AWS client libraries only log warnings."""
        setup_logging(ObservabilityConfig(log_level="DEBUG"))

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

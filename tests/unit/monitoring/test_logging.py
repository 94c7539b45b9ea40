"""
Unit tests for the logging module.
"""

import json
import logging

import pytest

from eventsync.monitoring.logging import (
    JsonFormatter,
    TextFormatter,
    setup_logging,
    with_context,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("eventsync.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestFormatters:
    """Tests for TextFormatter and JsonFormatter."""

    def test_text_includes_context(self):
        """Should render context fields in brackets."""
        line = TextFormatter().format(_record(run_id="abc", source="timeout"))
        assert "[run_id=abc source=timeout]" in line
        assert line.endswith("hello world")

    def test_text_without_context(self):
        """Should omit the bracket block without context."""
        line = TextFormatter().format(_record())
        assert "[" not in line

    def test_json_fields(self):
        """Should emit a JSON object with message and context."""
        data = json.loads(JsonFormatter().format(_record(run_id="abc")))
        assert data["msg"] == "hello world"
        assert data["level"] == "INFO"
        assert data["logger"] == "eventsync.test"
        assert data["run_id"] == "abc"


@pytest.fixture
def restore_eventsync_logger():
    """Undo setup_logging so caplog keeps working in other tests."""
    logger = logging.getLogger("eventsync")
    yield
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


class TestSetupLogging:
    """Tests for setup_logging and with_context."""

    def test_idempotent(self, restore_eventsync_logger):
        """Reconfiguring should not stack handlers."""
        setup_logging("DEBUG")
        logger = setup_logging("INFO", json_logs=True)
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
        assert logger.level == logging.INFO

    def test_with_context_injects_extra(self, caplog):
        """Context adapter should attach run_id and source to records."""
        logger = logging.getLogger("ctx-test")
        adapter = with_context(logger, run_id="r1", source="eventbrite")
        with caplog.at_level(logging.INFO, logger="ctx-test"):
            adapter.info("message")
        assert caplog.records[0].run_id == "r1"
        assert caplog.records[0].source == "eventbrite"

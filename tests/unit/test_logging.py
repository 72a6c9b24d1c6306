"""
Unit tests for structured logging: context propagation and JSON output.
"""

import json
import logging

import pytest

from src.core.logging.logger import (
    ContextFilter,
    JSONFormatter,
    LogContext,
    clear_log_context,
    get_log_context,
    set_log_context,
)


def _record(message="loaded reference", **extra):
    record = logging.LogRecord(
        name="src.modules.reference.loader",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def _clean_context():
    clear_log_context()
    yield
    clear_log_context()


class TestLogContext:
    def test_scoped_context_is_restored(self):
        with LogContext(session_id="s-1", operation="load_reference", correlation_id="abc"):
            assert get_log_context()["session_id"] == "s-1"
            assert get_log_context()["correlation_id"] == "abc"
        assert get_log_context() == {}

    def test_set_log_context_merges(self):
        set_log_context(event_type="session.authorized")
        set_log_context(reference_id="ACCOUNT:42", event_keys=["session_id"])

        context = get_log_context()
        assert context["event_type"] == "session.authorized"
        assert context["reference_id"] == "ACCOUNT:42"
        assert context["event_keys"] == ["session_id"]


class TestFormatting:
    def test_filter_stamps_context_fields(self):
        record = _record()
        with LogContext(session_id="s-1", reference_id="ACCOUNT:42", correlation_id="abc"):
            ContextFilter().filter(record)

        assert record.session_id == "s-1"
        assert record.reference_id == "ACCOUNT:42"
        assert record.correlation_id == "abc"
        assert record.component == "src"

    def test_filter_defaults_outside_context(self):
        record = _record()
        ContextFilter().filter(record)
        assert record.session_id == "N/A"
        assert record.correlation_id == "N/A"

    def test_json_formatter_separates_extra(self):
        record = _record(category="VEHICLE", reference_count=2)
        with LogContext(session_id="s-1", correlation_id="abc"):
            ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "loaded reference"
        assert data["level"] == "INFO"
        assert data["session_id"] == "s-1"
        assert "reference_id" not in data
        assert data["extra"] == {"category": "VEHICLE", "reference_count": 2}

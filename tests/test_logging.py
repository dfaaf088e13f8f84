"""Tests for structured logging configuration."""

import json
import logging
import sys
from unittest.mock import patch

from quizgen.app.core.logging import (
    ContextFilter,
    JSONFormatter,
    get_log_context,
    get_logger,
    get_logging_config,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="quizgen.test",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg="Generation rate limited",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    def test_basic_json_format(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "quizgen.test"
        assert data["message"] == "Generation rate limited"
        assert data["source"]["line"] == 1
        assert "timestamp" in data

    def test_context_fields_promoted(self):
        record = make_record(request_id="req-1", user_id="u1", event_id="evt_1")
        data = json.loads(JSONFormatter().format(record))

        assert data["request_id"] == "req-1"
        assert data["user_id"] == "u1"
        assert data["extra"] == {"event_id": "evt_1"}

    def test_exception_included(self):
        try:
            raise RuntimeError("store down")
        except RuntimeError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))
        assert any("store down" in line for line in data["exception"])


class TestContextFilter:
    def test_fills_defaults(self):
        record = make_record(user_id="u1")
        assert ContextFilter().filter(record) is True
        assert record.user_id == "u1"
        assert record.request_id is None
        assert record.client_ip is None


class TestLoggingConfig:
    def test_json_format(self):
        with patch("quizgen.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "json"
            mock_settings.log_level = "debug"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["loggers"]["quizgen"]["level"] == "DEBUG"

    def test_structured_format(self):
        with patch("quizgen.app.core.logging.settings") as mock_settings:
            mock_settings.log_format = "structured"
            mock_settings.log_level = "INFO"
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "structured"
        assert "json" not in config["formatters"]


class TestHelpers:
    def test_get_logger(self):
        assert get_logger().name == "quizgen"
        assert get_logger("quizgen.api").name == "quizgen.api"

    def test_log_context_drops_empty(self):
        assert get_log_context(request_id="r1", client_ip="1.2.3.4") == {
            "request_id": "r1",
            "client_ip": "1.2.3.4",
        }
        assert get_log_context(user_id="u1", event_id="evt") == {"user_id": "u1", "event_id": "evt"}

"""
Tests for structured logging setup
"""

import json
import logging

from asgi_correlation_id.context import correlation_id

from prompt_manager.middleware.correlation_id import add_correlation_id, get_correlation_id
from prompt_manager.services.monitoring.logging import CorrelationJsonFormatter, SERVICE_NAME


def _record(message="hello"):
    return logging.LogRecord("prompt_manager.test", logging.INFO, __file__, 1, message, None, None)


class TestCorrelationJsonFormatter:

    def test_adds_service_fields(self):
        formatter = CorrelationJsonFormatter(
            '%(asctime)s %(levelname)s %(name)s %(message)s',
            rename_fields={'levelname': 'level'}
        )

        payload = json.loads(formatter.format(_record()))

        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["service"] == SERVICE_NAME
        assert payload["correlation_id"] == "none"
        assert "environment" in payload

    def test_uses_request_correlation_id(self):
        token = correlation_id.set("req-123")
        try:
            payload = json.loads(CorrelationJsonFormatter().format(_record()))
        finally:
            correlation_id.reset(token)

        assert payload["correlation_id"] == "req-123"


class TestStructlogProcessor:

    def test_outside_request(self):
        assert get_correlation_id() == "none"
        assert add_correlation_id(None, "info", {"event": "x"})["correlation_id"] == "none"

    def test_existing_value_kept(self):
        event = add_correlation_id(None, "info", {"event": "x", "correlation_id": "given"})
        assert event["correlation_id"] == "given"

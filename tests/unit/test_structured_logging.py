"""Tests for structured logging."""
import io
import json
import logging

import pytest
import structlog

from medicitas.logging_config import (
    generate_request_id,
    get_logger,
    redact_secrets,
    setup_structured_logging,
)


@pytest.fixture
def log_stream():
    """Capture rendered log lines; restore the root logger afterwards."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    stream = io.StringIO()
    yield stream
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()


def rendered(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestStructuredLogging:
    """Test JSON rendering of log events."""

    def test_renders_one_json_object_per_event(self, log_stream):
        setup_structured_logging(log_level="INFO", stream=log_stream)

        get_logger("medicitas.resolver").info("slot_lookup_done", medico_id=1, slots=2)

        [event] = rendered(log_stream)
        assert event["event"] == "slot_lookup_done"
        assert event["level"] == "info"
        assert event["logger"] == "medicitas.resolver"
        assert event["medico_id"] == 1
        assert event["slots"] == 2
        assert "timestamp" in event

    def test_credentials_never_rendered(self, log_stream):
        setup_structured_logging(log_level="DEBUG", stream=log_stream)

        get_logger("medicitas.auth").warning(
            "login_failed", email="ana@example.com", password="medico123", Authorization="Bearer tok-abc"
        )

        [event] = rendered(log_stream)
        assert event["password"] == "***"
        assert event["Authorization"] == "***"
        assert event["email"] == "ana@example.com"
        assert "medico123" not in log_stream.getvalue()
        assert "tok-abc" not in log_stream.getvalue()

    def test_level_filters_events(self, log_stream):
        setup_structured_logging(log_level="WARNING", stream=log_stream)
        logger = get_logger("medicitas.directory")

        logger.info("doctor_list_loaded", doctors=3)
        logger.warning("doctor_list_failed", error="timeout")

        assert [event["event"] for event in rendered(log_stream)] == ["doctor_list_failed"]

    def test_bound_context_is_merged(self, log_stream):
        setup_structured_logging(log_level="INFO", stream=log_stream)

        with structlog.contextvars.bound_contextvars(request_id="req-000000000001"):
            get_logger("medicitas").info("appointment_created")

        [event] = rendered(log_stream)
        assert event["request_id"] == "req-000000000001"

    def test_unknown_level(self, log_stream):
        with pytest.raises(ValueError):
            setup_structured_logging(log_level="LOUD", stream=log_stream)

    def test_redact_processor_leaves_other_keys(self):
        event = {"event": "login", "token": "tok-abc", "email": "a@b.com"}

        redacted = redact_secrets(None, "info", event)

        assert redacted == {"event": "login", "token": "***", "email": "a@b.com"}

    def test_generate_request_id_format(self):
        request_id = generate_request_id()

        assert request_id.startswith("req-")
        assert len(request_id) == 16
        assert request_id != generate_request_id()

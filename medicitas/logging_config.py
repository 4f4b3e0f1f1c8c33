"""Structured logging for the client.

One JSON object per line. Credentials never reach the output: the
password, the bearer token and the Authorization header are masked
before rendering. Backend calls are tagged with a ``req-`` id.
"""
import logging
import sys
import uuid
from typing import Any, MutableMapping, Optional, TextIO

import structlog

from medicitas import config

SENSITIVE_KEYS = frozenset({"password", "token", "authorization"})


def redact_secrets(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credentials that end up in a log event."""
    for key in list(event_dict):
        if key.lower() in SENSITIVE_KEYS:
            event_dict[key] = "***"
    return event_dict


def setup_structured_logging(log_level: str = config.LOG_LEVEL, stream: Optional[TextIO] = None):
    """
    Route structlog and stdlib logging to ``stream`` as JSON lines.

    Calling it again replaces the previous handlers.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        stream: Destination, stdout by default

    Raises:
        ValueError: Unknown level name
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            redact_secrets,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=level,
        force=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """Short id attached to every backend call, e.g. ``req-3f9a1c0b7d2e``."""
    return f"req-{uuid.uuid4().hex[:12]}"

"""Structured logging configuration with credential redaction."""

import logging
import sys
from typing import Any, Dict

import structlog

# Substrings of event keys whose values must never reach the logs.
SENSITIVE_KEYS = (
    "password",
    "secret",
    "token",
    "authorization",
)

LOG_FORMATS = ("json", "console")


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Replace credential values with ``REDACTED``.

    Matches any key containing 'password', 'secret', 'token' or
    'authorization' (case-insensitive), which covers password hashes and the
    access, refresh, reset and verification tokens. The event name is kept.
    """
    for key in list(event_dict.keys()):
        if key == "event":
            continue
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            event_dict[key] = "REDACTED"

    return event_dict


def configure_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Configure structlog with correlation ids and redaction.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR); unknown
            values fall back to INFO
        log_format: "json" for one JSON object per line, "console" for
            human-readable local output
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger, bound to ``logger_name`` when given."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger

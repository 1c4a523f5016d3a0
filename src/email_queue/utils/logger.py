"""
Module: logger.py
Description: Structured logging configuration for the email queue processor.

Configures structlog for JSON output optimized for CloudWatch Logs.
Every module obtains its logger through get_logger() so queue item
ids, lock tokens and run ids travel as structured fields.

Key Components:
- JSON output for CloudWatch compatibility
- Timestamp and log level processors
- get_logger() helper function

Dependencies: structlog, datetime
Author: Email Queue Team
"""

import structlog
from datetime import datetime, timezone


def _add_timestamp(logger, method_name, event_dict):
    """Add ISO 8601 UTC timestamp to log entries."""
    event_dict["timestamp"] = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    return event_dict


def _add_log_level(logger, method_name, event_dict):
    """Add log level to event dictionary."""
    event_dict["level"] = method_name.upper()
    return event_dict


structlog.configure(
    processors=[
        _add_timestamp,
        _add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.WriteLoggerFactory(),
    wrapper_class=structlog.BoundLogger,
    cache_logger_on_first_use=True,
)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a configured structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Queue item claimed", item_id="eml_0a1b2c3d4e5f")
        {"event": "Queue item claimed", "item_id": "eml_0a1b2c3d4e5f", "timestamp": "...", "level": "INFO"}
    """
    return structlog.get_logger(name)

"""
Structured logging setup for the scheduling backend.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _drop_sensitive_fields,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


SENSITIVE_KEYS = {"access_token", "assertion", "private_key", "code", "session_token"}


def _drop_sensitive_fields(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credentials and verification codes if a caller logs them by accident."""
    for key in SENSITIVE_KEYS & event_dict.keys():
        event_dict[key] = "***"
    return event_dict


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_integration_call(
    provider: str,
    operation: str,
    success: bool,
    duration_ms: float,
    status_code: int | None = None,
    error: str | None = None,
) -> None:
    """Log an outbound call to Google Calendar, HubSpot or Resend with consistent fields."""
    logger = get_logger("integrations")

    log_data = {
        "provider": provider,
        "operation": operation,
        "duration_ms": round(duration_ms, 2),
        "event_type": "integration_call",
    }
    if status_code is not None:
        log_data["status_code"] = status_code
    if error:
        log_data["error"] = error

    if success:
        logger.info("Integration call completed", **log_data)
    else:
        logger.warning("Integration call failed", **log_data)


def log_request(method: str, path: str, status_code: int, duration_ms: float):
    """Log HTTP requests with consistent fields."""
    logger = get_logger("http")

    log_data = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
        "event_type": "http_request",
    }

    if status_code >= 400:
        logger.warning("HTTP request failed", **log_data)
    else:
        logger.info("HTTP request completed", **log_data)

"""
Logging infrastructure for the promotions platform.

- RequestIDFilter: structured logging with request correlation
- StructuredLogAdapter: structured context logging

Usage:
    from apps.common.logging import get_logger

    logger = get_logger(__name__, component="promotions")
    logger.info("Resolution finished", order_id="ORD-1", discounts=2)
"""

from __future__ import annotations

import logging
import threading
from typing import Any

# Thread-local storage for request context
_request_context = threading.local()

# Context attributes copied onto every log record, with their placeholders
REQUEST_CONTEXT_DEFAULTS: dict[str, Any] = {"request_id": "-", "user_id": None, "tenant_id": None}


# =============================================================================
# REQUEST CONTEXT FUNCTIONS
# =============================================================================


def set_request_context(**kwargs: Any) -> None:
    """Set request context for the current thread"""
    unknown = set(kwargs) - set(REQUEST_CONTEXT_DEFAULTS)
    if unknown:
        raise ValueError(f"Unknown request context fields: {sorted(unknown)}")
    for key, value in kwargs.items():
        setattr(_request_context, key, value)


def get_request_context() -> dict[str, Any]:
    """Get request context for the current thread"""
    return {key: getattr(_request_context, key, default) for key, default in REQUEST_CONTEXT_DEFAULTS.items()}


def clear_request_context() -> None:
    """Clear request context for the current thread"""
    for attr in REQUEST_CONTEXT_DEFAULTS:
        if hasattr(_request_context, attr):
            delattr(_request_context, attr)


# =============================================================================
# REQUEST ID FILTER - Structured Logging with Request Correlation
# =============================================================================


class RequestIDFilter(logging.Filter):
    """
    Add request ID and context to log records.

    This filter injects the request ID from thread-local storage
    into every log record, enabling request tracing across logs.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Add request context attributes to the log record"""
        for key, value in get_request_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class StructuredLogAdapter(logging.LoggerAdapter):
    """
    Log adapter that adds structured context to all log messages.

    Usage:
        logger = StructuredLogAdapter(
            logging.getLogger(__name__),
            {"component": "promotions"}
        )
        logger.info("Usage recorded", promotion_id="...")
    """

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Process log message and add structured context"""
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra or {})

        # Add any keyword arguments as extra fields
        for key, value in list(kwargs.items()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = value
                del kwargs[key]

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str, **context: Any) -> StructuredLogAdapter:
    """
    Get a structured logger with context.

    Args:
        name: Logger name (usually __name__)
        **context: Additional context to include in all log messages
    """
    return StructuredLogAdapter(logging.getLogger(name), context)

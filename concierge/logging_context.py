"""Correlation ID logging context for tracing a service request across modules.

Provides a request_id-aware logger that attaches the active service
request's id to every log message, so a single request's journey through
research, calling and booking can be followed in interleaved logs.

Usage:
    from concierge.logging_context import get_request_logger, set_request_id

    set_request_id("6f1c...")
    logger = get_request_logger(__name__)
    logger.info("Dispatching call")  # record.request_id == "6f1c..."
"""

import logging
from contextvars import ContextVar, Token

_request_id: ContextVar[str] = ContextVar("request_id", default="NO_REQUEST_ID")


def set_request_id(request_id: str) -> Token:
    """Set the correlation ID for the current async context."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    """Restore the correlation ID that was active before ``set_request_id``."""
    _request_id.reset(token)


def get_request_id() -> str:
    """Retrieve the current correlation ID."""
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Injects request_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()  # type: ignore[attr-defined]
        return True


def get_request_logger(name: str) -> logging.Logger:
    """Return a logger with the RequestIdFilter attached.

    The filter adds ``request_id`` to each record so formatters can
    include ``%(request_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, RequestIdFilter) for f in logger.filters):
        logger.addFilter(RequestIdFilter())
    return logger

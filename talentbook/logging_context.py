"""Request correlation logging context.

Provides a request_id-aware logger that attaches a correlation ID to
every log message, so a single booking action can be traced through
selection, lifecycle and notification code.

Usage:
    from talentbook.logging_context import get_request_logger, request_context, set_request_id

    set_request_id("REQ-abc123")
    logger = get_request_logger(__name__)
    logger.info("Accepting booking")  # record.request_id == "REQ-abc123"

    with request_context("BK-42"):
        logger.info("Scoped")  # record.request_id == "BK-42"
"""

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_request_id: ContextVar[str] = ContextVar("request_id", default="NO_REQUEST_ID")


def set_request_id(request_id: str) -> None:
    """Set the correlation ID for the current context."""
    _request_id.set(request_id)


def get_request_id() -> str:
    """Retrieve the current correlation ID."""
    return _request_id.get()


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Scope a correlation ID to a block, restoring the previous one after."""
    token = _request_id.set(request_id)
    try:
        yield request_id
    finally:
        _request_id.reset(token)


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


def attach_request_id_filter(logger: logging.Logger) -> None:
    """Add the filter to each of ``logger``'s handlers.

    Records propagated from loggers without the filter still get a
    ``request_id`` before a handler formats them.
    """
    for handler in logger.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())

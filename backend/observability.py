# backend/observability.py
"""
Logging setup and per-request correlation ids.

Every record passes through CorrelationIdFilter, which stamps it with the
id of the request being served (X-Correlation-ID header, or a fresh uuid4),
so lines from concurrent requests can be told apart.
"""

import logging
from contextvars import ContextVar
from uuid import uuid4

CORRELATION_HEADER = "X-Correlation-ID"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(correlation_id)s] %(name)s: %(message)s"

_correlation_id = ContextVar("correlation_id", default="-")


class CorrelationIdFilter(logging.Filter):
    def filter(self, record):
        record.correlation_id = _correlation_id.get()
        return True


def configure_logging(level="INFO"):
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(CorrelationIdFilter())
    logging.basicConfig(
        level=getattr(logging, (level or "INFO").upper(), logging.INFO),
        handlers=[handler],
        force=True,
    )


def get_correlation_id():
    return _correlation_id.get()


def bind_request_context(correlation_id=None):
    """Start the log context for one request and return its id."""
    correlation_id = correlation_id or str(uuid4())
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_request_context():
    _correlation_id.set("-")

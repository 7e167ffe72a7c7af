"""
Request-scoped correlation context.

Uses Python contextvars for the request id. The dispatcher binds the id of each
JSON-RPC request before running its handler; the upstream client and the log
filter read it back. Every asyncio task gets its own copy of the context, so
concurrent HTTP requests never see each other's id.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from enum import StrEnum

# Request-scoped id storage
_current_request_id: ContextVar[str] = ContextVar("current_request_id", default="")


class Transport(StrEnum):
    """Transport a request arrived on."""

    STDIO = "stdio"
    HTTP = "http"


@dataclass(frozen=True)
class RequestContext:
    """Correlation information for one dispatched request."""

    request_id: str
    method: str
    transport: Transport


def get_request_id() -> str:
    """Return the request id bound to the current context, or an empty string."""
    return _current_request_id.get()


@contextmanager
def request_scope(context: RequestContext) -> Iterator[RequestContext]:
    """Bind the request id for the duration of the block."""
    token = _current_request_id.set(context.request_id)
    try:
        yield context
    finally:
        _current_request_id.reset(token)


class RequestIdFilter(logging.Filter):
    """Attach the current request id to every log record as ``request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D102
        record.request_id = get_request_id() or "-"
        return True

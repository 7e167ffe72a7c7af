"""
Domain error taxonomy for tool execution.

Tool failures are reported inside a successful JSON-RPC response (``isError``),
never as protocol errors. This module defines the exceptions raised below the
tool layer and classifies any of them into one of a small fixed set of codes.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

ErrorCode = Literal[
    "invalid_input",   # Bad or missing tool arguments
    "unauthorized",    # 401/403 from upstream
    "not_found",       # 404 from upstream
    "rate_limited",    # 429 from upstream
    "upstream_error",  # Everything else: 5xx, decode failures, network errors
]


class InvalidInputError(Exception):
    """Raised when tool arguments are missing or malformed."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UpstreamError(Exception):
    """
    Raised for a non-successful or undecodable upstream response.

    Carries the HTTP status, the API endpoint (path only, never the full URL with
    credentials) and the upstream request id when the response supplied one.
    """

    def __init__(
        self,
        status_code: int,
        endpoint: str,
        request_id: str = "",
        message: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        self.request_id = request_id
        super().__init__(message or f"upstream returned status {status_code}")


@dataclass
class ToolError:
    """Classified tool failure."""

    code: ErrorCode
    message: str
    details: dict[str, Any] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for ``structuredContent`` / JSON-RPC error data."""
        data: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            data["details"] = self.details
        return data


_STATUS_CODES: dict[int, ErrorCode] = {
    401: "unauthorized",
    403: "unauthorized",
    404: "not_found",
    429: "rate_limited",
}


def classify_error(exc: BaseException) -> ToolError:
    """
    Map an exception raised during tool execution to the error taxonomy.

    Args:
        exc: The exception raised by argument decoding or the upstream client.

    Returns:
        ToolError with code, message and, for upstream errors, HTTP details.
    """
    if isinstance(exc, InvalidInputError):
        return ToolError("invalid_input", str(exc))

    if isinstance(exc, UpstreamError):
        return ToolError(
            _STATUS_CODES.get(exc.status_code, "upstream_error"),
            str(exc),
            details={
                "http_status": exc.status_code,
                "endpoint": exc.endpoint,
                "request_id": exc.request_id,
            },
        )

    if isinstance(exc, httpx.TimeoutException | TimeoutError):
        return ToolError("upstream_error", "Upstream request timed out")

    if isinstance(exc, httpx.RequestError):
        return ToolError("upstream_error", f"API unavailable: {type(exc).__name__}")

    return ToolError("upstream_error", str(exc) or type(exc).__name__)

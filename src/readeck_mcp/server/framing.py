"""
Message framing for the stdio and HTTP transports.

On stdio every JSON-RPC message is preceded by a ``Content-Length`` header
block terminated by a blank line. Over HTTP a message is one POST body.
"""

import asyncio
import json
from typing import Any, BinaryIO

from mcp import types

MAX_HTTP_BODY_SIZE = 1 << 20  # 1 MiB

_HEADER_CONTENT_LENGTH = "content-length"
_ACCEPTABLE_MEDIA_TYPES = frozenset({"*/*", "application/json", "text/event-stream"})


class FramingError(Exception):
    """Raised for a malformed or truncated frame; the connection cannot continue."""


class BodyError(Exception):
    """Raised when an HTTP body cannot be turned into a single JSON-RPC message."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        super().__init__(message)


async def read_frame(reader: asyncio.StreamReader) -> bytes | None:
    """
    Read one framed payload.

    Header lines may end in CRLF or LF; only ``Content-Length`` is
    recognized (case-insensitively) and other headers are ignored.

    Returns:
        The payload bytes, or None on a clean EOF before any header byte.

    Raises:
        FramingError: On a missing, non-numeric or negative length, EOF inside
            the headers, or a truncated payload.
    """
    length: int | None = None
    seen_header = False

    while True:
        line = await reader.readline()
        if not line:
            if not seen_header:
                return None
            raise FramingError("unexpected EOF while reading headers")
        if not line.endswith(b"\n"):
            raise FramingError("unexpected EOF while reading headers")
        seen_header = True

        stripped = line.strip()
        if not stripped:
            break
        key, sep, value = stripped.partition(b":")
        if not sep:
            continue
        if key.decode("ascii", errors="replace").strip().lower() != _HEADER_CONTENT_LENGTH:
            continue
        raw = value.strip().decode("ascii", errors="replace")
        if not raw.isdigit():
            raise FramingError(f"invalid Content-Length header: {raw!r}")
        length = int(raw)

    if length is None:
        raise FramingError("missing Content-Length header")

    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"unexpected EOF while reading payload ({len(e.partial)} of {length} bytes)",
        ) from None


def encode_frame(payload: bytes) -> bytes:
    """Prefix a payload with its ``Content-Length`` header block."""
    return f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii") + payload


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize a JSON-RPC message compactly as UTF-8."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class FrameWriter:
    """
    Writes framed messages to a binary stream.

    Writes are serialized with an ``asyncio.Lock`` so frames from concurrent
    tasks never interleave; the stream is flushed after each frame.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream
        self._lock = asyncio.Lock()

    async def write(self, message: dict[str, Any]) -> None:
        frame = encode_frame(encode_message(message))
        async with self._lock:
            self._stream.write(frame)
            self._stream.flush()


def decode_http_body(body: bytes) -> Any:
    """
    Decode an HTTP request body into one JSON-RPC message.

    Raises:
        BodyError: PARSE_ERROR for an empty or non-JSON body, INVALID_REQUEST
            for a batch (JSON array).
    """
    stripped = body.strip()
    if not stripped:
        raise BodyError(types.PARSE_ERROR, "parse error")
    if stripped.startswith(b"["):
        raise BodyError(types.INVALID_REQUEST, "batch requests are not supported")
    try:
        return json.loads(stripped)
    except ValueError:
        raise BodyError(types.PARSE_ERROR, "parse error") from None


def accepts_rpc_response(accept: str | None) -> bool:
    """Whether an ``Accept`` header admits a JSON response."""
    accept = (accept or "").strip()
    if not accept:
        return True
    for part in accept.split(","):
        media_type = part.split(";", 1)[0].strip().lower()
        if media_type in _ACCEPTABLE_MEDIA_TYPES:
            return True
    return False

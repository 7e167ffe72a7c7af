"""
Bookmark resources under the ``readeck://`` URI scheme.

``readeck://bookmark/{id}`` is the metadata document; suffixes select the
article body (``content.md``, ``content.txt``) or its highlights
(``highlights.json``, ``highlights.md``).
"""

import json
import logging
from dataclasses import dataclass
from urllib.parse import urlsplit

import httpx
from mcp import types
from mcp.shared.exceptions import McpError

from ..readeck.api_client import ReadeckClient
from ..readeck.schemas import Bookmark, IncludeOptions
from ..shared.api_errors import InvalidInputError, UpstreamError, classify_error
from ..shared.render import bookmark_content_markdown, bookmark_content_text, highlights_markdown

logger = logging.getLogger(__name__)

URI_SCHEME = "readeck"
URI_HOST = "bookmark"
SERVER_ERROR = -32000

METADATA = "metadata"
CONTENT_MD = "content.md"
CONTENT_TXT = "content.txt"
HIGHLIGHTS_JSON = "highlights.json"
HIGHLIGHTS_MD = "highlights.md"

MIME_TYPES = {
    METADATA: "application/json",
    CONTENT_MD: "text/markdown",
    CONTENT_TXT: "text/plain",
    HIGHLIGHTS_JSON: "application/json",
    HIGHLIGHTS_MD: "text/markdown",
}

_TEMPLATE_NAMES = {
    METADATA: "Bookmark metadata",
    CONTENT_MD: "Bookmark content markdown",
    CONTENT_TXT: "Bookmark content text",
    HIGHLIGHTS_JSON: "Bookmark highlights JSON",
    HIGHLIGHTS_MD: "Bookmark highlights markdown",
}


@dataclass(frozen=True)
class ResourceRef:
    """A parsed bookmark resource URI."""

    bookmark_id: str
    kind: str


def list_resource_templates() -> list[types.ResourceTemplate]:
    """URI templates for the bookmark resources."""
    templates = []
    for kind, name in _TEMPLATE_NAMES.items():
        suffix = "" if kind == METADATA else f"/{kind}"
        templates.append(
            types.ResourceTemplate(
                uriTemplate=f"{URI_SCHEME}://{URI_HOST}/{{id}}{suffix}",
                name=name,
                mimeType=MIME_TYPES[kind],
            ),
        )
    return templates


def parse_resource_uri(uri: str) -> ResourceRef:
    """
    Parse ``readeck://bookmark/{id}[/kind]``.

    Raises:
        ValueError: If the scheme, host, id or kind is not recognized.
    """
    parts = urlsplit(uri.strip())
    if parts.scheme != URI_SCHEME or parts.netloc != URI_HOST:
        raise ValueError("unsupported uri")

    segments = parts.path.strip().strip("/").split("/")
    if not segments[0]:
        raise ValueError("missing id")
    if len(segments) == 1:
        return ResourceRef(segments[0], METADATA)

    kind = "/".join(segments[1:])
    if kind not in MIME_TYPES or kind == METADATA:
        raise ValueError("unsupported kind")
    return ResourceRef(segments[0], kind)


def _invalid_params(message: str) -> McpError:
    return McpError(types.ErrorData(code=types.INVALID_PARAMS, message=message))


async def read_resource(client: ReadeckClient, uri: str | None) -> types.ReadResourceResult:
    """
    Read a bookmark resource.

    Raises:
        McpError: INVALID_PARAMS for a missing or malformed URI; the generic
            server error (-32000) with ``data.error`` set to the classified
            failure when the upstream call fails.
    """
    if not isinstance(uri, str) or not uri.strip():
        raise _invalid_params("uri is required")
    try:
        ref = parse_resource_uri(uri)
    except ValueError:
        raise _invalid_params("invalid resource uri") from None

    include = IncludeOptions(
        content=ref.kind in (CONTENT_MD, CONTENT_TXT),
        highlights=ref.kind in (HIGHLIGHTS_JSON, HIGHLIGHTS_MD),
        labels=True,
    )
    try:
        bookmark = await client.get_bookmark(ref.bookmark_id, include)
    except (UpstreamError, InvalidInputError, httpx.RequestError, TimeoutError) as e:
        error = classify_error(e)
        logger.warning("Resource %s unavailable: %s", uri, error.message)
        raise McpError(
            types.ErrorData(code=SERVER_ERROR, message=error.message, data={"error": error.to_dict()}),
        ) from e

    return types.ReadResourceResult(
        contents=[
            types.TextResourceContents(
                uri=uri,
                mimeType=MIME_TYPES[ref.kind],
                text=render_resource(bookmark, ref.kind),
            ),
        ],
    )


def render_resource(bookmark: Bookmark, kind: str) -> str:
    """Render the text body of a resource kind."""
    if kind == CONTENT_MD:
        return bookmark_content_markdown(bookmark, include_highlights=False)
    if kind == CONTENT_TXT:
        return bookmark_content_text(bookmark)
    if kind == HIGHLIGHTS_MD:
        return highlights_markdown(bookmark.highlights)
    if kind == HIGHLIGHTS_JSON:
        highlights = [h.model_dump(mode="json", exclude_none=True) for h in bookmark.highlights]
        return json.dumps({"highlights": highlights}, indent=2)
    metadata = bookmark.model_dump(
        mode="json", exclude_none=True, exclude={"content_text", "content_html", "highlights"},
    )
    return json.dumps(metadata, indent=2)

"""
Tool catalog and execution pipeline.

Each tool decodes its arguments with a pydantic model, runs against the Readeck
client and returns a ``CallToolResult`` carrying both a JSON text rendering and
the structured payload. Failures are classified into the domain error taxonomy
and returned as ``isError`` results rather than protocol errors.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import httpx
from mcp import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from ..readeck.api_client import ReadeckClient
from ..readeck.schemas import ArchivedMode, CitationStyle, IncludeOptions, SearchOptions, SortMode
from ..shared.api_errors import InvalidInputError, UpstreamError, classify_error
from ..shared.citation import generate_citation
from ..shared.mcp_utils import load_tool_descriptions
from .highlights import parse_date_filter, scan_highlights

logger = logging.getLogger(__name__)

_DIR = Path(__file__).parent
_TOOLS = load_tool_descriptions(_DIR)

ArgsT = TypeVar("ArgsT", bound=BaseModel)


class _Arguments(BaseModel):
    """Base for tool arguments: unknown keys ignored, explicit nulls mean 'not given'."""

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


class SearchArgs(_Arguments):
    query: str = ""
    title: str = ""
    text: str = ""
    labels: list[str] = Field(default_factory=list)
    archived: ArchivedMode = ArchivedMode.EXCLUDE
    favorites: bool | None = None
    sort: SortMode = SortMode.UPDATED_DESC
    limit: int = Field(default=0, ge=0)
    cursor: str = ""


class IncludeArgs(_Arguments):
    content: bool = False
    highlights: bool = True
    labels: bool = True


class GetArgs(_Arguments):
    id: str = ""
    include: IncludeArgs = Field(default_factory=IncludeArgs)


class ArchiveArgs(_Arguments):
    id: str = ""
    archived: bool = True


class LabelsListArgs(_Arguments):
    limit: int = Field(default=0, ge=0)
    cursor: str = ""


class LabelsSetArgs(_Arguments):
    id: str = ""
    labels: list[str] = Field(default_factory=list)


class HighlightsListArgs(_Arguments):
    bookmark_id: str = ""
    limit: int = Field(default=0, ge=0)
    offset: int = 0
    date: str = ""
    date_from: str = ""
    date_to: str = ""


class CiteArgs(_Arguments):
    bookmark_id: str = ""
    highlight_id: str = ""
    quote: str = ""
    style: CitationStyle = CitationStyle.MARKDOWN
    accessed_at: str = ""


def decode_arguments(model: type[ArgsT], arguments: Any) -> ArgsT:
    """
    Validate raw tool arguments against a model.

    Absent or null arguments decode to the model defaults.

    Raises:
        InvalidInputError: If the arguments do not match the expected shape.
    """
    try:
        return model.model_validate(arguments if arguments is not None else {})
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        detail = f"{location}: {first['msg']}" if location else first["msg"]
        raise InvalidInputError(f"invalid arguments: {detail}") from None


def _require(value: str, name: str) -> str:
    if not value.strip():
        raise InvalidInputError(f"{name} is required")
    return value.strip()


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", exclude_none=True)


# --- tool implementations ---


async def search(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(SearchArgs, arguments)
    opts = SearchOptions(**args.model_dump())
    return _dump(await client.search(opts))


async def get_bookmark(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(GetArgs, arguments)
    bookmark_id = _require(args.id, "id")
    include = IncludeOptions(**args.include.model_dump())
    bookmark = await client.get_bookmark(bookmark_id, include)
    return {"bookmark": _dump(bookmark)}


async def archive(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(ArchiveArgs, arguments)
    bookmark_id = _require(args.id, "id")
    return _dump(await client.set_archived(bookmark_id, args.archived))


async def list_labels(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(LabelsListArgs, arguments)
    return _dump(await client.list_labels(args.limit, args.cursor))


async def set_labels(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(LabelsSetArgs, arguments)
    bookmark_id = _require(args.id, "id")
    if not args.labels:
        raise InvalidInputError("labels is required")
    return _dump(await client.set_labels(bookmark_id, args.labels))


async def list_highlights(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(HighlightsListArgs, arguments)
    if args.offset < 0:
        raise InvalidInputError("offset must be >= 0")
    date_filter = parse_date_filter(args.date, args.date_from, args.date_to)
    result = await scan_highlights(
        client, args.bookmark_id.strip() or None, args.limit, args.offset, date_filter,
    )
    return _dump(result)


async def cite(client: ReadeckClient, arguments: Any) -> dict[str, Any]:
    args = decode_arguments(CiteArgs, arguments)
    bookmark_id = _require(args.bookmark_id, "bookmark_id")

    accessed_at = None
    if args.accessed_at.strip():
        accessed_at = _parse_rfc3339(args.accessed_at.strip())

    bookmark = await client.get_bookmark(
        bookmark_id, IncludeOptions(content=False, highlights=True, labels=True),
    )

    selected = None
    if args.highlight_id.strip():
        selected = next((h for h in bookmark.highlights if h.id == args.highlight_id.strip()), None)
        if selected is None:
            raise InvalidInputError("highlight_id not found for bookmark")

    citation = generate_citation(
        bookmark, args.style, highlight=selected, quote=args.quote, accessed_at=accessed_at,
    )
    return {"citation": _dump(citation)}


def _parse_rfc3339(raw: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise InvalidInputError("accessed_at must be RFC3339") from None
    if parsed.tzinfo is None or "T" not in raw.upper():
        raise InvalidInputError("accessed_at must be RFC3339")
    return parsed


ToolHandler = Callable[[ReadeckClient, Any], Awaitable[dict[str, Any]]]

# Map tool names to handlers
HANDLERS: dict[str, ToolHandler] = {
    "readeck.search": search,
    "readeck.get": get_bookmark,
    "readeck.archive": archive,
    "readeck.labels.list": list_labels,
    "readeck.labels.set": set_labels,
    "readeck.highlights.list": list_highlights,
    "readeck.cite": cite,
}


async def call_tool(client: ReadeckClient, name: str, arguments: Any) -> types.CallToolResult:
    """
    Execute a tool and wrap the outcome.

    Never raises for domain failures: unknown tools, invalid arguments and
    upstream errors all come back as ``isError`` results with a classified
    ``structuredContent.error``.
    """
    try:
        handler = HANDLERS.get(name)
        if handler is None:
            raise InvalidInputError(f"unknown tool: {name}")
        data = await handler(client, arguments)
    except (InvalidInputError, UpstreamError, httpx.RequestError, TimeoutError) as e:
        return _error_result(name, e)
    except Exception as e:
        logger.exception("Unexpected failure in tool %s", name)
        return _error_result(name, e)

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(data, indent=2))],
        structuredContent=data,
    )


def _error_result(name: str, exc: Exception) -> types.CallToolResult:
    error = classify_error(exc)
    logger.warning("Tool %s failed: code=%s message=%s", name, error.code, error.message)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error.message)],
        structuredContent={"error": error.to_dict()},
        isError=True,
    )


def _string(name: str, param: str) -> dict[str, Any]:
    return {"type": "string", "description": _TOOLS[name]["parameters"][param]}


def _string_list(name: str, param: str) -> dict[str, Any]:
    return {
        "type": "array",
        "items": {"type": "string"},
        "description": _TOOLS[name]["parameters"][param],
    }


def list_tools() -> list[types.Tool]:
    """List available tools."""
    _t = _TOOLS
    return [
        types.Tool(
            name="readeck.search",
            description=_t["readeck.search"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "query": _string("readeck.search", "query"),
                    "title": _string("readeck.search", "title"),
                    "text": _string("readeck.search", "text"),
                    "labels": _string_list("readeck.search", "labels"),
                    "archived": {
                        "type": "string",
                        "enum": [mode.value for mode in ArchivedMode],
                        "default": ArchivedMode.EXCLUDE.value,
                        "description": _t["readeck.search"]["parameters"]["archived"],
                    },
                    "favorites": {
                        "type": "boolean",
                        "description": _t["readeck.search"]["parameters"]["favorites"],
                    },
                    "sort": {
                        "type": "string",
                        "enum": [mode.value for mode in SortMode],
                        "default": SortMode.UPDATED_DESC.value,
                        "description": _t["readeck.search"]["parameters"]["sort"],
                    },
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "description": _t["readeck.search"]["parameters"]["limit"],
                    },
                    "cursor": _string("readeck.search", "cursor"),
                },
            },
            annotations=types.ToolAnnotations(readOnlyHint=True),
        ),
        types.Tool(
            name="readeck.get",
            description=_t["readeck.get"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _string("readeck.get", "id"),
                    "include": {
                        "type": "object",
                        "description": _t["readeck.get"]["parameters"]["include"],
                        "properties": {
                            "content": {"type": "boolean", "default": False},
                            "highlights": {"type": "boolean", "default": True},
                            "labels": {"type": "boolean", "default": True},
                        },
                    },
                },
                "required": ["id"],
            },
            annotations=types.ToolAnnotations(readOnlyHint=True),
        ),
        types.Tool(
            name="readeck.archive",
            description=_t["readeck.archive"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _string("readeck.archive", "id"),
                    "archived": {
                        "type": "boolean",
                        "default": True,
                        "description": _t["readeck.archive"]["parameters"]["archived"],
                    },
                },
                "required": ["id"],
            },
            annotations=types.ToolAnnotations(idempotentHint=True),
        ),
        types.Tool(
            name="readeck.labels.list",
            description=_t["readeck.labels.list"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "description": _t["readeck.labels.list"]["parameters"]["limit"],
                    },
                    "cursor": _string("readeck.labels.list", "cursor"),
                },
            },
            annotations=types.ToolAnnotations(readOnlyHint=True),
        ),
        types.Tool(
            name="readeck.labels.set",
            description=_t["readeck.labels.set"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "id": _string("readeck.labels.set", "id"),
                    "labels": _string_list("readeck.labels.set", "labels"),
                },
                "required": ["id", "labels"],
            },
            annotations=types.ToolAnnotations(idempotentHint=True),
        ),
        types.Tool(
            name="readeck.highlights.list",
            description=_t["readeck.highlights.list"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "bookmark_id": _string("readeck.highlights.list", "bookmark_id"),
                    "limit": {
                        "type": "integer",
                        "minimum": 1,
                        "description": _t["readeck.highlights.list"]["parameters"]["limit"],
                    },
                    "offset": {
                        "type": "integer",
                        "minimum": 0,
                        "description": _t["readeck.highlights.list"]["parameters"]["offset"],
                    },
                    "date": _string("readeck.highlights.list", "date"),
                    "date_from": _string("readeck.highlights.list", "date_from"),
                    "date_to": _string("readeck.highlights.list", "date_to"),
                },
            },
            annotations=types.ToolAnnotations(readOnlyHint=True),
        ),
        types.Tool(
            name="readeck.cite",
            description=_t["readeck.cite"]["description"],
            inputSchema={
                "type": "object",
                "properties": {
                    "bookmark_id": _string("readeck.cite", "bookmark_id"),
                    "highlight_id": _string("readeck.cite", "highlight_id"),
                    "quote": _string("readeck.cite", "quote"),
                    "style": {
                        "type": "string",
                        "enum": [style.value for style in CitationStyle],
                        "default": CitationStyle.MARKDOWN.value,
                        "description": _t["readeck.cite"]["parameters"]["style"],
                    },
                    "accessed_at": {
                        "type": "string",
                        "format": "date-time",
                        "description": _t["readeck.cite"]["parameters"]["accessed_at"],
                    },
                },
                "required": ["bookmark_id"],
            },
            annotations=types.ToolAnnotations(readOnlyHint=True),
        ),
    ]

"""
HTTP client for the Readeck REST API.

Wraps an ``httpx.AsyncClient`` with the behaviour every tool relies on:
bearer authentication, a per-call deadline, bounded retries with exponential
backoff for idempotent reads, tolerant decoding of the response envelope, and
probing of alternate endpoints for operations whose route moved between
Readeck releases.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from ..core.config import Settings
from ..shared.api_errors import InvalidInputError, UpstreamError
from .mapping import (
    extract_items_and_cursor,
    first_non_empty_string,
    map_bookmark,
    map_highlight,
    map_label,
    normalize_labels,
    snippet_from,
)
from .schemas import (
    ArchivedMode,
    ArchiveResult,
    Bookmark,
    BookmarkSummary,
    HighlightListResult,
    IncludeOptions,
    LabelListResult,
    SearchOptions,
    SearchResult,
    SetLabelsResult,
    SortMode,
)

logger = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 20
DEFAULT_LIST_LIMIT = 200
MAX_LIST_LIMIT = 500

MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.2  # seconds; doubles per retry

RETRYABLE_METHODS = frozenset({"GET"})
FALLBACK_STATUSES = frozenset({404, 405})
ALREADY_IN_STATE_STATUSES = frozenset({409, 422})

_CONTENT_TEXT_KEYS = ("content_text", "text", "content", "article")
_CONTENT_HTML_KEYS = ("content_html", "html")


@dataclass(frozen=True)
class ArchiveVariant:
    """One way of changing the archive flag: verbs for archive/unarchive, path, body keys."""

    archive_method: str
    unarchive_method: str
    path: str
    body_keys: tuple[str, ...]


@dataclass(frozen=True)
class HighlightVariant:
    """Highlight listing path; ``scoped_by_query`` passes the bookmark id as a query param."""

    path: str
    scoped_by_query: bool = False


@dataclass(frozen=True)
class EndpointProfile:
    """
    Ordered endpoint variants for operations whose route differs between releases.

    Each tuple is probed in order; a 404 or 405 moves on to the next entry.
    Paths may contain an ``{id}`` placeholder for the (escaped) bookmark id.
    """

    name: str
    archive: tuple[ArchiveVariant, ...]
    set_labels: tuple[tuple[str, str], ...]
    list_labels: tuple[str, ...]
    bookmark_highlights: tuple[HighlightVariant, ...]
    global_highlights: tuple[str, ...]
    content: tuple[str, ...]


DEFAULT_ENDPOINTS = EndpointProfile(
    name="readeck-v1",
    archive=(
        ArchiveVariant("PATCH", "PATCH", "/bookmarks/{id}", ("is_archived", "archived")),
        ArchiveVariant("POST", "DELETE", "/bookmarks/{id}/archive", ("archived",)),
        ArchiveVariant("PATCH", "PATCH", "/bookmarks/{id}", ("archived",)),
    ),
    set_labels=(
        ("PATCH", "/bookmarks/{id}"),
        ("PUT", "/bookmarks/{id}/labels"),
    ),
    list_labels=("/labels", "/bookmarks/labels"),
    bookmark_highlights=(
        HighlightVariant("/bookmarks/{id}/highlights"),
        HighlightVariant("/bookmarks/{id}/annotations"),
        HighlightVariant("/bookmarks/annotations", scoped_by_query=True),
        HighlightVariant("/highlights", scoped_by_query=True),
    ),
    global_highlights=("/bookmarks/annotations", "/highlights"),
    content=(
        "/bookmarks/{id}/content",
        "/bookmarks/{id}/article",
        "/bookmarks/{id}/text",
    ),
)


def _path(template: str, bookmark_id: str) -> str:
    return template.replace("{id}", quote(bookmark_id, safe=""))


def _require_id(value: str | None, name: str = "id") -> str:
    if value is None or not value.strip():
        raise InvalidInputError(f"{name} is required")
    return value.strip()


def _clamp_list_limit(limit: int | None) -> int:
    if not limit or limit <= 0:
        return DEFAULT_LIST_LIMIT
    return min(limit, MAX_LIST_LIMIT)


def _get_headers(token: str, user_agent: str) -> dict[str, str]:
    """Get common headers for API requests."""
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/json",
        "User-Agent": user_agent,
    }


def _upstream_request_id(response: httpx.Response) -> str:
    return response.headers.get("x-request-id", "").strip()


def decode_object(response: httpx.Response, endpoint: str) -> dict[str, Any]:
    """
    Decode a response body tolerantly.

    An empty body is an empty object, a JSON object is used as-is and a bare
    JSON array becomes ``{"items": [...]}``. Anything else is an UpstreamError.
    """
    if not response.content.strip():
        return {}
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        return data
    if isinstance(data, list):
        return {"items": data}
    raise UpstreamError(
        response.status_code,
        endpoint,
        _upstream_request_id(response),
        "decode response: unsupported JSON shape",
    )


class ReadeckClient:
    """
    Async client for the Readeck API.

    Holds only read-only configuration and a pooled ``httpx.AsyncClient``;
    no request state is kept between calls.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 20.0,
        user_agent: str = "readeck-mcp/0.1",
        verify_tls: bool = True,
        max_page_size: int = 100,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        endpoints: EndpointProfile = DEFAULT_ENDPOINTS,
    ) -> None:
        self._token = token
        self._timeout = timeout
        self._user_agent = user_agent
        self._max_page_size = max_page_size
        self._backoff_base = backoff_base
        self.endpoints = endpoints
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            verify=verify_tls,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReadeckClient":
        """Build a client from application settings."""
        return cls(
            settings.api_base_url,
            settings.readeck_api_token,
            timeout=settings.readeck_timeout_seconds,
            user_agent=settings.readeck_user_agent,
            verify_tls=settings.readeck_verify_tls,
            max_page_size=settings.readeck_max_page_size,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        if not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> "ReadeckClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # --- transport ---

    async def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> httpx.Response:
        """
        Perform one logical API call and return the successful response.

        GET requests answered with 429 or 5xx are retried up to MAX_RETRIES times
        with exponential backoff. The whole call, waits included, is bounded by
        the client timeout. Cancellation during a backoff wait propagates
        immediately as ``asyncio.CancelledError``.

        Raises:
            UpstreamError: For any final status >= 400.
            httpx.RequestError: For network failures (not retried).
            TimeoutError: When the overall deadline expires.
        """
        method = method.upper()
        endpoint = "/" + endpoint.lstrip("/")
        retries = 0
        async with asyncio.timeout(self._timeout):
            while True:
                response = await self._send_once(method, endpoint, params, body, retries)
                status = response.status_code
                retryable = status == 429 or status >= 500
                if method in RETRYABLE_METHODS and retryable and retries < MAX_RETRIES:
                    retries += 1
                    delay = self._backoff_base * 2 ** (retries - 1)
                    logger.warning(
                        "Retrying %s %s after status %d (retry %d/%d, backoff %.2fs)",
                        method, endpoint, status, retries, MAX_RETRIES, delay,
                    )
                    await asyncio.sleep(delay)
                    continue
                break

        if response.status_code >= 400:
            raise UpstreamError(
                response.status_code,
                endpoint,
                _upstream_request_id(response),
                f"upstream returned status {response.status_code}",
            )
        return response

    async def _send_once(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None,
        body: Any,
        retries: int,
    ) -> httpx.Response:
        headers = _get_headers(self._token, self._user_agent)
        start = time.perf_counter()
        try:
            response = await self._http.request(
                method,
                endpoint,
                params=params,
                json=body,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.warning(
                "%s %s failed after %dms (retries=%d): %s",
                method, endpoint, _elapsed_ms(start), retries, type(e).__name__,
            )
            raise
        logger.info(
            "%s %s status=%d latency_ms=%d retries=%d bytes=%d",
            method, endpoint, response.status_code, _elapsed_ms(start), retries,
            len(response.content),
        )
        return response

    async def get_object(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """GET an endpoint and decode its body tolerantly."""
        response = await self.request("GET", endpoint, params)
        return decode_object(response, endpoint)

    async def request_object(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        body: Any = None,
    ) -> dict[str, Any]:
        """Send a request and decode its body tolerantly."""
        response = await self.request(method, endpoint, params, body)
        return decode_object(response, endpoint)

    async def _probe(
        self,
        calls: list[tuple[str, str, dict[str, Any] | None, Any]],
    ) -> dict[str, Any]:
        """
        Try (method, endpoint, params, body) calls in order.

        Returns the first response that is not a 404/405. Any other error is
        raised at once; when every variant is 404/405 the last error is raised.
        """
        last_error: UpstreamError | None = None
        for method, endpoint, params, body in calls:
            try:
                return await self.request_object(method, endpoint, params, body)
            except UpstreamError as e:
                if e.status_code not in FALLBACK_STATUSES:
                    raise
                logger.info(
                    "%s %s returned %d, trying next endpoint variant",
                    method, endpoint, e.status_code,
                )
                last_error = e
        if last_error is None:
            raise ValueError("no endpoint variants configured")
        raise last_error

    # --- bookmarks ---

    async def search(self, opts: SearchOptions) -> SearchResult:
        """
        Search bookmarks.

        The upstream query is refined client-side: archived/favorite/title/label
        filters are re-applied, results sorted and truncated to the limit.
        """
        opts = self._normalize_search_options(opts)
        raw = await self.get_object("/bookmarks", _build_search_query(opts))

        raw_items, next_cursor = extract_items_and_cursor(raw)
        items: list[BookmarkSummary] = []
        for item in raw_items:
            bookmark = map_bookmark(item)
            if not _matches_filters(bookmark, opts):
                continue
            items.append(
                BookmarkSummary(
                    id=bookmark.id,
                    title=bookmark.title,
                    url=bookmark.url,
                    is_archived=bookmark.is_archived,
                    labels=bookmark.label_names,
                    created_at=bookmark.created_at,
                    updated_at=bookmark.updated_at,
                    published_at=bookmark.published_at,
                    snippet=snippet_from(item),
                ),
            )

        items = _sort_summaries(items, opts.sort)[: opts.limit]
        return SearchResult(items=items, next_cursor=next_cursor)

    def _normalize_search_options(self, opts: SearchOptions) -> SearchOptions:
        limit = opts.limit if opts.limit > 0 else DEFAULT_SEARCH_LIMIT
        return opts.model_copy(
            update={
                "limit": min(limit, self._max_page_size),
                "labels": normalize_labels(opts.labels),
            },
        )

    async def get_bookmark(self, bookmark_id: str, include: IncludeOptions | None = None) -> Bookmark:
        """
        Fetch one bookmark, optionally enriched with content and highlights.

        Enrichment is best-effort: a failing content or highlight endpoint is
        logged and the bookmark is returned without that part.
        """
        bookmark_id = _require_id(bookmark_id)
        include = include or IncludeOptions()

        raw = await self.get_object(_path("/bookmarks/{id}", bookmark_id))
        bookmark = map_bookmark(raw)

        if include.content:
            try:
                text, html = await self.fetch_content(bookmark_id)
            except (UpstreamError, httpx.RequestError, TimeoutError) as e:
                logger.warning("Content unavailable for bookmark %s: %s", bookmark_id, e)
            else:
                bookmark.content_text = text
                bookmark.content_html = html

        if include.highlights:
            try:
                page = await self.list_highlights(bookmark_id, DEFAULT_LIST_LIMIT)
            except (UpstreamError, httpx.RequestError, TimeoutError) as e:
                logger.warning("Highlights unavailable for bookmark %s: %s", bookmark_id, e)
            else:
                bookmark.highlights = page.highlights

        if not include.labels:
            bookmark.labels = []

        return bookmark

    async def fetch_content(self, bookmark_id: str) -> tuple[str | None, str | None]:
        """
        Fetch article content as (text, html).

        Probes the content endpoints in order, skipping 404/405 and endpoints
        that return no content. JSON bodies are read through the usual key
        tables; an HTML or plain-text body is taken as-is.
        """
        bookmark_id = _require_id(bookmark_id)
        for template in self.endpoints.content:
            endpoint = _path(template, bookmark_id)
            try:
                response = await self.request("GET", endpoint)
            except UpstreamError as e:
                if e.status_code in FALLBACK_STATUSES:
                    continue
                raise

            content_type = response.headers.get("content-type", "").lower()
            if "html" in content_type:
                text, html = None, response.text.strip() or None
            elif content_type.startswith("text/"):
                text, html = response.text.strip() or None, None
            else:
                obj = decode_object(response, endpoint)
                text = first_non_empty_string(obj, *_CONTENT_TEXT_KEYS)
                html = first_non_empty_string(obj, *_CONTENT_HTML_KEYS)
            if text or html:
                return text, html
        return None, None

    async def set_archived(self, bookmark_id: str, archived: bool) -> ArchiveResult:
        """
        Set the archive flag and report the resulting state.

        Idempotent: a 409/422 from any variant means the bookmark is already in
        the requested state and counts as success.
        """
        bookmark_id = _require_id(bookmark_id)
        calls = []
        for variant in self.endpoints.archive:
            method = variant.archive_method if archived else variant.unarchive_method
            body = None if method == "DELETE" else {key: archived for key in variant.body_keys}
            calls.append((method, _path(variant.path, bookmark_id), None, body))

        try:
            await self._probe(calls)
        except UpstreamError as e:
            if e.status_code not in ALREADY_IN_STATE_STATUSES:
                raise
            logger.info("Bookmark %s already in archived=%s state", bookmark_id, archived)

        bookmark = await self.get_bookmark(
            bookmark_id, IncludeOptions(content=False, highlights=False, labels=True),
        )
        return ArchiveResult(
            id=bookmark.id or bookmark_id,
            is_archived=bookmark.is_archived,
            updated_at=bookmark.updated_at,
        )

    # --- labels ---

    async def list_labels(self, limit: int | None = None, cursor: str = "") -> LabelListResult:
        """List labels, one page at a time."""
        params: dict[str, Any] = {"limit": _clamp_list_limit(limit)}
        if cursor:
            params["cursor"] = cursor

        raw = await self._probe([("GET", path, params, None) for path in self.endpoints.list_labels])
        raw_items, next_cursor = extract_items_and_cursor(raw)
        labels = [label for label in (map_label(item) for item in raw_items) if label is not None]
        return LabelListResult(labels=labels, next_cursor=next_cursor)

    async def set_labels(self, bookmark_id: str, labels: list[str]) -> SetLabelsResult:
        """
        Replace the full label set of a bookmark.

        Labels are de-duplicated case-insensitively before sending. The result
        reports the labels the upstream echoed back, or the sent set when the
        response carries none.
        """
        bookmark_id = _require_id(bookmark_id)
        normalized = normalize_labels(labels)
        if not normalized:
            raise InvalidInputError("labels is required")

        body = {"labels": normalized}
        raw = await self._probe(
            [(method, _path(path, bookmark_id), None, body) for method, path in self.endpoints.set_labels],
        )
        bookmark = map_bookmark(raw)
        return SetLabelsResult(
            id=bookmark.id or bookmark_id,
            labels=bookmark.label_names or normalized,
        )

    # --- highlights ---

    async def list_highlights(
        self,
        bookmark_id: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> HighlightListResult:
        """
        List highlights for one bookmark, or the global feed when no id is given.

        Bookmark-scoped listings drop records belonging to other bookmarks and
        fill in a missing bookmark id.
        """
        params: dict[str, Any] = {"limit": _clamp_list_limit(limit), "offset": max(offset, 0)}
        scope = bookmark_id.strip() if bookmark_id else ""

        if scope:
            calls = [
                (
                    "GET",
                    _path(variant.path, scope),
                    {**params, "bookmark_id": scope} if variant.scoped_by_query else params,
                    None,
                )
                for variant in self.endpoints.bookmark_highlights
            ]
        else:
            calls = [("GET", path, params, None) for path in self.endpoints.global_highlights]

        raw = await self._probe(calls)
        raw_items, next_cursor = extract_items_and_cursor(raw)

        highlights = []
        for item in raw_items:
            highlight = map_highlight(item)
            if highlight is None:
                continue
            if scope:
                if not highlight.bookmark_id:
                    highlight.bookmark_id = scope
                if highlight.bookmark_id != scope:
                    continue
            highlights.append(highlight)
        return HighlightListResult(highlights=highlights, next_cursor=next_cursor)


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _build_search_query(opts: SearchOptions) -> dict[str, Any]:
    params: dict[str, Any] = {}
    search = " ".join(part for part in (opts.query.strip(), opts.text.strip()) if part)
    if search:
        params["q"] = search
    if opts.title.strip():
        params["title"] = opts.title.strip()
    if opts.labels:
        params["labels"] = ",".join(opts.labels)
    if opts.favorites is not None:
        params["favorite"] = "true" if opts.favorites else "false"
    params["sort"] = opts.sort.value
    params["limit"] = opts.limit
    if opts.cursor:
        params["cursor"] = opts.cursor
    return params


def _matches_filters(bookmark: Bookmark, opts: SearchOptions) -> bool:
    if opts.archived == ArchivedMode.EXCLUDE and bookmark.is_archived:
        return False
    if opts.archived == ArchivedMode.ONLY and not bookmark.is_archived:
        return False
    if opts.favorites is not None and bookmark.is_favorite != opts.favorites:
        return False
    if opts.title and opts.title.lower() not in bookmark.title.lower():
        return False
    if opts.labels:
        have = {name.strip().lower() for name in bookmark.label_names}
        if any(want.lower() not in have for want in opts.labels):
            return False
    return True


_SORT_KEYS = {
    SortMode.UPDATED_DESC: "updated_at",
    SortMode.CREATED_DESC: "created_at",
    SortMode.PUBLISHED_DESC: "published_at",
}


def _sort_summaries(items: list[BookmarkSummary], mode: SortMode) -> list[BookmarkSummary]:
    """Sort newest first by the mode's timestamp; relevance keeps upstream order."""
    field = _SORT_KEYS.get(mode)
    if field is None:
        return items
    return sorted(items, key=lambda item: getattr(item, field) or "", reverse=True)

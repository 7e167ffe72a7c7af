"""
Creation-date filtering of highlights.

The Readeck API has no date filter for annotations, so a date-filtered listing
scans upstream pages sequentially and applies the predicate here.
"""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from ..readeck.api_client import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, ReadeckClient
from ..readeck.schemas import Highlight, HighlightListResult
from ..shared.api_errors import InvalidInputError

logger = logging.getLogger(__name__)

MIN_SCAN_BATCH = 100
MAX_SCAN_BATCH = 500

_DAY_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


@dataclass(frozen=True)
class DateFilter:
    """Half-open UTC interval ``[start, end)``; either bound may be open."""

    start: datetime | None = None
    end: datetime | None = None

    @property
    def enabled(self) -> bool:
        return self.start is not None or self.end is not None

    def matches(self, highlight: Highlight) -> bool:
        """Whether the highlight's creation time falls in the interval."""
        if not self.enabled:
            return True
        created = parse_highlight_timestamp(highlight.created_at)
        if created is None:
            return False
        if self.start is not None and created < self.start:
            return False
        if self.end is not None and created >= self.end:
            return False
        return True


def _parse_day(raw: str, field: str) -> datetime:
    try:
        if not _DAY_RE.fullmatch(raw):
            raise ValueError(raw)
        day = date.fromisoformat(raw)
    except ValueError:
        raise InvalidInputError(f"{field} must be YYYY-MM-DD") from None
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def parse_date_filter(
    date_: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
) -> DateFilter:
    """
    Build a DateFilter from tool arguments.

    ``date`` selects one UTC day. ``date_from``/``date_to`` select the half-open
    range ``[date_from, date_to)``. Blank values are ignored.

    Raises:
        InvalidInputError: If ``date`` is combined with a range bound, a value
            is not ``YYYY-MM-DD``, or the range is empty.
    """
    date_ = (date_ or "").strip()
    date_from = (date_from or "").strip()
    date_to = (date_to or "").strip()

    if date_ and (date_from or date_to):
        raise InvalidInputError("date cannot be combined with date_from/date_to")

    if date_:
        day = _parse_day(date_, "date")
        return DateFilter(start=day, end=day + timedelta(days=1))

    start = _parse_day(date_from, "date_from") if date_from else None
    end = _parse_day(date_to, "date_to") if date_to else None
    if start is not None and end is not None and start >= end:
        raise InvalidInputError("date_from must be before date_to")
    return DateFilter(start=start, end=end)


def parse_highlight_timestamp(raw: str | None) -> datetime | None:
    """
    Parse an upstream highlight timestamp to an aware UTC datetime.

    Formats tried in order: RFC 3339 (with or without fractional seconds),
    ``YYYY-MM-DD HH:MM:SS`` taken as UTC, and a bare ``YYYY-MM-DD``.
    Returns None when nothing matches.
    """
    raw = (raw or "").strip()
    if not raw:
        return None

    if "T" in raw or "t" in raw:
        parsed = _parse_rfc3339(raw)
        if parsed is not None:
            return parsed

    try:
        return datetime.strptime(raw, "%Y-%m-%d %H:%M:%S").replace(tzinfo=UTC)
    except ValueError:
        pass
    try:
        return _parse_day(raw, "timestamp")
    except InvalidInputError:
        return None


def _parse_rfc3339(raw: str) -> datetime | None:
    head, sep, rest = raw.partition(".")
    if sep:
        # Truncate fractional seconds to microseconds
        digits = len(rest) - len(rest.lstrip("0123456789"))
        if digits == 0:
            return None
        raw = f"{head}.{rest[:min(digits, 6)]}{rest[digits:]}"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(UTC)


def _parse_offset(cursor: str | None) -> int | None:
    cursor = (cursor or "").strip()
    if not cursor.isdigit():
        return None
    return int(cursor)


async def scan_highlights(
    client: ReadeckClient,
    bookmark_id: str | None,
    limit: int | None,
    offset: int,
    date_filter: DateFilter,
) -> HighlightListResult:
    """
    List highlights matching a date filter by scanning upstream pages.

    Matches before ``offset`` (counted among matches, not raw records) are
    skipped. A continuation cursor is returned only when a further match was
    seen after ``limit`` matches were collected; its value is the match offset
    of the next page.
    """
    if not date_filter.enabled:
        return await client.list_highlights(bookmark_id, limit, offset)

    limit = min(limit if limit and limit > 0 else DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
    batch_size = max(MIN_SCAN_BATCH, min(limit, MAX_SCAN_BATCH))

    scan_offset = 0
    matched_seen = 0
    out: list[Highlight] = []
    has_more = False
    pages = 0

    while True:
        page = await client.list_highlights(bookmark_id, batch_size, scan_offset)
        pages += 1
        if not page.highlights:
            break

        for highlight in page.highlights:
            if not date_filter.matches(highlight):
                continue
            if matched_seen < offset:
                matched_seen += 1
                continue
            if len(out) >= limit:
                has_more = True
                break
            out.append(highlight)
            matched_seen += 1
        if has_more:
            break

        next_offset = _parse_offset(page.next_cursor)
        if next_offset is None:
            if len(page.highlights) < batch_size:
                break
            next_offset = scan_offset + len(page.highlights)
        if next_offset <= scan_offset:
            break
        scan_offset = next_offset

    logger.info(
        "Highlight scan finished: pages=%d matched=%d has_more=%s", pages, len(out), has_more,
    )
    return HighlightListResult(
        highlights=out,
        next_cursor=str(offset + len(out)) if has_more else None,
    )

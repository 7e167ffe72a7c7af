"""Citation generation for bookmarks."""

import hashlib
import json
from datetime import UTC, date, datetime
from email.utils import parsedate_to_datetime
from typing import Any

from ..readeck.schemas import Bookmark, Citation, CitationMetadata, CitationStyle, Highlight

NO_DATE = "n.d."


def generate_citation(
    bookmark: Bookmark,
    style: CitationStyle = CitationStyle.MARKDOWN,
    *,
    highlight: Highlight | None = None,
    quote: str = "",
    accessed_at: datetime | None = None,
) -> Citation:
    """
    Build a citation for a bookmark in the requested style.

    Args:
        bookmark: The cited bookmark.
        style: Output style; Markdown when not given.
        highlight: Highlight whose text is quoted (Markdown style only).
        quote: Explicit quote, taking precedence over the highlight text.
        accessed_at: Access time; defaults to now (UTC).
    """
    accessed_at = accessed_at or datetime.now(UTC)
    metadata = CitationMetadata(
        title=bookmark.title or None,
        author=bookmark.author,
        site_name=bookmark.site_name,
        published_at=bookmark.published_at,
        url=bookmark.url or None,
        accessed_at=format_rfc3339(accessed_at),
    )

    if style == CitationStyle.CSL_JSON:
        csl = to_csl_json(bookmark, accessed_at)
        return Citation(style=style, text=json.dumps(csl, indent=2), csl_json=csl, metadata=metadata)
    if style == CitationStyle.BIBTEX:
        bib = to_bibtex(bookmark, accessed_at)
        return Citation(style=style, text=bib, bibtex=bib, metadata=metadata)

    formatters = {
        CitationStyle.APA: format_apa,
        CitationStyle.MLA: format_mla,
        CitationStyle.CHICAGO: format_chicago,
    }
    if style in formatters:
        return Citation(style=style, text=formatters[style](bookmark, accessed_at), metadata=metadata)

    return Citation(
        style=CitationStyle.MARKDOWN,
        text=format_markdown(bookmark, accessed_at, highlight=highlight, quote=quote),
        metadata=metadata,
    )


def format_markdown(
    bookmark: Bookmark,
    accessed_at: datetime,
    highlight: Highlight | None = None,
    quote: str = "",
) -> str:
    """Markdown reference line, the bare URL, and an optional block quote."""
    author = _author_or_site(bookmark)
    out = f"{author}. " if author else ""
    out += f"[{_title(bookmark)}]({bookmark.url}) ({_published_or_nd(bookmark)})"
    out += f". Accessed {accessed_at:%Y-%m-%d}.\n\n{bookmark.url}\n"

    selected = quote.strip()
    if not selected and highlight is not None:
        selected = highlight.text.strip()
    if selected:
        out += f"\n> {selected}\n"
    return out


def format_apa(bookmark: Bookmark, accessed_at: datetime) -> str:
    author = _author_or_site(bookmark)
    published = _published_or_nd(bookmark)
    if not author:
        return f"{_title(bookmark)}. ({published}). Retrieved {accessed_at:%Y-%m-%d}, from {bookmark.url}"
    return f"{author}. ({published}). {_title(bookmark)}. {bookmark.url}"


def format_mla(bookmark: Bookmark, accessed_at: datetime) -> str:
    author = _author_or_site(bookmark)
    site = (bookmark.site_name or "").strip()
    accessed = f"{accessed_at.day} {accessed_at:%b %Y}"
    body = f'"{_title(bookmark)}." {site}, {_published_or_nd(bookmark)}, {bookmark.url}. Accessed {accessed}.'
    return f"{author}. {body}" if author else body


def format_chicago(bookmark: Bookmark, accessed_at: datetime) -> str:
    author = _author_or_site(bookmark)
    accessed = f"{accessed_at:%B} {accessed_at.day}, {accessed_at.year}"
    if not author:
        return f'"{_title(bookmark)}." Accessed {accessed}. {bookmark.url}.'
    return (
        f'{author}. "{_title(bookmark)}." {_published_or_nd(bookmark)}. '
        f"Accessed {accessed}. {bookmark.url}."
    )


def to_csl_json(bookmark: Bookmark, accessed_at: datetime) -> dict[str, Any]:
    """CSL-JSON ``webpage`` item."""
    item: dict[str, Any] = {
        "type": "webpage",
        "title": _title(bookmark),
        "URL": bookmark.url,
        "accessed": _date_parts(accessed_at),
    }
    if bookmark.author:
        item["author"] = [parse_author(bookmark.author)]
    elif bookmark.site_name:
        item["author"] = [{"literal": bookmark.site_name}]
    published = parse_published(bookmark.published_at)
    if published is not None:
        item["issued"] = _date_parts(published)
    return item


def to_bibtex(bookmark: Bookmark, accessed_at: datetime) -> str:
    """
    BibTeX ``@online`` entry.

    The key is the lower-cased site name without spaces (or ``source``), the
    publication year (or ``n.d.``) and the first six hex digits of the URL's SHA-1.
    """
    published = parse_published(bookmark.published_at)
    year = str(published.year) if published is not None else NO_DATE
    key_base = (bookmark.site_name or "").strip() or "source"
    key_base = key_base.replace(" ", "").lower()
    digest = hashlib.sha1(bookmark.url.encode()).hexdigest()[:6]

    lines = [f"@online{{{key_base}{year}{digest},", f"  title = {{{_escape_bib(_title(bookmark))}}},"]
    if bookmark.author:
        lines.append(f"  author = {{{_escape_bib(bookmark.author)}}},")
    if published is not None:
        lines.append(f"  year = {{{year}}},")
    lines.append(f"  url = {{{_escape_bib(bookmark.url)}}},")
    lines.append(f"  urldate = {{{accessed_at:%Y-%m-%d}}},")
    lines.append("}")
    return "\n".join(lines) + "\n"


def parse_author(author: str) -> dict[str, str]:
    """Split a display name into CSL given/family parts; single words stay literal."""
    parts = author.split()
    if not parts:
        return {"literal": ""}
    if len(parts) == 1:
        return {"literal": parts[0]}
    return {"given": " ".join(parts[:-1]), "family": parts[-1]}


def parse_published(raw: str | None) -> datetime | None:
    """Parse a publication date: RFC 3339, ``YYYY-MM-DD`` or RFC 1123."""
    raw = (raw or "").strip()
    if not raw:
        return None
    try:
        if "T" in raw:
            return datetime.fromisoformat(raw)
        return datetime.combine(date.fromisoformat(raw), datetime.min.time(), tzinfo=UTC)
    except ValueError:
        pass
    try:
        return parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None


def format_rfc3339(value: datetime) -> str:
    """Format with second precision, using ``Z`` for UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat(timespec="seconds").replace("+00:00", "Z")


def _date_parts(value: datetime) -> dict[str, list[list[int]]]:
    if value.tzinfo is not None:
        value = value.astimezone(UTC)
    return {"date-parts": [[value.year, value.month, value.day]]}


def _author_or_site(bookmark: Bookmark) -> str:
    return (bookmark.author or "").strip() or (bookmark.site_name or "").strip()


def _published_or_nd(bookmark: Bookmark) -> str:
    return (bookmark.published_at or "").strip() or NO_DATE


def _title(bookmark: Bookmark) -> str:
    return bookmark.title.strip() or bookmark.url.strip()


def _escape_bib(value: str) -> str:
    return value.replace("{", "\\{").replace("}", "\\}")

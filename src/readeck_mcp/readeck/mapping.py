"""
Normalization of upstream JSON into the internal schemas.

Readeck has changed field names between releases, so every normalized field is
resolved by probing an ordered tuple of candidate keys and taking the first
present, non-empty value. Supporting a new upstream shape means adding a key to
the relevant table below.
"""

import math
from typing import Any

from .schemas import Bookmark, Highlight, Label

BOOKMARK_KEYS: dict[str, tuple[str, ...]] = {
    "id": ("id", "uid"),
    "url": ("url", "link"),
    "title": ("title",),
    "site_name": ("site_name", "site", "domain"),
    "author": ("author", "byline"),
    "content_text": ("content_text", "text", "content"),
    "content_html": ("content_html", "html"),
}
BOOKMARK_TIME_KEYS: dict[str, tuple[str, ...]] = {
    "published_at": ("published_at", "published"),
    "created_at": ("created_at", "created"),
    "updated_at": ("updated_at", "updated"),
}
BOOKMARK_BOOL_KEYS: dict[str, tuple[str, ...]] = {
    "is_archived": ("is_archived", "archived"),
    "is_favorite": ("is_favorite", "favorite"),
}
BOOKMARK_LABEL_KEYS = ("labels", "tags")
BOOKMARK_HIGHLIGHT_KEYS = ("highlights",)

LABEL_KEYS: dict[str, tuple[str, ...]] = {
    "id": ("id", "uid"),
    "name": ("name", "label", "title"),
    "color": ("color", "hex"),
}

HIGHLIGHT_KEYS: dict[str, tuple[str, ...]] = {
    "id": ("id", "uid"),
    "bookmark_id": ("bookmark_id", "article_id"),
    "text": ("text", "quote"),
    "note": ("note", "comment"),
    "color": ("color",),
}
HIGHLIGHT_TIME_KEYS = ("created_at", "created")

# Envelope keys that may hold a list payload, in priority order
LIST_KEYS = ("items", "results", "bookmarks", "labels", "highlights", "data")
CURSOR_KEYS = ("next_cursor", "next", "cursor")

SNIPPET_KEYS = ("snippet", "excerpt", "summary", "description", "content_text")
SNIPPET_MAX_LENGTH = 280

_TRUE_TOKENS = {"true", "1", "yes"}
_FALSE_TOKENS = {"false", "0", "no"}


def first_non_empty_string(obj: dict[str, Any], *keys: str) -> str | None:
    """Return the first non-blank string (or finite number, as an integer string) among keys."""
    for key in keys:
        value = obj.get(key)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, str):
            if value.strip():
                return value
        elif isinstance(value, int) or (isinstance(value, float) and math.isfinite(value)):
            return str(int(value))
    return None


def first_time(obj: dict[str, Any], *keys: str) -> str | None:
    """Return the first non-blank timestamp string among keys, trimmed."""
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def coerce_bool(value: Any) -> bool | None:
    """
    Coerce a loosely-typed flag.

    Accepts native booleans, numbers (non-zero is true) and the string tokens
    true/1/yes and false/0/no. Returns None for anything else.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return value != 0
    if isinstance(value, str):
        token = value.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    return None


def first_bool(obj: dict[str, Any], *keys: str) -> bool:
    """Return the first coercible flag among keys, defaulting to False."""
    for key in keys:
        coerced = coerce_bool(obj.get(key))
        if coerced is not None:
            return coerced
    return False


def _first_array(obj: dict[str, Any], key: str) -> list[Any]:
    value = obj.get(key)
    return value if isinstance(value, list) else []


def map_label(obj: dict[str, Any]) -> Label | None:
    """Normalize a label object. Returns None when it has no usable name."""
    name = first_non_empty_string(obj, *LABEL_KEYS["name"])
    if name is None or not name.strip():
        return None
    return Label(
        id=first_non_empty_string(obj, *LABEL_KEYS["id"]),
        name=name.strip(),
        color=first_non_empty_string(obj, *LABEL_KEYS["color"]),
    )


def extract_labels(obj: dict[str, Any], keys: tuple[str, ...] = BOOKMARK_LABEL_KEYS) -> list[Label]:
    """Extract labels from the first key holding usable entries (objects or bare strings)."""
    for key in keys:
        labels: list[Label] = []
        for item in _first_array(obj, key):
            if isinstance(item, dict):
                label = map_label(item)
                if label is not None:
                    labels.append(label)
            elif isinstance(item, str) and item.strip():
                labels.append(Label(name=item.strip()))
        if labels:
            return labels
    return []


def map_highlight(obj: dict[str, Any]) -> Highlight | None:
    """Normalize a highlight object. Returns None when it has no identity."""
    highlight_id = first_non_empty_string(obj, *HIGHLIGHT_KEYS["id"])
    if highlight_id is None:
        return None
    location = obj.get("location")
    return Highlight(
        id=highlight_id,
        bookmark_id=first_non_empty_string(obj, *HIGHLIGHT_KEYS["bookmark_id"]) or "",
        text=first_non_empty_string(obj, *HIGHLIGHT_KEYS["text"]) or "",
        note=first_non_empty_string(obj, *HIGHLIGHT_KEYS["note"]),
        color=first_non_empty_string(obj, *HIGHLIGHT_KEYS["color"]),
        created_at=first_time(obj, *HIGHLIGHT_TIME_KEYS),
        location=location if isinstance(location, dict | list) else None,
    )


def extract_highlights(obj: dict[str, Any], keys: tuple[str, ...] = BOOKMARK_HIGHLIGHT_KEYS) -> list[Highlight]:
    """Extract highlights, silently dropping records without an id."""
    for key in keys:
        highlights = [
            h for h in (map_highlight(item) for item in _first_array(obj, key) if isinstance(item, dict))
            if h is not None
        ]
        if highlights:
            return highlights
    return []


def map_bookmark(obj: dict[str, Any]) -> Bookmark:
    """Normalize a bookmark object. The title falls back to the URL."""
    fields: dict[str, Any] = {
        name: first_non_empty_string(obj, *keys) for name, keys in BOOKMARK_KEYS.items()
    }
    fields.update({name: first_time(obj, *keys) for name, keys in BOOKMARK_TIME_KEYS.items()})
    fields.update({name: first_bool(obj, *keys) for name, keys in BOOKMARK_BOOL_KEYS.items()})

    bookmark = Bookmark(
        id=fields.pop("id") or "",
        url=fields.pop("url") or "",
        title=fields.pop("title") or "",
        labels=extract_labels(obj),
        highlights=extract_highlights(obj),
        **fields,
    )
    if not bookmark.title and bookmark.url:
        bookmark.title = bookmark.url
    return bookmark


def extract_items_and_cursor(obj: dict[str, Any] | None) -> tuple[list[dict[str, Any]], str | None]:
    """
    Find the list payload and continuation cursor in a response envelope.

    Tries each of LIST_KEYS in order; when none holds objects, a single object
    carrying an ``id`` is treated as a one-element list.
    """
    if not obj:
        return [], None

    cursor = first_non_empty_string(obj, *CURSOR_KEYS)
    for key in LIST_KEYS:
        items = [item for item in _first_array(obj, key) if isinstance(item, dict)]
        if items:
            return items, cursor
    if "id" in obj:
        return [obj], cursor
    return [], cursor


def normalize_labels(labels: list[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate case-insensitively, keeping first occurrences."""
    out: list[str] = []
    seen: set[str] = set()
    for label in labels:
        clean = label.strip()
        if not clean:
            continue
        key = clean.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(clean)
    return out


def snippet_from(obj: dict[str, Any]) -> str | None:
    """Build a one-line preview from the first descriptive field available."""
    text = first_non_empty_string(obj, *SNIPPET_KEYS)
    if text is None:
        return None
    text = text.replace("\n", " ").strip()
    if len(text) > SNIPPET_MAX_LENGTH:
        text = text[:SNIPPET_MAX_LENGTH] + "..."
    return text or None

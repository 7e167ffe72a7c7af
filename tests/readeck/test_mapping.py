"""Tests for normalization of upstream JSON."""

import pytest

from readeck_mcp.readeck.mapping import (
    coerce_bool,
    extract_items_and_cursor,
    extract_labels,
    first_non_empty_string,
    map_bookmark,
    map_highlight,
    normalize_labels,
    snippet_from,
)


class TestScalarHelpers:
    """Tests for key probing and coercion helpers."""

    def test__first_non_empty_string__skips_blanks_and_converts_numbers(self) -> None:
        assert first_non_empty_string({"id": " ", "uid": 42}, "id", "uid") == "42"
        assert first_non_empty_string({"id": 3.0}, "id") == "3"
        assert first_non_empty_string({"id": True}, "id") is None
        assert first_non_empty_string({}, "id") is None

    def test__first_non_empty_string__skips_non_finite_numbers(self) -> None:
        """NaN and Infinity, which httpx decodes from JSON, fall through to the next key."""
        record = {"id": float("nan"), "uid": float("inf"), "key": "bk1"}

        assert first_non_empty_string(record, "id", "uid", "key") == "bk1"
        assert first_non_empty_string({"id": float("-inf")}, "id") is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (True, True),
            (False, False),
            (1, True),
            (0, False),
            (2.5, True),
            (" Yes ", True),
            ("TRUE", True),
            ("1", True),
            ("no", False),
            ("0", False),
            ("maybe", None),
            (None, None),
            ([], None),
        ],
    )
    def test__coerce_bool(self, value: object, expected: bool | None) -> None:
        assert coerce_bool(value) is expected


class TestMapBookmark:
    """Tests for bookmark normalization."""

    def test__map_bookmark__alternate_keys(self) -> None:
        """Older field names resolve to the same normalized fields."""
        bookmark = map_bookmark({
            "uid": 12,
            "link": "https://example.com",
            "site": "Example",
            "byline": "A. Writer",
            "published": " 2024-01-01 ",
            "created": "2024-01-02T00:00:00Z",
            "archived": "1",
            "favorite": 0,
            "tags": ["one", " ", {"label": "two"}],
            "html": "<p>x</p>",
        })

        assert bookmark.id == "12"
        assert bookmark.url == "https://example.com"
        assert bookmark.site_name == "Example"
        assert bookmark.author == "A. Writer"
        assert bookmark.published_at == "2024-01-01"
        assert bookmark.created_at == "2024-01-02T00:00:00Z"
        assert bookmark.is_archived is True
        assert bookmark.is_favorite is False
        assert bookmark.label_names == ["one", "two"]
        assert bookmark.content_html == "<p>x</p>"

    def test__map_bookmark__title_falls_back_to_url(self) -> None:
        assert map_bookmark({"id": "1", "url": "https://example.com"}).title == "https://example.com"

    def test__map_bookmark__preferred_key_wins(self) -> None:
        bookmark = map_bookmark({"is_archived": False, "archived": True})
        assert bookmark.is_archived is False

    def test__map_bookmark__empty_object(self) -> None:
        bookmark = map_bookmark({})
        assert bookmark.id == ""
        assert bookmark.labels == []
        assert bookmark.highlights == []

    def test__map_bookmark__embedded_highlights_without_id_dropped(self) -> None:
        bookmark = map_bookmark({"id": "b", "highlights": [{"text": "orphan"}, {"id": "h1", "quote": "q"}]})
        assert [(h.id, h.text) for h in bookmark.highlights] == [("h1", "q")]


class TestLabelsAndHighlights:
    """Tests for label and highlight normalization."""

    def test__extract_labels__first_usable_key(self) -> None:
        """An empty primary key falls through to the next one."""
        labels = extract_labels({"labels": [], "tags": [{"name": "x", "color": "#fff"}]})
        assert [(label.name, label.color) for label in labels] == [("x", "#fff")]

    def test__map_highlight__fields(self) -> None:
        highlight = map_highlight({
            "uid": "h9",
            "article_id": "b1",
            "quote": "text",
            "comment": "note",
            "created_at": "2024-01-01",
            "location": {"start": 1},
        })

        assert highlight is not None
        assert highlight.id == "h9"
        assert highlight.bookmark_id == "b1"
        assert highlight.note == "note"
        assert highlight.location == {"start": 1}

    def test__map_highlight__without_id_is_none(self) -> None:
        assert map_highlight({"text": "orphan"}) is None

    def test__normalize_labels__case_insensitive_dedup(self) -> None:
        assert normalize_labels([" Python ", "python", "", "Web", "web ", "a"]) == ["Python", "Web", "a"]


class TestEnvelopes:
    """Tests for list envelope and cursor extraction."""

    @pytest.mark.parametrize("key", ["items", "results", "bookmarks", "labels", "highlights", "data"])
    def test__extract_items_and_cursor__list_keys(self, key: str) -> None:
        items, cursor = extract_items_and_cursor({key: [{"id": "1"}, "junk"], "next": "c2"})
        assert items == [{"id": "1"}]
        assert cursor == "c2"

    def test__extract_items_and_cursor__single_object(self) -> None:
        items, cursor = extract_items_and_cursor({"id": "1", "title": "t"})
        assert items == [{"id": "1", "title": "t"}]
        assert cursor is None

    def test__extract_items_and_cursor__empty(self) -> None:
        assert extract_items_and_cursor({}) == ([], None)
        assert extract_items_and_cursor({"items": [], "next_cursor": 5}) == ([], "5")


class TestSnippet:
    """Tests for search result snippets."""

    def test__snippet_from__truncates(self) -> None:
        snippet = snippet_from({"excerpt": "x" * 300})
        assert snippet == "x" * 280 + "..."

    def test__snippet_from__priority_and_missing(self) -> None:
        assert snippet_from({"description": "desc", "snippet": "snip"}) == "snip"
        assert snippet_from({"title": "no snippet"}) is None

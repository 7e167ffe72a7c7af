"""Tests for Markdown and plain-text bookmark rendering."""

import pytest
import yaml

from readeck_mcp.readeck.schemas import Bookmark, Highlight, Label
from readeck_mcp.shared.render import (
    CONTENT_UNAVAILABLE,
    bookmark_content_markdown,
    bookmark_content_text,
    highlights_markdown,
    html_to_text,
    normalize_whitespace,
)


def _bookmark(**overrides: object) -> Bookmark:
    fields: dict = {
        "id": "bk1",
        "url": "https://example.com/a",
        "title": 'Say "hello"',
        "author": "Jane Q Doe",
        "site_name": "Example Blog",
        "published_at": "2024-02-10T08:00:00Z",
        "labels": [Label(name="python"), Label(name="async")],
        "content_text": "First   line\n\n  Second\tline  ",
    }
    fields.update(overrides)
    return Bookmark(**fields)


def _split_front_matter(rendered: str) -> tuple[dict, str]:
    assert rendered.startswith("---\n")
    front_matter, body = rendered[len("---\n"):].split("\n---\n", 1)
    return yaml.safe_load(front_matter), body


class TestBookmarkContentMarkdown:
    """Tests for the Markdown document with front matter."""

    def test__markdown__front_matter_and_body(self) -> None:
        """Front matter parses back to the bookmark fields; the body follows a blank line."""
        front_matter, body = _split_front_matter(bookmark_content_markdown(_bookmark()))

        assert front_matter == {
            "title": 'Say "hello"',
            "url": "https://example.com/a",
            "author": "Jane Q Doe",
            "site_name": "Example Blog",
            "published_at": "2024-02-10T08:00:00Z",
            "created_at": "",
            "updated_at": "",
            "readeck_id": "bk1",
            "archived": False,
            "labels": ["python", "async"],
        }
        assert body == "\nFirst line\n\nSecond line\n"

    def test__markdown__front_matter_keeps_field_order(self) -> None:
        front_matter, _ = _split_front_matter(bookmark_content_markdown(_bookmark()))

        assert list(front_matter) == [
            "title", "url", "author", "site_name", "published_at", "created_at",
            "updated_at", "readeck_id", "archived", "labels",
        ]

    def test__markdown__front_matter_special_characters(self) -> None:
        """Titles with YAML syntax, line breaks and non-ASCII text survive a round trip."""
        title = "Re: #1 - [draft]\nSecond line: café"
        front_matter, _ = _split_front_matter(
            bookmark_content_markdown(_bookmark(title=title, labels=[Label(name="- x: y")])),
        )

        assert front_matter["title"] == title
        assert front_matter["labels"] == ["- x: y"]

    def test__markdown__no_labels_and_no_content(self) -> None:
        """An empty label list renders as [] and missing content as a placeholder."""
        rendered = bookmark_content_markdown(
            _bookmark(labels=[], content_text=None, is_archived=True),
        )

        assert "archived: true\nlabels: []\n---\n" in rendered
        assert rendered.endswith(f"\n\n{CONTENT_UNAVAILABLE}\n")

    def test__markdown__highlights_section(self) -> None:
        bookmark = _bookmark(highlights=[Highlight(id="h1", text="Quoted")])

        without = bookmark_content_markdown(bookmark)
        with_highlights = bookmark_content_markdown(bookmark, include_highlights=True)

        assert "## Highlights" not in without
        assert with_highlights.endswith("\n## Highlights\n\n> Quoted\n- Highlight ID: `h1`\n")


class TestHighlightsMarkdown:
    """Tests for rendering highlights as block quotes."""

    def test__highlights_markdown__note_and_blank_skipped(self) -> None:
        """Notes get their own line and highlights without text are skipped."""
        rendered = highlights_markdown([
            Highlight(id="h1", text=" The loop ", note="Key point"),
            Highlight(id="h2", text="   "),
            Highlight(id="h3", text="Await yields"),
        ])

        assert rendered == (
            "> The loop\n- Note: Key point\n- Highlight ID: `h1`\n"
            "\n"
            "> Await yields\n- Highlight ID: `h3`\n"
        )

    def test__highlights_markdown__empty(self) -> None:
        assert highlights_markdown([]) == ""


class TestPlainText:
    """Tests for plain-text extraction."""

    def test__content_text__prefers_text_over_html(self) -> None:
        bookmark = _bookmark(content_text="plain", content_html="<p>markup</p>")
        assert bookmark_content_text(bookmark) == "plain"

    def test__content_text__falls_back_to_html(self) -> None:
        bookmark = _bookmark(content_text="  ", content_html="<p>Fish &amp; <b>chips</b></p>")
        assert bookmark_content_text(bookmark) == "Fish & chips"

    def test__content_text__nothing_available(self) -> None:
        assert bookmark_content_text(_bookmark(content_text=None)) == ""

    def test__html_to_text__strips_tags_across_lines(self) -> None:
        assert html_to_text('<div\nclass="x">Hello</div>\n<p>World</p>') == "Hello\nWorld"

    def test__normalize_whitespace__crlf_and_runs(self) -> None:
        assert normalize_whitespace("  a  b\r\n c\rd  ") == "a b\nc\nd"

    def test__html_to_text__drops_script_and_style(self) -> None:
        markup = "<style>p { color: red; }</style><script>var x = 1;</script><p>Hello</p>"
        assert html_to_text(markup) == "Hello"

    def test__html_to_text__angle_bracket_in_attribute(self) -> None:
        assert html_to_text('<a title="a>b" href="/x">link</a>') == "link"

    @pytest.mark.parametrize(
        ("markup", "expected"),
        [
            ("<p>First</p><p>Second</p>", "First\nSecond"),
            ("<h1>Title</h1><ul><li>one</li><li>two</li></ul>", "Title\none\ntwo"),
            ("line one<br>line two", "line one\nline two"),
            ("<p>Fish &amp; <b>chips</b> <i>and</i> peas</p>", "Fish & chips and peas"),
        ],
    )
    def test__html_to_text__block_and_inline_elements(self, markup: str, expected: str) -> None:
        """Block elements and line breaks start new lines; inline elements stay in the line."""
        assert html_to_text(markup) == expected

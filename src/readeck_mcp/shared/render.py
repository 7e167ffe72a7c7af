"""
Markdown and plain-text rendering of bookmarks.

The Markdown document starts with a YAML front matter block so agents can read
the bibliographic fields without parsing prose.
"""

import re

import yaml
from bs4 import BeautifulSoup

from ..readeck.schemas import Bookmark, Highlight

CONTENT_UNAVAILABLE = "(content unavailable)"

_WS_RE = re.compile(r"\s+")
_SKIPPED_TAGS = ["script", "style", "noscript", "template"]
_BLOCK_TAGS = [
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt", "figcaption",
    "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main",
    "nav", "ol", "p", "pre", "section", "table", "td", "th", "tr", "ul",
]


def bookmark_front_matter(bookmark: Bookmark) -> str:
    """YAML mapping of the bibliographic fields, without the ``---`` fences."""
    fields = {
        "title": bookmark.title or "",
        "url": bookmark.url or "",
        "author": bookmark.author or "",
        "site_name": bookmark.site_name or "",
        "published_at": bookmark.published_at or "",
        "created_at": bookmark.created_at or "",
        "updated_at": bookmark.updated_at or "",
        "readeck_id": bookmark.id,
        "archived": bookmark.is_archived,
        "labels": bookmark.label_names,
    }
    return yaml.safe_dump(
        fields,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    ).strip()


def bookmark_content_markdown(bookmark: Bookmark, include_highlights: bool = False) -> str:
    """Render a bookmark as front matter plus body text, optionally followed by highlights."""
    out = f"---\n{bookmark_front_matter(bookmark)}\n---\n\n"
    out += (bookmark_content_text(bookmark) or CONTENT_UNAVAILABLE) + "\n"

    if include_highlights and bookmark.highlights:
        out += "\n## Highlights\n\n" + highlights_markdown(bookmark.highlights)
    return out


def bookmark_content_text(bookmark: Bookmark) -> str:
    """Plain text of a bookmark: the stored text, else its HTML converted to text."""
    if bookmark.content_text and bookmark.content_text.strip():
        return normalize_whitespace(bookmark.content_text)
    if bookmark.content_html and bookmark.content_html.strip():
        return html_to_text(bookmark.content_html)
    return ""


def highlights_markdown(highlights: list[Highlight]) -> str:
    """
    Render highlights as block quotes.

    Each entry is the quoted text, an optional ``- Note:`` line and the
    highlight id; entries are separated by a blank line. Highlights without
    text are skipped.
    """
    blocks = []
    for highlight in highlights:
        text = highlight.text.strip()
        if not text:
            continue
        block = f"> {text}\n"
        note = (highlight.note or "").strip()
        if note:
            block += f"- Note: {note}\n"
        block += f"- Highlight ID: `{highlight.id}`\n"
        blocks.append(block)
    return "\n".join(blocks)


def html_to_text(markup: str) -> str:
    """
    Convert article HTML to plain text.

    Script and style bodies are dropped, each block element starts a new line
    and blank lines are removed after whitespace normalization.
    """
    soup = BeautifulSoup(markup, "lxml")
    for tag in soup(_SKIPPED_TAGS):
        tag.decompose()
    for br in soup("br"):
        br.replace_with("\n")
    for tag in soup(_BLOCK_TAGS):
        tag.insert_before("\n")
        tag.insert_after("\n")
    text = normalize_whitespace(soup.get_text())
    return "\n".join(line for line in text.split("\n") if line)


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace within each line and trim the result."""
    text = text.strip()
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_WS_RE.sub(" ", line.strip()) for line in text.split("\n")]
    return "\n".join(lines).strip()

"""Pydantic schemas for normalized Readeck objects and client results."""
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ArchivedMode(StrEnum):
    """How archived bookmarks are treated by search."""

    EXCLUDE = "exclude"
    INCLUDE = "include"
    ONLY = "only"


class SortMode(StrEnum):
    """Search result ordering."""

    RELEVANCE = "relevance"
    UPDATED_DESC = "updated_desc"
    CREATED_DESC = "created_desc"
    PUBLISHED_DESC = "published_desc"


class CitationStyle(StrEnum):
    """Supported citation output styles."""

    APA = "apa"
    MLA = "mla"
    CHICAGO = "chicago"
    BIBTEX = "bibtex"
    CSL_JSON = "csl-json"
    MARKDOWN = "markdown"


class Label(BaseModel):
    """Schema for a bookmark label."""

    id: str | None = None
    name: str = Field(..., min_length=1)
    color: str | None = None


class Highlight(BaseModel):
    """Schema for a highlight (annotation) on a bookmark."""

    id: str
    bookmark_id: str = ""
    text: str = ""
    note: str | None = None
    color: str | None = None
    created_at: str | None = None  # Free-form upstream timestamp
    location: dict[str, Any] | list[Any] | None = None  # Opaque upstream payload


class Bookmark(BaseModel):
    """
    Schema for a normalized bookmark.

    Timestamps are kept as the strings the upstream sent; formats vary between
    Readeck versions and are only parsed where a comparison needs them.
    """

    id: str = ""
    url: str = ""
    title: str = ""
    site_name: str | None = None
    author: str | None = None
    published_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    is_archived: bool = False
    is_favorite: bool = False
    labels: list[Label] = Field(default_factory=list)
    content_text: str | None = None
    content_html: str | None = None
    highlights: list[Highlight] = Field(default_factory=list)

    @property
    def label_names(self) -> list[str]:
        """Names of non-blank labels, in order."""
        return [label.name for label in self.labels if label.name.strip()]


class BookmarkSummary(BaseModel):
    """Schema for a bookmark in search results."""

    id: str
    title: str
    url: str
    is_archived: bool
    labels: list[str] = Field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None
    published_at: str | None = None
    snippet: str | None = None


class IncludeOptions(BaseModel):
    """Which optional parts of a bookmark to fetch."""

    content: bool = False
    highlights: bool = True
    labels: bool = True


class SearchOptions(BaseModel):
    """Normalized search parameters."""

    query: str = ""
    title: str = ""
    text: str = ""
    labels: list[str] = Field(default_factory=list)
    archived: ArchivedMode = ArchivedMode.EXCLUDE
    favorites: bool | None = None
    sort: SortMode = SortMode.UPDATED_DESC
    limit: int = 0
    cursor: str = ""


class SearchResult(BaseModel):
    """Schema for a page of search results."""

    items: list[BookmarkSummary]
    next_cursor: str | None = None


class LabelListResult(BaseModel):
    """Schema for a page of labels."""

    labels: list[Label]
    next_cursor: str | None = None


class HighlightListResult(BaseModel):
    """Schema for a page of highlights."""

    highlights: list[Highlight]
    next_cursor: str | None = None


class ArchiveResult(BaseModel):
    """Schema for the archive-state change result."""

    id: str
    is_archived: bool
    updated_at: str | None = None


class SetLabelsResult(BaseModel):
    """Schema for the label replacement result."""

    id: str
    labels: list[str]


class CitationMetadata(BaseModel):
    """Bibliographic fields a citation was built from."""

    title: str | None = None
    author: str | None = None
    site_name: str | None = None
    published_at: str | None = None
    url: str | None = None
    accessed_at: str


class Citation(BaseModel):
    """Schema for a generated citation."""

    style: CitationStyle
    text: str | None = None
    csl_json: dict[str, Any] | None = None
    bibtex: str | None = None
    metadata: CitationMetadata

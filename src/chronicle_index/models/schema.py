"""Data models for the Chronicle index.

Parser output (ParsedNote and friends) and the read models returned by the
repositories and the search engine.
"""

import datetime
from datetime import timezone
from typing import List, Optional

from pydantic import BaseModel, Field

# Extension appended to a raw link target during resolution and backlink
# matching. Stored paths always carry it.
NOTE_EXTENSION = ".md"


def format_timestamp(epoch_seconds: float) -> str:
    """Render a POSIX timestamp as an ISO 8601 UTC string (``...Z``)."""
    moment = datetime.datetime.fromtimestamp(epoch_seconds, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


class Frontmatter(BaseModel):
    """Recognised keys of a note's YAML metadata block."""

    title: Optional[str] = None
    created: Optional[str] = None
    modified: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class ExtractedLink(BaseModel):
    """A ``[[target]]`` or ``[[target|display]]`` occurrence in note text."""

    target: str
    display: Optional[str] = None
    line_number: int


class ParsedNote(BaseModel):
    """Everything the parser derives from one note's text."""

    title: str
    frontmatter: Optional[Frontmatter] = None
    links: List[ExtractedLink] = Field(default_factory=list)
    word_count: int = 0
    content: str = ""

    @property
    def tags(self) -> List[str]:
        """Frontmatter tags, or an empty list when there is no metadata."""
        return list(self.frontmatter.tags) if self.frontmatter else []


class NoteMeta(BaseModel):
    """Indexed metadata of a note (one row of the notes table)."""

    id: int
    path: str
    title: str
    created_at: Optional[str] = None
    modified_at: Optional[str] = None
    content_hash: Optional[str] = None
    word_count: int = 0


class Note(NoteMeta):
    """A note with its current file content and tags."""

    content: str
    tags: List[str] = Field(default_factory=list)


class Link(BaseModel):
    """One stored link row."""

    id: int
    source_id: int
    target_path: str
    target_id: Optional[int] = None
    display_text: Optional[str] = None
    line_number: Optional[int] = None

    @property
    def is_resolved(self) -> bool:
        return self.target_id is not None


class Backlink(BaseModel):
    """A link elsewhere in the vault whose target matches a given path."""

    source_id: int
    source_path: str
    source_title: str
    line_number: Optional[int] = None
    display_text: Optional[str] = None
    # Filled by the vault facade from the source file, never stored
    context: Optional[str] = None


class SearchResult(BaseModel):
    """A full-text search hit.

    ``rank`` is the FTS5 bm25 score: lower (more negative) is better.
    """

    id: int
    path: str
    title: str
    snippet: str = ""
    rank: float
    match_count: int = 1


class TagInfo(BaseModel):
    """A tag and the number of notes carrying it."""

    id: int
    name: str
    count: int


class GraphNode(BaseModel):
    id: str
    title: str
    word_count: int = 0


class GraphEdge(BaseModel):
    source: str
    target: str


class GraphData(BaseModel):
    """Nodes and edges of the vault link graph."""

    nodes: List[GraphNode] = Field(default_factory=list)
    edges: List[GraphEdge] = Field(default_factory=list)


class VaultInfo(BaseModel):
    path: str
    note_count: int
    is_open: bool

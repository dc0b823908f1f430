"""FTS5 full-text index over note titles and bodies.

``notes_fts`` is a standalone FTS5 table whose rowid is the note id. It is a
cache of the files: the Indexer rewrites a row every time its note is
re-indexed and deletes it when the note goes away.
"""
import logging
from typing import List

from sqlalchemy import text
from sqlalchemy.orm import Session

from chronicle_index.exceptions import ErrorCode
from chronicle_index.models.schema import SearchResult
from chronicle_index.storage.database import Database

logger = logging.getLogger(__name__)

DEFAULT_SNIPPET_TOKENS = 32


class FtsIndex:
    """Phrase search with bm25 ranking and highlighted snippets.

    Ranks come straight from ``bm25(notes_fts)``: lower is better, and
    results are returned in ascending rank order with ties broken by note
    id, so a fixed corpus and query always give the same list.

    Args:
        database: Store handle for the vault.
        snippet_tokens: Maximum tokens per snippet (FTS5 allows up to 64).
    """

    def __init__(self, database: Database, snippet_tokens: int = DEFAULT_SNIPPET_TOKENS):
        self.database = database
        self.snippet_tokens = snippet_tokens

    # ------------------------------------------------------------------
    # Writes (inside a caller-owned transaction)
    # ------------------------------------------------------------------

    def replace(self, session: Session, note_id: int, title: str, content: str) -> None:
        """Rewrite the full-text row of one note."""
        self.delete(session, note_id)
        session.execute(
            text(
                "INSERT INTO notes_fts (rowid, title, content) "
                "VALUES (:id, :title, :content)"
            ),
            {"id": note_id, "title": title, "content": content},
        )

    def delete(self, session: Session, note_id: int) -> None:
        session.execute(text("DELETE FROM notes_fts WHERE rowid = :id"), {"id": note_id})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def escape_query(query: str) -> str:
        """Quote the trimmed query as one FTS5 phrase.

        Embedded double quotes are doubled, so operators, column filters and
        stray quotes in user input are all matched literally. Returns an
        empty string for blank input.
        """
        trimmed = query.strip()
        if not trimmed:
            return ""
        return '"' + trimmed.replace('"', '""') + '"'

    def search(self, query: str, limit: int = 20) -> List[SearchResult]:
        """Search titles and bodies for ``query`` as a literal phrase.

        Args:
            query: Raw user input.
            limit: Maximum number of results.

        Returns:
            Hits in ascending bm25 order. Blank queries and non-positive
            limits return an empty list.

        Raises:
            StorageError: The store rejected the query.
        """
        safe_query = self.escape_query(query)
        if not safe_query or limit <= 0:
            return []

        needle = query.strip().lower()
        sql = text("""
            SELECT
                n.id,
                n.path,
                n.title,
                snippet(notes_fts, 1, '<mark>', '</mark>', '...', :tokens) AS snippet,
                bm25(notes_fts) AS rank,
                notes_fts.content AS content
            FROM notes_fts
            JOIN notes n ON notes_fts.rowid = n.id
            WHERE notes_fts MATCH :query
            ORDER BY rank, n.id
            LIMIT :limit
        """)

        with self.database.transaction("search", code=ErrorCode.SEARCH_FAILED) as session:
            rows = session.execute(
                sql,
                {"query": safe_query, "limit": limit, "tokens": self.snippet_tokens},
            ).all()

        results = []
        for note_id, path, title, snippet, rank, content in rows:
            haystack = f"{title} {content or ''}".lower()
            results.append(
                SearchResult(
                    id=note_id,
                    path=path,
                    title=title,
                    snippet=snippet or "",
                    rank=rank,
                    match_count=max(haystack.count(needle), 1),
                )
            )

        logger.debug(f"Search '{query[:50]}' returned {len(results)} results")
        return results

    def count(self) -> int:
        """Number of rows in the full-text table."""
        with self.database.reading("fts_count") as session:
            return session.execute(text("SELECT COUNT(*) FROM notes_fts")).scalar() or 0

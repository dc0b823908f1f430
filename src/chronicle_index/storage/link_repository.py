"""Repository for the link graph.

Links belong to their source note and are replaced wholesale whenever that
note is re-indexed. Resolution (filling ``target_id``) runs only for the
links of the note just written; notes indexed later do not re-resolve links
that were written earlier. Backlink queries match on the raw target text,
so they do not depend on resolution at all.
"""
import logging
from typing import Dict, List

from sqlalchemy import delete, select, text
from sqlalchemy.orm import Session

from chronicle_index.models.db_models import DBLink, DBNote
from chronicle_index.models.schema import (
    NOTE_EXTENSION,
    Backlink,
    ExtractedLink,
    GraphData,
    GraphEdge,
    GraphNode,
    Link,
)
from chronicle_index.storage.database import Database

logger = logging.getLogger(__name__)


class LinkRepository:
    """Manages wiki-link rows and answers outlink, backlink and graph queries.

    Args:
        database: Store handle for the vault.
        note_extension: Extension appended to raw targets when matching paths.
    """

    def __init__(self, database: Database, note_extension: str = NOTE_EXTENSION):
        self.database = database
        self.note_extension = note_extension

    @staticmethod
    def _to_model(db_link: DBLink) -> Link:
        return Link(
            id=db_link.id,
            source_id=db_link.source_id,
            target_path=db_link.target_path,
            target_id=db_link.target_id,
            display_text=db_link.display_text,
            line_number=db_link.line_number,
        )

    def replace_links(
        self, session: Session, source_id: int, links: List[ExtractedLink]
    ) -> None:
        """Drop every link of ``source_id`` and insert ``links``.

        The same target on the same line is stored once.
        """
        session.execute(delete(DBLink).where(DBLink.source_id == source_id))
        insert_sql = text(
            "INSERT OR IGNORE INTO links "
            "(source_id, target_path, display_text, line_number) "
            "VALUES (:source_id, :target_path, :display_text, :line_number)"
        )
        for link in links:
            session.execute(
                insert_sql,
                {
                    "source_id": source_id,
                    "target_path": link.target,
                    "display_text": link.display,
                    "line_number": link.line_number,
                },
            )

    def resolve_links(self, session: Session, source_id: int) -> None:
        """Point the links of ``source_id`` at the notes they name.

        A link resolves to the note whose path equals its raw target, or the
        raw target plus the note extension, compared case-insensitively.
        Links with no such note get ``target_id = NULL``.
        """
        session.execute(
            text("""
                UPDATE links SET target_id = (
                    SELECT id FROM notes
                    WHERE LOWER(notes.path) = LOWER(links.target_path || :ext)
                       OR LOWER(notes.path) = LOWER(links.target_path)
                    ORDER BY id
                    LIMIT 1
                )
                WHERE source_id = :source_id
            """),
            {"ext": self.note_extension, "source_id": source_id},
        )

    def get_outlinks(self, note_id: int) -> List[Link]:
        """Links owned by a note, resolved or not, in text order."""
        with self.database.reading("get_outlinks") as session:
            db_links = session.scalars(
                select(DBLink)
                .where(DBLink.source_id == note_id)
                .order_by(DBLink.line_number, DBLink.id)
            ).all()
            return [self._to_model(link) for link in db_links]

    def get_backlinks(self, path: str) -> List[Backlink]:
        """Links anywhere in the vault whose raw target names ``path``.

        Matches ``target`` or ``target + extension`` case-insensitively.
        Ordered by the linking note's modification time, newest first.
        """
        with self.database.reading("get_backlinks") as session:
            rows = session.execute(
                text("""
                    SELECT n.id, n.path, n.title, l.line_number, l.display_text
                    FROM links l
                    JOIN notes n ON l.source_id = n.id
                    WHERE LOWER(l.target_path) = LOWER(:path)
                       OR LOWER(l.target_path || :ext) = LOWER(:path)
                    ORDER BY n.modified_at DESC, n.path, l.line_number, l.id
                """),
                {"path": path, "ext": self.note_extension},
            ).all()

        return [
            Backlink(
                source_id=row[0],
                source_path=row[1],
                source_title=row[2],
                line_number=row[3],
                display_text=row[4],
            )
            for row in rows
        ]

    def get_graph(self) -> GraphData:
        """Every note as a node, and an edge per link naming an indexed note.

        A link counts when its raw target equals a note path exactly, or
        does once the note extension is appended.
        """
        with self.database.reading("get_graph") as session:
            notes = session.execute(
                select(DBNote.id, DBNote.path, DBNote.title, DBNote.word_count)
                .order_by(DBNote.modified_at.desc(), DBNote.path)
            ).all()
            links = session.execute(
                select(DBLink.source_id, DBLink.target_path)
                .order_by(DBLink.source_id, DBLink.line_number, DBLink.id)
            ).all()

        paths_by_id: Dict[int, str] = {row[0]: row[1] for row in notes}
        indexed_paths = set(paths_by_id.values())

        nodes = [
            GraphNode(id=path, title=title, word_count=word_count or 0)
            for _, path, title, word_count in notes
        ]
        edges = []
        for source_id, target_path in links:
            if target_path in indexed_paths:
                target = target_path
            elif target_path + self.note_extension in indexed_paths:
                target = target_path + self.note_extension
            else:
                continue
            edges.append(GraphEdge(source=paths_by_id[source_id], target=target))

        return GraphData(nodes=nodes, edges=edges)

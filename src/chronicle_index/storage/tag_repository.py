"""Repository for tags and note-tag associations."""
import logging
from typing import List

from sqlalchemy import delete, func, select, text
from sqlalchemy.orm import Session

from chronicle_index.models.db_models import DBNote, DBTag, note_tags
from chronicle_index.models.schema import NoteMeta, TagInfo
from chronicle_index.storage.database import Database
from chronicle_index.storage.note_repository import NoteRepository

logger = logging.getLogger(__name__)


class TagRepository:
    """Manages tags. Names compare case-insensitively and keep the casing
    they were first stored with.

    Args:
        database: Store handle for the vault.
    """

    def __init__(self, database: Database):
        self.database = database

    def get_or_create(self, session: Session, tag_name: str) -> int:
        """Return the id of ``tag_name``, creating the tag if needed.

        Uses INSERT OR IGNORE followed by SELECT; the NOCASE collation makes
        ``Rust`` and ``rust`` the same row.
        """
        session.execute(
            text("INSERT OR IGNORE INTO tags (name) VALUES (:name)"),
            {"name": tag_name},
        )
        return session.scalar(select(DBTag.id).where(DBTag.name == tag_name))

    def set_note_tags(self, session: Session, note_id: int, tags: List[str]) -> None:
        """Replace every tag association of a note."""
        session.execute(delete(note_tags).where(note_tags.c.note_id == note_id))
        for tag_name in tags:
            tag_id = self.get_or_create(session, tag_name)
            session.execute(
                text(
                    "INSERT OR IGNORE INTO note_tags (note_id, tag_id) "
                    "VALUES (:note_id, :tag_id)"
                ),
                {"note_id": note_id, "tag_id": tag_id},
            )

    def get_note_tags(self, note_id: int) -> List[str]:
        """Tag names of one note, sorted case-insensitively."""
        with self.database.reading("get_note_tags") as session:
            return self.note_tags_in_session(session, note_id)

    def note_tags_in_session(self, session: Session, note_id: int) -> List[str]:
        names = session.scalars(
            select(DBTag.name)
            .join(note_tags, DBTag.id == note_tags.c.tag_id)
            .where(note_tags.c.note_id == note_id)
            .order_by(DBTag.name)
        ).all()
        return list(names)

    def list_tags(self) -> List[TagInfo]:
        """Tags carried by at least one note, with their note counts."""
        with self.database.reading("list_tags") as session:
            rows = session.execute(
                select(DBTag.id, DBTag.name, func.count(note_tags.c.note_id))
                .join(note_tags, DBTag.id == note_tags.c.tag_id)
                .group_by(DBTag.id, DBTag.name)
                .order_by(DBTag.name)
            ).all()
            return [TagInfo(id=tag_id, name=name, count=count) for tag_id, name, count in rows]

    def find_note_ids_by_tag(self, tag_name: str) -> List[int]:
        """Ids of notes carrying ``tag_name`` (any casing)."""
        with self.database.reading("find_by_tag") as session:
            ids = session.scalars(
                select(note_tags.c.note_id)
                .join(DBTag, DBTag.id == note_tags.c.tag_id)
                .where(DBTag.name == tag_name)
                .order_by(note_tags.c.note_id)
            ).all()
            return list(ids)

    def find_notes_by_tag(self, tag_name: str) -> List[NoteMeta]:
        """Notes carrying ``tag_name``, most recently modified first."""
        with self.database.reading("find_by_tag") as session:
            db_notes = session.scalars(
                select(DBNote)
                .join(note_tags, DBNote.id == note_tags.c.note_id)
                .join(DBTag, DBTag.id == note_tags.c.tag_id)
                .where(DBTag.name == tag_name)
                .order_by(DBNote.modified_at.desc(), DBNote.path)
            ).all()
            return [NoteRepository._to_model(n) for n in db_notes]

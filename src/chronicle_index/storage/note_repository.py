"""Repository for note metadata rows."""
import logging
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chronicle_index.exceptions import NoteExistsError, NoteNotFoundError
from chronicle_index.models.db_models import DBNote
from chronicle_index.models.schema import NoteMeta
from chronicle_index.storage.database import Database

logger = logging.getLogger(__name__)


class NoteRepository:
    """Reads and writes the ``notes`` table.

    Read methods take the store lock themselves. Write helpers take the
    caller's session so the Indexer can group them into one transaction.

    Args:
        database: Store handle for the vault.
    """

    def __init__(self, database: Database):
        self.database = database

    @staticmethod
    def _to_model(db_note: DBNote) -> NoteMeta:
        return NoteMeta(
            id=db_note.id,
            path=db_note.path,
            title=db_note.title,
            created_at=db_note.created_at,
            modified_at=db_note.modified_at,
            content_hash=db_note.content_hash,
            word_count=db_note.word_count or 0,
        )

    # ------------------------------------------------------------------
    # Writes (inside a caller-owned transaction)
    # ------------------------------------------------------------------

    def upsert(
        self,
        session: Session,
        path: str,
        title: str,
        created_at: Optional[str],
        modified_at: Optional[str],
        content_hash: str,
        word_count: int,
    ) -> NoteMeta:
        """Insert a note row, or overwrite it in place keeping its id."""
        values = {
            "path": path,
            "title": title,
            "created_at": created_at,
            "modified_at": modified_at,
            "content_hash": content_hash,
            "word_count": word_count,
        }
        stmt = insert(DBNote).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DBNote.path],
            set_={key: stmt.excluded[key] for key in values if key != "path"},
        )
        session.execute(stmt)

        # The id is looked up by path: on the update branch SQLite does not
        # report the existing rowid.
        db_note = session.execute(
            select(DBNote).where(DBNote.path == path).execution_options(
                populate_existing=True
            )
        ).scalar_one()
        return self._to_model(db_note)

    def delete_by_path(self, session: Session, path: str) -> Optional[int]:
        """Delete the row for ``path``. Returns its id, or None if absent."""
        note_id = session.scalar(select(DBNote.id).where(DBNote.path == path))
        if note_id is None:
            return None
        session.execute(delete(DBNote).where(DBNote.id == note_id))
        return note_id

    def rename(self, session: Session, old_path: str, new_path: str) -> NoteMeta:
        """Change a note's path in place.

        Raises:
            NoteNotFoundError: ``old_path`` is not indexed.
            NoteExistsError: ``new_path`` is already indexed.
        """
        note_id = session.scalar(select(DBNote.id).where(DBNote.path == old_path))
        if note_id is None:
            raise NoteNotFoundError(old_path)
        if session.scalar(select(DBNote.id).where(DBNote.path == new_path)) is not None:
            raise NoteExistsError(new_path)

        try:
            session.execute(
                update(DBNote).where(DBNote.id == note_id).values(path=new_path)
            )
        except IntegrityError as e:
            raise NoteExistsError(new_path) from e

        db_note = session.execute(
            select(DBNote).where(DBNote.id == note_id).execution_options(
                populate_existing=True
            )
        ).scalar_one()
        return self._to_model(db_note)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_path(self, session: Session, path: str) -> Optional[NoteMeta]:
        db_note = session.scalar(select(DBNote).where(DBNote.path == path))
        return self._to_model(db_note) if db_note else None

    def get_by_path(self, path: str) -> Optional[NoteMeta]:
        """Get a note's metadata by vault-relative path."""
        with self.database.reading("get_note") as session:
            return self.find_by_path(session, path)

    def get_by_id(self, note_id: int) -> Optional[NoteMeta]:
        """Get a note's metadata by id."""
        with self.database.reading("get_note") as session:
            db_note = session.get(DBNote, note_id)
            return self._to_model(db_note) if db_note else None

    def list_notes(self) -> List[NoteMeta]:
        """All notes, most recently modified first."""
        with self.database.reading("list_notes") as session:
            db_notes = session.scalars(
                select(DBNote).order_by(DBNote.modified_at.desc(), DBNote.path)
            ).all()
            return [self._to_model(n) for n in db_notes]

    def count(self) -> int:
        """Number of indexed notes."""
        with self.database.reading("count_notes") as session:
            return session.scalar(select(func.count()).select_from(DBNote)) or 0

"""SQLAlchemy database models for the Chronicle index.

Four logical views are kept in one SQLite file: note metadata (``notes``),
the full-text shadow table (``notes_fts``), the link graph (``links``) and
tag associations (``tags`` + ``note_tags``). Referential cleanup is left to
SQLite: deleting a note cascades to its links and tag rows, and clears the
``target_id`` of links from other notes that pointed at it.
"""
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import (Column, ForeignKey, Integer, String, Table, Text,
                        UniqueConstraint, create_engine, event, text)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Create base class for SQLAlchemy models
Base = declarative_base()

# Association table for tags and notes
note_tags = Table(
    "note_tags",
    Base.metadata,
    Column(
        "note_id",
        Integer,
        ForeignKey("notes.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tag_id",
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class DBNote(Base):
    """Database model for an indexed note file."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    path = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    created_at = Column(String, nullable=True)
    modified_at = Column(String, nullable=True, index=True)
    content_hash = Column(String, nullable=True)
    word_count = Column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, path='{self.path}')>"


class DBTag(Base):
    """Database model for a tag. Names compare case-insensitively."""
    __tablename__ = "tags"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(collation="nocase"), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class DBLink(Base):
    """Database model for one wiki-link occurrence."""
    __tablename__ = "links"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source_id = Column(
        Integer,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_path = Column(Text, nullable=False, index=True)
    target_id = Column(
        Integer,
        ForeignKey("notes.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    display_text = Column(Text, nullable=True)
    line_number = Column(Integer, nullable=True)

    # The same target on the same line collapses to one row
    __table_args__ = (
        UniqueConstraint(
            "source_id", "target_path", "line_number", name="unique_link_occurrence"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Link(id={self.id}, source={self.source_id}, "
            f"target='{self.target_path}', resolved={self.target_id})>"
        )


def init_db(database_path: Optional[Path] = None, in_memory: bool = False) -> Engine:
    """Create the engine for one vault store and make sure the schema exists.

    The engine holds exactly one SQLite connection (``StaticPool``); callers
    serialise access to it through :class:`chronicle_index.storage.database.Database`.

    SQLite settings applied on connect:
    - foreign keys ON, so cascades and SET NULL clears are enforced
    - WAL journal for file databases
    - NORMAL synchronous mode
    """
    if in_memory or database_path is None:
        url = "sqlite://"
    else:
        database_path = Path(database_path)
        database_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{database_path}"

    engine = create_engine(
        url,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if url != "sqlite://":
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.close()

    Base.metadata.create_all(engine)
    init_fts5(engine)

    logger.debug(f"Store initialised at {url}")
    return engine


def init_fts5(engine: Engine) -> None:
    """Create the FTS5 shadow table.

    A standalone FTS5 table whose rowid is the note id. The notes table does
    not hold note bodies, so the Indexer writes title and content here
    explicitly on every re-index.
    """
    with engine.begin() as conn:
        conn.execute(text("""
            CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
                title,
                content,
                tokenize = 'porter unicode61'
            )
        """))

"""Storage layer for the Chronicle index."""

from chronicle_index.storage.database import Database
from chronicle_index.storage.fts_index import FtsIndex
from chronicle_index.storage.link_repository import LinkRepository
from chronicle_index.storage.note_repository import NoteRepository
from chronicle_index.storage.tag_repository import TagRepository

__all__ = [
    "Database",
    "FtsIndex",
    "LinkRepository",
    "NoteRepository",
    "TagRepository",
]

"""Vault facade: one open vault, its store, Indexer and read queries.

This is the surface a command layer or GUI calls. It wires a
:class:`~chronicle_index.storage.database.Database` to an Indexer and the
repositories, and adds the bits that need file access on the read side
(note content, backlink context lines).
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from chronicle_index.config import config
from chronicle_index.exceptions import (
    NoteNotFoundError,
    VaultIOError,
    VaultNotFoundError,
)
from chronicle_index.models.schema import (
    Backlink,
    GraphData,
    Link,
    Note,
    NoteMeta,
    SearchResult,
    TagInfo,
    VaultInfo,
)
from chronicle_index.observability import metrics, traced
from chronicle_index.services.events import VaultEvent, apply_event
from chronicle_index.services.indexer import Indexer
from chronicle_index.storage.database import Database
from chronicle_index.storage.fts_index import FtsIndex
from chronicle_index.storage.link_repository import LinkRepository
from chronicle_index.storage.markdown_parser import split_lines
from chronicle_index.storage.note_repository import NoteRepository
from chronicle_index.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Backlink context lines longer than this are cut to CONTEXT_CUT chars + "..."
CONTEXT_MAX_CHARS = 120
CONTEXT_CUT = 117


def truncate_context(line: str) -> str:
    """Trim a source line for display next to a backlink."""
    line = line.strip()
    if len(line) > CONTEXT_MAX_CHARS:
        return line[:CONTEXT_CUT] + "..."
    return line


class Vault:
    """An open vault.

    Use :meth:`open` rather than the constructor. Every query and every
    write goes through the vault's single store lock.
    """

    def __init__(self, indexer: Indexer, database: Database, search_limit: int = 20,
                 snippet_tokens: int = 32):
        self.indexer = indexer
        self.database = database
        self.path = indexer.vault_path
        self.search_limit = search_limit
        self.notes = NoteRepository(database)
        self.links = LinkRepository(database, indexer.note_extension)
        self.tags = TagRepository(database)
        self.fts = FtsIndex(database, snippet_tokens=snippet_tokens)
        self.is_open = True

    @classmethod
    def open(
        cls,
        vault_path: PathLike,
        database_path: Optional[PathLike] = None,
        in_memory: Optional[bool] = None,
        index_on_open: bool = False,
    ) -> "Vault":
        """Open a vault and its store.

        Args:
            vault_path: Root directory of the vault.
            database_path: Store location. Defaults to the configured path,
                normally ``<vault>/.chronicle/chronicle.db``.
            in_memory: Keep the store in memory. Defaults to the
                configuration setting.
            index_on_open: Run a full index before returning.

        Raises:
            VaultNotFoundError: ``vault_path`` does not exist.
            StorageError: The store cannot be opened.
        """
        vault_root = Path(vault_path)
        use_memory = config.in_memory_db if in_memory is None else in_memory
        db_path = (
            Path(database_path) if database_path is not None
            else config.get_database_path(vault_root)
        )

        # Validate the vault before creating anything inside it
        if not vault_root.is_dir():
            raise VaultNotFoundError(str(vault_path))

        database = Database(db_path, in_memory=use_memory)
        indexer = Indexer(vault_root, database, note_extension=config.note_extension)

        vault = cls(
            indexer,
            database,
            search_limit=config.search_limit,
            snippet_tokens=config.snippet_tokens,
        )
        logger.info(f"Opened vault {vault.path}")
        if index_on_open:
            vault.full_index()
        return vault

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def full_index(self) -> int:
        return self.indexer.full_index()

    def index_file(self, path: PathLike) -> NoteMeta:
        return self.indexer.index_file(path)

    def remove_file(self, path: PathLike) -> bool:
        return self.indexer.remove_file(path)

    def rename_file(self, old_path: PathLike, new_path: PathLike) -> NoteMeta:
        return self.indexer.rename_file(old_path, new_path)

    def apply_event(self, event: VaultEvent) -> None:
        """Apply one watcher event (see :mod:`chronicle_index.services.events`)."""
        apply_event(self.indexer, event)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @traced("vault_search")
    def search(self, query: str, limit: Optional[int] = None) -> List[SearchResult]:
        return self.fts.search(query, self.search_limit if limit is None else limit)

    def _require_note(self, path: PathLike) -> NoteMeta:
        relative = self.indexer.relative_path(path)
        note = self.notes.get_by_path(relative)
        if note is None:
            raise NoteNotFoundError(relative)
        return note

    def get_note(self, path: PathLike) -> Note:
        """Indexed metadata plus current file content and tags.

        Raises:
            NoteNotFoundError: The path is not indexed.
            VaultIOError: The file cannot be read.
        """
        meta = self._require_note(path)
        file_path = self.path / meta.path
        try:
            content = file_path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise VaultIOError(
                f"Cannot read note file: {e}", path=meta.path, original_error=e
            ) from e
        return Note(
            **meta.model_dump(),
            content=content,
            tags=self.tags.get_note_tags(meta.id),
        )

    def list_notes(self) -> List[NoteMeta]:
        return self.notes.list_notes()

    def outlinks(self, path: PathLike) -> List[Link]:
        """Links written in a note.

        Raises:
            NoteNotFoundError: The path is not indexed.
        """
        return self.links.get_outlinks(self._require_note(path).id)

    def backlinks(self, path: PathLike, with_context: bool = False) -> List[Backlink]:
        """Links elsewhere whose raw target names ``path``.

        A path nobody links to gives an empty list, indexed or not.

        Args:
            path: Vault-relative or absolute note path.
            with_context: Fill ``context`` with the linking line read from
                the source file. Unreadable sources leave it None.
        """
        backlinks = self.links.get_backlinks(self.indexer.relative_path(path))
        if with_context:
            self._add_context(backlinks)
        return backlinks

    def _add_context(self, backlinks: List[Backlink]) -> None:
        lines_by_path = {}
        for backlink in backlinks:
            if backlink.line_number is None:
                continue
            if backlink.source_path not in lines_by_path:
                try:
                    text = (self.path / backlink.source_path).read_text(encoding="utf-8")
                    lines_by_path[backlink.source_path] = split_lines(text)
                except (OSError, UnicodeDecodeError) as e:
                    logger.warning(f"No context for {backlink.source_path}: {e}")
                    lines_by_path[backlink.source_path] = []
            lines = lines_by_path[backlink.source_path]
            index = backlink.line_number - 1
            if 0 <= index < len(lines):
                backlink.context = truncate_context(lines[index])

    def list_tags(self) -> List[TagInfo]:
        return self.tags.list_tags()

    def notes_by_tag(self, tag: str) -> List[NoteMeta]:
        return self.tags.find_notes_by_tag(tag)

    def graph(self) -> GraphData:
        return self.links.get_graph()

    def info(self) -> VaultInfo:
        return VaultInfo(
            path=str(self.path),
            note_count=self.notes.count() if self.is_open else 0,
            is_open=self.is_open,
        )

    def operation_stats(self) -> Dict[str, Any]:
        """Timings and error counts of traced operations in this process."""
        return metrics.snapshot()

    def check_health(self) -> Dict[str, Any]:
        """Store integrity report, with ``operations`` from :meth:`operation_stats`."""
        health = self.database.check_health()
        health["operations"] = self.operation_stats()
        return health

    def close(self) -> None:
        if not self.is_open:
            return
        self.database.close()
        self.is_open = False
        logger.info(f"Closed vault {self.path}")

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

"""Indexer: keeps the store in step with the note files of one vault.

Each call to :meth:`Indexer.index_file` reads a file, parses it,
fingerprints it and then writes the note row, its full-text row, its links
and its tags in a single transaction, so readers never see a note with new
metadata but stale links. Full scans re-parse every file; the stored
fingerprint is informational and never used to skip work.
"""
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional, Tuple, Union

from chronicle_index.exceptions import (
    ChronicleError,
    ErrorCode,
    VaultIOError,
    VaultNotFoundError,
)
from chronicle_index.models.schema import NOTE_EXTENSION, NoteMeta, format_timestamp
from chronicle_index.observability import traced
from chronicle_index.storage.database import Database
from chronicle_index.storage import fingerprint
from chronicle_index.storage.fts_index import FtsIndex
from chronicle_index.storage.link_repository import LinkRepository
from chronicle_index.storage.markdown_parser import MarkdownParser
from chronicle_index.storage.note_repository import NoteRepository
from chronicle_index.storage.tag_repository import TagRepository

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class Indexer:
    """Indexes, removes and renames notes of one vault.

    Args:
        vault_path: Root directory of the vault.
        database: Store handle the index is written to.
        note_extension: Extension of note files (compared case-insensitively
            during full scans).

    Raises:
        VaultNotFoundError: ``vault_path`` is not an existing directory.
    """

    def __init__(
        self,
        vault_path: PathLike,
        database: Database,
        note_extension: str = NOTE_EXTENSION,
    ):
        self.vault_path = Path(vault_path).resolve()
        if not self.vault_path.is_dir():
            raise VaultNotFoundError(str(vault_path))

        self.database = database
        self.note_extension = note_extension
        self.parser = MarkdownParser(note_extension)
        self.notes = NoteRepository(database)
        self.links = LinkRepository(database, note_extension)
        self.tags = TagRepository(database)
        self.fts = FtsIndex(database)

    # ------------------------------------------------------------------
    # Path handling
    # ------------------------------------------------------------------

    def relative_path(self, path: PathLike) -> str:
        """Vault-relative POSIX form of an absolute or relative path.

        Raises:
            VaultIOError: An absolute path outside the vault.
        """
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self.vault_path)
            except ValueError:
                # The vault root may have been given through a symlink
                try:
                    candidate = candidate.resolve().relative_to(self.vault_path)
                except ValueError as e:
                    raise VaultIOError(
                        f"Path is outside the vault: {path}",
                        path=str(path),
                        original_error=e,
                    ) from e
        return candidate.as_posix()

    def absolute_path(self, path: PathLike) -> Path:
        return self.vault_path / self.relative_path(path)

    def is_note_file(self, path: Path) -> bool:
        return path.suffix.lower() == self.note_extension.lower()

    def iter_note_files(self) -> Iterator[Path]:
        """Walk the vault in sorted order, skipping hidden files and folders."""
        for root, dirnames, filenames in os.walk(self.vault_path):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for filename in sorted(filenames):
                if filename.startswith("."):
                    continue
                file_path = Path(root) / filename
                if self.is_note_file(file_path) and file_path.is_file():
                    yield file_path

    def _read(self, relative: str) -> str:
        file_path = self.vault_path / relative
        try:
            raw = file_path.read_bytes()
        except OSError as e:
            raise VaultIOError(
                f"Cannot read note file: {e}", path=relative, original_error=e
            ) from e
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise VaultIOError(
                "Note file is not valid UTF-8",
                path=relative,
                code=ErrorCode.FILE_DECODE_FAILED,
                original_error=e,
            ) from e

    def _timestamps(self, relative: str) -> Tuple[str, str]:
        try:
            stat = (self.vault_path / relative).stat()
        except OSError as e:
            raise VaultIOError(
                f"Cannot stat note file: {e}", path=relative, original_error=e
            ) from e
        created = getattr(stat, "st_birthtime", None) or stat.st_ctime
        return format_timestamp(created), format_timestamp(stat.st_mtime)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @traced("index_file")
    def index_file(self, path: PathLike) -> NoteMeta:
        """Index or re-index one note file.

        Args:
            path: Absolute or vault-relative path of the file.

        Returns:
            Metadata of the written note. Re-indexing keeps the id.

        Raises:
            VaultIOError: The file cannot be read or decoded.
            StorageError: The write transaction failed; nothing was written.
        """
        relative = self.relative_path(path)
        content = self._read(relative)
        created_at, modified_at = self._timestamps(relative)
        parsed = self.parser.parse(content, PurePosixPath(relative).name)
        content_hash = fingerprint.content_fingerprint(content)

        with self.database.transaction("index_file") as session:
            note = self.notes.upsert(
                session,
                path=relative,
                title=parsed.title,
                created_at=created_at,
                modified_at=modified_at,
                content_hash=content_hash,
                word_count=parsed.word_count,
            )
            self.fts.replace(session, note.id, parsed.title, content)
            self.links.replace_links(session, note.id, parsed.links)
            self.links.resolve_links(session, note.id)
            self.tags.set_note_tags(session, note.id, parsed.tags)

        logger.debug(
            f"Indexed {relative} (id={note.id}, links={len(parsed.links)}, "
            f"tags={len(parsed.tags)})"
        )
        return note

    @traced("remove_file")
    def remove_file(self, path: PathLike) -> bool:
        """Drop a note from the index.

        Its links and tag rows go with it; links from other notes that
        pointed at it stay, with ``target_id`` cleared. Removing a path that
        is not indexed is a no-op.

        Returns:
            True if a note was removed.
        """
        relative = self.relative_path(path)
        with self.database.transaction(
            "remove_file", code=ErrorCode.STORAGE_DELETE_FAILED
        ) as session:
            note = self.notes.find_by_path(session, relative)
            if note is None:
                return False
            self.fts.delete(session, note.id)
            self.notes.delete_by_path(session, relative)

        logger.debug(f"Removed {relative} from index")
        return True

    @traced("rename_file")
    def rename_file(self, old_path: PathLike, new_path: PathLike) -> NoteMeta:
        """Move a note to a new path, keeping its id, links, tags and text.

        Links written by other notes keep their raw targets; they follow the
        new path only once those notes are re-indexed.

        Raises:
            NoteNotFoundError: ``old_path`` is not indexed.
            NoteExistsError: ``new_path`` is already indexed.
        """
        old_relative = self.relative_path(old_path)
        new_relative = self.relative_path(new_path)
        with self.database.transaction("rename_file") as session:
            note = self.notes.rename(session, old_relative, new_relative)

        logger.debug(f"Renamed {old_relative} -> {new_relative} (id={note.id})")
        return note

    @traced("full_index")
    def full_index(self) -> int:
        """Index every note file in the vault.

        A file that fails is logged and skipped; the scan carries on.

        Returns:
            Number of files indexed successfully.
        """
        indexed = 0
        failed = 0
        for file_path in self.iter_note_files():
            try:
                self.index_file(file_path)
                indexed += 1
            except ChronicleError as e:
                failed += 1
                logger.error(f"Failed to index {file_path}: {e}")
            except Exception as e:
                failed += 1
                logger.exception(f"Unexpected error indexing {file_path}: {e}")

        if failed:
            logger.warning(f"Full index: {indexed} indexed, {failed} failed")
        else:
            logger.info(f"Full index: {indexed} notes indexed")
        return indexed

    def has_changed(self, path: PathLike) -> bool:
        """True when the file differs from what was indexed, or was never indexed.

        Raises:
            VaultIOError: The file cannot be read.
        """
        relative = self.relative_path(path)
        content = self._read(relative)
        stored: Optional[NoteMeta] = self.notes.get_by_path(relative)
        if stored is None:
            return True
        return fingerprint.has_changed(content, stored.content_hash)

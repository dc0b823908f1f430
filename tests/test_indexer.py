"""Tests for the Indexer: full scans, upserts, resolution, removal and rename."""
import re

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from chronicle_index.exceptions import (
    ErrorCode,
    NoteExistsError,
    NoteNotFoundError,
    StorageError,
    VaultIOError,
    VaultNotFoundError,
)
from chronicle_index.services.indexer import Indexer


def _count(database, table):
    with database.transaction() as session:
        return session.execute(text(f"SELECT COUNT(*) FROM {table}")).scalar()


def _fail_store(*args, **kwargs):
    raise SQLAlchemyError("disk on fire")


def _outlink_targets(indexer, path):
    note = indexer.notes.get_by_path(path)
    return [(l.target_path, l.target_id) for l in indexer.links.get_outlinks(note.id)]


class TestFullIndex:
    """Tests for scanning a whole vault."""

    def test_counts_every_note_once(self, indexer, write_note, database):
        write_note("a.md", "# A\n")
        write_note("b.md", "# B\n")
        write_note("sub/c.md", "# C\n")

        assert indexer.full_index() == 3
        assert _count(database, "notes") == 3

        # Second run upserts instead of duplicating
        assert indexer.full_index() == 3
        assert _count(database, "notes") == 3
        assert _count(database, "notes_fts") == 3

    def test_skips_hidden_paths_and_other_files(self, indexer, write_note):
        write_note("visible.md", "x")
        write_note(".hidden.md", "x")
        write_note(".obsidian/workspace.md", "x")
        write_note("sub/.trash/old.md", "x")
        write_note("readme.txt", "x")

        assert indexer.full_index() == 1
        assert [n.path for n in indexer.notes.list_notes()] == ["visible.md"]

    def test_extension_match_ignores_case(self, indexer, write_note):
        write_note("LOUD.MD", "x")
        assert indexer.full_index() == 1
        assert indexer.notes.get_by_path("LOUD.MD") is not None

    def test_store_inside_vault_is_not_scanned(self, indexer, write_note):
        write_note(".chronicle/chronicle.md", "x")
        write_note("note.md", "x")
        assert indexer.full_index() == 1

    def test_failing_file_is_skipped(self, indexer, write_note, vault_dir):
        write_note("good.md", "fine")
        (vault_dir / "bad.md").write_bytes(b"\xff\xfe\xfa not utf-8")
        write_note("later.md", "fine too")

        assert indexer.full_index() == 2
        assert indexer.notes.get_by_path("bad.md") is None

    def test_impossible_frontmatter_date_is_still_indexed(self, indexer, write_note):
        write_note("a.md", "# A\n")
        write_note("b.md", "---\ntitle: B\ncreated: 2024-02-30\ntags: [x]\n---\n# Heading B\n")
        write_note("c.md", "# C\n")

        assert indexer.full_index() == 3
        note = indexer.notes.get_by_path("b.md")
        assert note.title == "Heading B"
        assert indexer.tags.get_note_tags(note.id) == []

    def test_unexpected_error_is_skipped(self, indexer, write_note, monkeypatch):
        write_note("a.md", "x")
        write_note("b.md", "boom")
        write_note("c.md", "y")
        parse = indexer.parser.parse

        def flaky_parse(content, filename):
            if filename == "b.md":
                raise RuntimeError("parser bug")
            return parse(content, filename)

        monkeypatch.setattr(indexer.parser, "parse", flaky_parse)

        assert indexer.full_index() == 2
        assert indexer.notes.get_by_path("b.md") is None
        assert indexer.notes.get_by_path("c.md") is not None

    def test_empty_vault(self, indexer):
        assert indexer.full_index() == 0


class TestIndexFile:
    """Tests for indexing one file."""

    def test_returns_metadata(self, indexer, write_note):
        write_note("note.md", "# Hello World\n\nThis is a test note.")
        note = indexer.index_file("note.md")

        assert note.path == "note.md"
        assert note.title == "Hello World"
        assert note.word_count == 8
        assert len(note.content_hash) == 16
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", note.modified_at)
        assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", note.created_at)

    def test_accepts_absolute_paths(self, indexer, write_note):
        path = write_note("sub/deep.md", "x")
        assert indexer.index_file(path).path == "sub/deep.md"

    def test_path_outside_vault(self, indexer, tmp_path):
        outside = tmp_path / "elsewhere.md"
        outside.write_text("x")
        with pytest.raises(VaultIOError):
            indexer.index_file(outside)

    def test_missing_file(self, indexer):
        with pytest.raises(VaultIOError) as exc_info:
            indexer.index_file("nope.md")
        assert exc_info.value.code == ErrorCode.FILE_READ_FAILED

    def test_invalid_utf8(self, indexer, vault_dir):
        (vault_dir / "bad.md").write_bytes(b"\xff\xfe")
        with pytest.raises(VaultIOError) as exc_info:
            indexer.index_file("bad.md")
        assert exc_info.value.code == ErrorCode.FILE_DECODE_FAILED

    def test_reindex_keeps_id_and_updates_fields(self, indexer, write_note):
        write_note("note.md", "# First\n")
        first = indexer.index_file("note.md")

        write_note("note.md", "# Second title\n\nmore words here")
        second = indexer.index_file("note.md")

        assert second.id == first.id
        assert second.title == "Second title"
        assert second.word_count == 6
        assert second.content_hash != first.content_hash

    def test_links_replaced_on_reindex(self, indexer, write_note):
        write_note("note.md", "[[old]]\n")
        indexer.index_file("note.md")
        write_note("note.md", "[[new]]\n")
        indexer.index_file("note.md")

        assert _outlink_targets(indexer, "note.md") == [("new", None)]

    def test_duplicate_links_on_one_line_collapse(self, indexer, write_note):
        write_note("note.md", "[[x]] and [[x|again]]\n[[x]]")
        indexer.index_file("note.md")
        assert [t for t, _ in _outlink_targets(indexer, "note.md")] == ["x", "x"]

    def test_tags_replaced_on_reindex(self, indexer, write_note):
        write_note("note.md", "---\ntags: [a, b]\n---\n")
        note = indexer.index_file("note.md")
        assert indexer.tags.get_note_tags(note.id) == ["a", "b"]

        write_note("note.md", "---\ntags: [b]\n---\n")
        indexer.index_file("note.md")
        assert indexer.tags.get_note_tags(note.id) == ["b"]

        write_note("note.md", "no frontmatter any more")
        indexer.index_file("note.md")
        assert indexer.tags.get_note_tags(note.id) == []

    def test_failed_write_leaves_nothing_behind(
        self, indexer, write_note, database, monkeypatch
    ):
        write_note("note.md", "---\ntags: [a]\n---\n[[x]] body")

        monkeypatch.setattr(indexer.tags, "set_note_tags", _fail_store)

        with pytest.raises(StorageError):
            indexer.index_file("note.md")

        assert _count(database, "notes") == 0
        assert _count(database, "notes_fts") == 0
        assert _count(database, "links") == 0

    def test_failed_reindex_keeps_previous_version(
        self, indexer, write_note, monkeypatch
    ):
        write_note("note.md", "# Old\n[[a]]")
        indexer.index_file("note.md")

        write_note("note.md", "# New\n[[b]]")
        monkeypatch.setattr(indexer.tags, "set_note_tags", _fail_store)
        with pytest.raises(StorageError):
            indexer.index_file("note.md")

        assert indexer.notes.get_by_path("note.md").title == "Old"
        assert _outlink_targets(indexer, "note.md") == [("a", None)]


class TestResolution:
    """Tests for filling target_id, scoped to the note being indexed."""

    def test_resolves_with_and_without_extension(self, indexer, write_note):
        write_note("target.md", "x")
        write_note("source.md", "[[target]] [[target.md]] [[TARGET]] [[missing]]")
        target = indexer.index_file("target.md")
        indexer.index_file("source.md")

        assert _outlink_targets(indexer, "source.md") == [
            ("target", target.id),
            ("target.md", target.id),
            ("TARGET", target.id),
            ("missing", None),
        ]

    def test_resolution_is_not_retroactive(self, indexer, write_note):
        write_note("a.md", "see [[b]]")
        write_note("b.md", "# B")

        indexer.index_file("a.md")
        assert _outlink_targets(indexer, "a.md") == [("b", None)]

        b = indexer.index_file("b.md")
        assert _outlink_targets(indexer, "a.md") == [("b", None)]

        indexer.index_file("a.md")
        assert _outlink_targets(indexer, "a.md") == [("b", b.id)]

    def test_self_link_resolves(self, indexer, write_note):
        write_note("self.md", "[[self]]")
        note = indexer.index_file("self.md")
        assert _outlink_targets(indexer, "self.md") == [("self", note.id)]


class TestRemoveFile:
    """Tests for dropping a note."""

    def test_cascades_and_clears(self, indexer, write_note, database):
        write_note("b.md", "---\ntags: [gone]\n---\nzanzibarite [[a]]")
        write_note("a.md", "links to [[b]]")
        indexer.index_file("b.md")
        indexer.index_file("a.md")
        assert _outlink_targets(indexer, "a.md")[0][1] is not None

        assert indexer.remove_file("b.md") is True

        assert indexer.notes.get_by_path("b.md") is None
        assert indexer.fts.search("zanzibarite") == []
        assert _count(database, "note_tags") == 0
        # Only a's link remains, still pointing at the old path
        assert _count(database, "links") == 1
        assert _outlink_targets(indexer, "a.md") == [("b", None)]

    def test_idempotent(self, indexer, write_note):
        write_note("a.md", "x")
        indexer.index_file("a.md")
        assert indexer.remove_file("a.md") is True
        assert indexer.remove_file("a.md") is False
        assert indexer.remove_file("never-indexed.md") is False

    def test_file_need_not_exist(self, indexer, write_note, vault_dir):
        write_note("a.md", "x")
        indexer.index_file("a.md")
        (vault_dir / "a.md").unlink()
        assert indexer.remove_file(vault_dir / "a.md") is True


class TestRenameFile:
    """Tests for moving a note in place."""

    def test_keeps_id_tags_and_links(self, indexer, write_note):
        write_note("old.md", "---\ntags: [keep]\n---\n[[x]] uniqueword")
        before = indexer.index_file("old.md")

        after = indexer.rename_file("old.md", "new.md")

        assert after.id == before.id
        assert after.path == "new.md"
        assert indexer.notes.get_by_path("old.md") is None
        assert indexer.tags.get_note_tags(after.id) == ["keep"]
        assert _outlink_targets(indexer, "new.md") == [("x", None)]
        assert [r.path for r in indexer.fts.search("uniqueword")] == ["new.md"]

    def test_unknown_source(self, indexer):
        with pytest.raises(NoteNotFoundError):
            indexer.rename_file("ghost.md", "new.md")

    def test_destination_taken(self, indexer, write_note):
        write_note("a.md", "x")
        write_note("b.md", "y")
        indexer.index_file("a.md")
        indexer.index_file("b.md")
        with pytest.raises(NoteExistsError):
            indexer.rename_file("a.md", "b.md")

    def test_backlinks_follow_only_after_reindex(self, indexer, write_note):
        write_note("b.md", "# B")
        write_note("a.md", "see [[b]]")
        indexer.index_file("b.md")
        indexer.index_file("a.md")

        indexer.rename_file("b.md", "c.md")

        assert [bl.source_path for bl in indexer.links.get_backlinks("b.md")] == ["a.md"]
        assert indexer.links.get_backlinks("c.md") == []

        write_note("a.md", "see [[c]]")
        indexer.index_file("a.md")
        assert indexer.links.get_backlinks("b.md") == []
        assert [bl.source_path for bl in indexer.links.get_backlinks("c.md")] == ["a.md"]


class TestHasChanged:
    def test_not_indexed(self, indexer, write_note):
        write_note("a.md", "x")
        assert indexer.has_changed("a.md") is True

    def test_unchanged_then_changed(self, indexer, write_note):
        write_note("a.md", "x")
        indexer.index_file("a.md")
        assert indexer.has_changed("a.md") is False

        write_note("a.md", "y")
        assert indexer.has_changed("a.md") is True


class TestConstruction:
    def test_missing_vault(self, database, tmp_path):
        with pytest.raises(VaultNotFoundError):
            Indexer(tmp_path / "does-not-exist", database)

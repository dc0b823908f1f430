"""
Chronicle Index - the indexing and retrieval engine of a personal knowledge vault.

This package keeps a SQLite/FTS5 index over a directory of Markdown notes that
link to each other with [[wiki-links]]. It covers parsing, incremental
re-indexing, link resolution, full-text search, backlinks and tags.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("chronicle-index")
except PackageNotFoundError:
    __version__ = "0.3.0"

"""Common test fixtures for the Chronicle index."""

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest

from chronicle_index.config import config
from chronicle_index.observability import ROOT_LOGGER_NAME, metrics
from chronicle_index.services.indexer import Indexer
from chronicle_index.storage.database import Database
from chronicle_index.vault import Vault


@pytest.fixture
def temp_dirs():
    """Create temporary directories for the vault and the database."""
    with tempfile.TemporaryDirectory() as vault_dir:
        with tempfile.TemporaryDirectory() as db_dir:
            yield Path(vault_dir), Path(db_dir)


@pytest.fixture
def vault_dir(temp_dirs):
    return temp_dirs[0]


@pytest.fixture
def test_config(temp_dirs, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    vault_dir, db_dir = temp_dirs
    monkeypatch.setattr(config, "vault_dir", vault_dir)
    monkeypatch.setattr(config, "database_path", db_dir / "test_chronicle.db")
    monkeypatch.setattr(config, "in_memory_db", False)
    monkeypatch.setattr(config, "log_dir", db_dir / "logs")
    monkeypatch.setattr(config, "log_level", "WARNING")
    yield config


@pytest.fixture
def write_note(vault_dir) -> Callable[..., Path]:
    """Write a note file into the vault, optionally pinning its mtime."""

    def _write(relative: str, content: str, mtime: Optional[float] = None) -> Path:
        path = vault_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.encode("utf-8"))
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _write


@pytest.fixture
def database():
    """In-memory store handle."""
    db = Database(in_memory=True)
    yield db
    db.close()


@pytest.fixture
def file_database(temp_dirs):
    """File-backed store handle (WAL journal)."""
    db = Database(temp_dirs[1] / "file_store.db")
    yield db
    db.close()


@pytest.fixture
def indexer(vault_dir, database):
    return Indexer(vault_dir, database)


@pytest.fixture
def vault(test_config, vault_dir):
    """An open vault with an in-memory store."""
    with Vault.open(vault_dir, in_memory=True) as opened:
        yield opened


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def clean_log_handlers():
    """Detach handlers that configure_logging adds during a test."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    before = list(logger.handlers)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)

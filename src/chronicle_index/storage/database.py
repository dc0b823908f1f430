"""Exclusive-access handle to one vault's store.

Every vault gets one SQLite connection and one mutex. All reads and writes
run inside :meth:`Database.transaction`, so indexing and searching never
interleave within a vault and each unit of work commits or rolls back as a
whole.
"""
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, ContextManager, Dict, Iterator, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from chronicle_index.exceptions import ChronicleError, ErrorCode, StorageError
from chronicle_index.models.db_models import init_db

logger = logging.getLogger(__name__)


class Database:
    """Owns the engine, its single connection, and the lock guarding it.

    Args:
        database_path: SQLite file to open or create. Ignored when
            ``in_memory`` is True.
        in_memory: Keep the store in memory (nothing survives ``close``).
        engine: Pre-configured engine, mainly for tests.
    """

    def __init__(
        self,
        database_path: Optional[Path] = None,
        in_memory: bool = False,
        engine: Optional[Engine] = None,
    ) -> None:
        self.database_path = None if in_memory else database_path
        try:
            self.engine = engine if engine is not None else init_db(
                database_path, in_memory=in_memory
            )
        except SQLAlchemyError as e:
            raise StorageError(
                f"Cannot open store: {e}",
                operation="open",
                path=str(database_path) if database_path else None,
                code=ErrorCode.STORAGE_CONNECTION_FAILED,
                original_error=e,
            ) from e
        self.session_factory = sessionmaker(bind=self.engine)
        self._lock = threading.Lock()

        logger.info(
            f"Database opened: {database_path if self.database_path else ':memory:'}"
        )

    @contextmanager
    def transaction(
        self,
        operation: str = "transaction",
        code: ErrorCode = ErrorCode.STORAGE_WRITE_FAILED,
    ) -> Iterator[Session]:
        """Hold the store exclusively for one unit of work.

        Commits when the block exits normally and rolls back on any
        exception. The lock is released on every exit path. Store failures
        surface as :class:`StorageError` carrying ``code``; errors from
        this package pass through unchanged.
        """
        with self._lock:
            session = self.session_factory()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                logger.error(f"Store rejected {operation}: {e}")
                raise StorageError(
                    f"{operation} failed: {e}",
                    operation=operation,
                    code=code,
                    original_error=e,
                ) from e
            except BaseException:
                session.rollback()
                raise
            finally:
                session.close()

    def reading(self, operation: str) -> ContextManager[Session]:
        """:meth:`transaction` for queries; failures carry STORAGE_READ_FAILED."""
        return self.transaction(operation, code=ErrorCode.STORAGE_READ_FAILED)

    def check_health(self) -> Dict[str, Any]:
        """Run SQLite and FTS5 integrity checks and compare row counts.

        Returns:
            Dict with ``healthy``, ``sqlite_ok``, ``fts_ok``, ``note_count``,
            ``fts_count`` and a list of ``issues``.
        """
        result: Dict[str, Any] = {
            "healthy": True,
            "sqlite_ok": True,
            "fts_ok": True,
            "note_count": 0,
            "fts_count": 0,
            "issues": [],
        }
        try:
            with self.reading("health_check") as session:
                integrity = session.execute(text("PRAGMA integrity_check")).scalar()
                if integrity != "ok":
                    result["sqlite_ok"] = False
                    result["issues"].append(f"SQLite integrity check: {integrity}")

                try:
                    session.execute(
                        text("INSERT INTO notes_fts(notes_fts) VALUES('integrity-check')")
                    )
                except SQLAlchemyError as e:
                    result["fts_ok"] = False
                    result["issues"].append(f"FTS5 integrity check failed: {e}")

                result["note_count"] = session.execute(
                    text("SELECT COUNT(*) FROM notes")
                ).scalar()
                result["fts_count"] = session.execute(
                    text("SELECT COUNT(*) FROM notes_fts")
                ).scalar()
        except ChronicleError as e:
            result["sqlite_ok"] = False
            result["issues"].append(str(e))

        if result["note_count"] != result["fts_count"]:
            result["issues"].append(
                f"Count mismatch: {result['note_count']} notes, "
                f"{result['fts_count']} full-text rows"
            )
        result["healthy"] = not result["issues"]
        return result

    def close(self) -> None:
        """Dispose of the engine (and its connection)."""
        with self._lock:
            self.engine.dispose()
        logger.debug("Database closed")

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

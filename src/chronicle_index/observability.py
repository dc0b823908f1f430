"""Logging setup and per-operation timing for the Chronicle index.

Indexer and vault operations are wrapped with :func:`traced`. Each call is
timed, logged at DEBUG under a short correlation id, and folded into the
process-wide :data:`metrics` table, which :meth:`Vault.check_health`
reports under ``operations``.
"""
import functools
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar, Union

from chronicle_index.models.schema import format_timestamp

logger = logging.getLogger(__name__)

# Every module logger lives under this name
ROOT_LOGGER_NAME = "chronicle_index"

DEFAULT_LOG_DIR = Path.home() / ".chronicle" / "logs"
LOG_FILE_NAME = "chronicle.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

# Operations slower than this are logged at INFO
SLOW_OPERATION_MS = 1000.0

F = TypeVar("F", bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: Union[int, str] = logging.INFO,
    console: bool = True,
) -> Path:
    """Send the package's log records to a rotating file under ``log_dir``.

    Calling it again replaces the handlers installed by the previous call,
    so the level and directory can be changed at runtime.

    Args:
        log_dir: Directory for ``chronicle.log``. Defaults to
            ``~/.chronicle/logs``.
        level: Level name or number.
        console: Also write to stderr.

    Returns:
        The log directory.

    Raises:
        OSError: The directory or log file cannot be created.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if getattr(handler, "_chronicle", False):
            package_logger.removeHandler(handler)
            handler.close()

    handlers: list = [
        RotatingFileHandler(
            log_path / LOG_FILE_NAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler._chronicle = True  # type: ignore[attr-defined]
        handler.setFormatter(formatter)
        handler.setLevel(level)
        package_logger.addHandler(handler)
    package_logger.setLevel(level)

    logger.debug(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class OperationStats:
    """Running totals for one operation name."""

    calls: int = 0
    errors: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    last_error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        mean = self.total_ms / self.calls if self.calls else 0.0
        return {
            "calls": self.calls,
            "errors": self.errors,
            "mean_ms": round(mean, 2),
            "slowest_ms": round(self.slowest_ms, 2),
            "last_error": self.last_error,
        }


class MetricsCollector:
    """Thread-safe table of :class:`OperationStats` keyed by operation."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._stats: Dict[str, OperationStats] = {}
        self._since = time.time()

    def record(self, operation: str, duration_ms: float, error: Optional[str] = None) -> None:
        """Add one finished call. ``error`` is set when the call raised."""
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.slowest_ms = max(stats.slowest_ms, duration_ms)
            if error is not None:
                stats.errors += 1
                stats.last_error = error

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the table plus totals, safe to serialise as JSON."""
        with self._lock:
            return {
                "since": format_timestamp(self._since),
                "total_calls": sum(s.calls for s in self._stats.values()),
                "total_errors": sum(s.errors for s in self._stats.values()),
                "operations": {
                    name: self._stats[name].as_dict() for name in sorted(self._stats)
                },
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._since = time.time()


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time the enclosed block and record it under ``operation``.

    The yielded dict is logged with the END line, so callers can attach
    result details to it. Exceptions are recorded and re-raised.
    """
    correlation_id = uuid.uuid4().hex[:8]
    details: Dict[str, Any] = {}
    logger.debug(
        f"[{correlation_id}] {operation} start "
        + " ".join(f"{k}={v}" for k, v in context.items())
    )

    started = time.perf_counter()
    error: Optional[str] = None
    try:
        yield details
    except Exception as e:
        error = f"{type(e).__name__}: {e}"
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record(operation, elapsed_ms, error)

        outcome = "failed" if error else "ok"
        extra = " ".join(f"{k}={v}" for k, v in details.items())
        message = f"[{correlation_id}] {operation} {outcome} in {elapsed_ms:.1f}ms {extra}"
        if elapsed_ms >= SLOW_OPERATION_MS:
            logger.info(f"Slow operation: {message}")
        else:
            logger.debug(message)


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Decorate a method so every call runs under :func:`timed_operation`.

    The first argument after ``self`` (a note path or a query) is logged
    as the call's subject.
    """
    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            subject = kwargs.get("path", kwargs.get("query"))
            if subject is None and len(args) > 1:
                subject = args[1]
            context = {} if subject is None else {"subject": str(subject)[:80]}

            with timed_operation(name, **context) as details:
                result = func(*args, **kwargs)
                if isinstance(result, list):
                    details["results"] = len(result)
                elif isinstance(result, int) and not isinstance(result, bool):
                    details["count"] = result
                return result

        return wrapper  # type: ignore[return-value]
    return decorator

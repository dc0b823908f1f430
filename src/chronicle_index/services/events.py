"""Watcher boundary: file-change events and the consumer that applies them.

A file watcher (not part of this package) puts :class:`VaultEvent` values
on a ``queue.Queue``. :class:`EventConsumer` takes them off one at a time,
in FIFO order, and applies each to the Indexer synchronously. The watcher
is expected to drop non-note files and hidden paths before queueing.
"""
import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from chronicle_index.exceptions import ChronicleError
from chronicle_index.services.indexer import Indexer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Created:
    path: Union[str, Path]


@dataclass(frozen=True)
class Modified:
    path: Union[str, Path]


@dataclass(frozen=True)
class Deleted:
    path: Union[str, Path]


@dataclass(frozen=True)
class Renamed:
    src: Union[str, Path]
    dest: Union[str, Path]


VaultEvent = Union[Created, Modified, Deleted, Renamed]


def apply_event(indexer: Indexer, event: VaultEvent) -> None:
    """Apply one event to the index.

    Created and Modified re-index the file, Deleted removes it, Renamed
    moves the note row to its new path in place.

    Raises:
        TypeError: ``event`` is not a VaultEvent.
        ChronicleError: The underlying Indexer operation failed.
    """
    if isinstance(event, (Created, Modified)):
        indexer.index_file(event.path)
    elif isinstance(event, Deleted):
        indexer.remove_file(event.path)
    elif isinstance(event, Renamed):
        indexer.rename_file(event.src, event.dest)
    else:
        raise TypeError(f"Unsupported vault event: {event!r}")


class EventConsumer:
    """Drains a queue of vault events into an Indexer.

    Args:
        indexer: Indexer of the vault the events belong to.
        events: Queue the watcher writes to.
        poll_interval: Seconds :meth:`run` waits for an event before
            checking its stop flag again.
    """

    def __init__(
        self,
        indexer: Indexer,
        events: "queue.Queue[VaultEvent]",
        poll_interval: float = 0.5,
    ):
        self.indexer = indexer
        self.events = events
        self.poll_interval = poll_interval
        self.failed = 0

    def handle(self, event: VaultEvent) -> bool:
        """Apply one event, logging instead of raising on failure.

        Returns:
            True if the event was applied.
        """
        try:
            apply_event(self.indexer, event)
            return True
        except ChronicleError as e:
            self.failed += 1
            logger.error(f"Failed to apply {event!r}: {e}")
            return False
        except Exception as e:
            self.failed += 1
            logger.exception(f"Unexpected error applying {event!r}: {e}")
            return False

    def process_pending(self) -> int:
        """Apply every event already queued, without waiting for more.

        Returns:
            Number of events taken off the queue.
        """
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled
            try:
                self.handle(event)
            finally:
                self.events.task_done()
            handled += 1

    def run(self, stop: Optional[threading.Event] = None) -> None:
        """Consume events until ``stop`` is set.

        Events still queued when ``stop`` is set are left in the queue.
        """
        stop = stop or threading.Event()
        logger.info("Event consumer started")
        while not stop.is_set():
            try:
                event = self.events.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            try:
                self.handle(event)
            finally:
                self.events.task_done()
        logger.info("Event consumer stopped")

"""
Sync Index - In-memory mirror of the annotation directory.

Maps identifier -> content so rendering never touches the disk.

Rules:
------
- After any settled filesystem state the index equals the directory listing
- Two producers feed one serialized update queue:
    WATCH   - events from the storage watcher
    COMMAND - removals issued by the delete command
- A COMMAND update for an identifier jumps ahead of, and discards, the WATCH
  updates still queued for that identifier
- Each applied update fires exactly one "state changed" notification.
  Bursts produce bursts; there is no debouncing.
- An added/changed update whose file cannot be re-read leaves the entry
  untouched and reports False, so the watcher offers it again next scan
- Updates stamped with an old generation are dropped silently. reset()
  starts a new generation, so callbacks from a cancelled watch subscription
  cannot touch the freshly loaded state.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Mapping, Optional, Set

from .errors import AnnotationNotFoundError, StorageError
from .models import UpdateSource, WatchEvent, WatchEventKind
from .store import AnnotationStore

logger = logging.getLogger(__name__)

Observer = Callable[[], None]


@dataclass(frozen=True)
class IndexUpdate:
    """One queued mutation of the index."""

    source: UpdateSource
    kind: WatchEventKind
    identifier: str
    generation: int


class SyncIndex:
    """
    In-memory identifier -> content mapping kept in step with the store.

    All mutation runs under one reentrant lock. An update submitted while
    the queue is being drained (e.g. from an observer) is queued and handled
    by the running drain, never re-entered.
    """

    def __init__(self, store: AnnotationStore):
        """
        Initialize index.

        Args:
            store: Store used to re-read files named by watch events
        """
        self._store = store
        self._entries: Dict[str, str] = {}
        self._observers: List[Observer] = []
        self._queue: Deque[IndexUpdate] = deque()
        self._lock = threading.RLock()
        self._generation = 0
        self._draining = False
        self._unsettled: Set[IndexUpdate] = set()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    # Observers

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a "state changed" observer.

        Returns:
            Callable that removes the observer
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def notify(self) -> None:
        """Fire one notification to every observer."""
        with self._lock:
            observers = list(self._observers)
            for observer in observers:
                try:
                    observer()
                except Exception as e:
                    logger.error(f"Index observer {observer!r} failed: {e}")

    # Bulk lifecycle

    def reset(self) -> int:
        """
        Clear all entries and pending updates and start a new generation.

        Returns:
            The new generation
        """
        with self._lock:
            self._generation += 1
            self._entries.clear()
            self._queue.clear()
            self._unsettled.clear()
            generation = self._generation
            self.notify()
        logger.debug(f"Index reset (generation {generation})")
        return generation

    def load(self, snapshot: Mapping[str, str]) -> None:
        """Replace all entries with a full directory snapshot."""
        with self._lock:
            self._entries = dict(snapshot)
            self.notify()
        logger.info(f"Index loaded {len(snapshot)} annotation(s)")

    # Queued updates

    def submit(self, update: IndexUpdate) -> bool:
        """
        Queue an update and drain the queue.

        Returns:
            False if the update belongs to an old generation and was dropped,
            or if its file could not be re-read (the caller should retry)
        """
        with self._lock:
            if update.generation != self._generation:
                logger.debug(
                    f"Dropping stale {update.source.value} update for {update.identifier} "
                    f"(generation {update.generation}, current {self._generation})"
                )
                return False

            if update.source == UpdateSource.COMMAND:
                pending = [
                    queued
                    for queued in self._queue
                    if not (
                        queued.source == UpdateSource.WATCH
                        and queued.identifier == update.identifier
                    )
                ]
                self._queue = deque(pending)
                self._queue.appendleft(update)
            else:
                self._queue.append(update)

            if self._draining:
                # Picked up by the running drain
                return True
            self._drain()
            settled = update not in self._unsettled
            self._unsettled.clear()
            return settled

    def apply_watch_event(self, event: WatchEvent, generation: int) -> bool:
        """Queue a watcher event for the subscription opened at `generation`."""
        return self.submit(
            IndexUpdate(
                source=UpdateSource.WATCH,
                kind=event.kind,
                identifier=event.name,
                generation=generation,
            )
        )

    def remove_now(self, identifier: str) -> bool:
        """
        Remove an entry on behalf of a command.

        Applied before this returns, ahead of any watch update for the same
        identifier, and notifies synchronously.
        """
        with self._lock:
            generation = self._generation
            return self.submit(
                IndexUpdate(
                    source=UpdateSource.COMMAND,
                    kind=WatchEventKind.REMOVED,
                    identifier=identifier,
                    generation=generation,
                )
            )

    def _drain(self) -> None:
        self._draining = True
        try:
            while self._queue:
                update = self._queue.popleft()
                if update.generation != self._generation:
                    continue
                if self._apply(update):
                    self.notify()
                else:
                    self._unsettled.add(update)
        finally:
            self._draining = False

    def _apply(self, update: IndexUpdate) -> bool:
        """
        Apply one update to the entries.

        Added/changed entries are re-read from disk at apply time, so a
        late event for a file that has since vanished drops the entry.

        Returns:
            True if the update was applied (and must be notified)
        """
        if update.kind == WatchEventKind.REMOVED:
            self._entries.pop(update.identifier, None)
            logger.debug(f"Index removed {update.identifier} ({update.source.value})")
            return True

        try:
            annotation = self._store.read(update.identifier)
        except AnnotationNotFoundError:
            self._entries.pop(update.identifier, None)
            logger.debug(f"Index dropped vanished {update.identifier}")
            return True
        except StorageError as e:
            logger.warning(f"Index could not re-read {update.identifier}: {e}")
            return False

        self._entries[update.identifier] = annotation.content
        logger.debug(f"Index upserted {update.identifier} ({update.kind.value})")
        return True

    # Queries

    def get(self, identifier: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(identifier)

    def snapshot(self) -> Dict[str, str]:
        """Copy of all entries."""
        with self._lock:
            return dict(self._entries)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

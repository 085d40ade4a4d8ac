"""
Storage watcher - polling change detection for the annotation directory.

Detects files added, changed or removed in the storage directory by diffing
successive directory snapshots. A file's signature is (mtime_ns, size, inode);
atomic renames change the inode, so rewrites of same-size content are still
reported.

Design rules:
- Top-level regular files only; hidden entries are ignored
- Initial contents are NOT reported (baseline taken on start)
- Events are delivered one at a time, in sorted name order per scan
- A callback that raises or returns False leaves the file unsettled: its
  previous signature is kept, so the next scan reports it again
- After stop(), no further event is delivered
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .errors import WatchError
from .models import WatchEvent, WatchEventKind
from .store import is_annotation_filename

logger = logging.getLogger(__name__)

Signature = Tuple[int, int, int]


class StorageWatcher:
    """
    Poll-based watcher for one storage directory.

    Runs a background thread that scans every `interval` seconds.
    Tests call poll_once() directly instead of starting the thread.
    """

    def __init__(
        self,
        storage_root: Path,
        on_event: Callable[[WatchEvent], Optional[bool]],
        interval: float = 1.0,
    ):
        """
        Initialize watcher.

        Args:
            storage_root: Directory to watch
            on_event: Callback receiving each WatchEvent; returning False
                asks for the event to be reported again on the next scan
            interval: Seconds between scans
        """
        self.storage_root = Path(storage_root)
        self.on_event = on_event
        self.interval = interval

        self._baseline: Dict[str, Signature] = {}
        self._scan_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._primed = False

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    def _scan(self) -> Dict[str, Signature]:
        """
        Snapshot the storage directory.

        Raises:
            WatchError: If the directory cannot be listed
        """
        signatures: Dict[str, Signature] = {}
        try:
            entries = list(self.storage_root.iterdir())
        except OSError as e:
            raise WatchError(f"Cannot scan {self.storage_root}: {e}") from e

        for entry in entries:
            if not is_annotation_filename(entry.name):
                continue
            try:
                if entry.is_symlink() or not entry.is_file():
                    continue
                stat = entry.stat()
            except OSError:
                # Vanished mid-scan; the next scan reports it as removed
                continue
            signatures[entry.name] = (stat.st_mtime_ns, stat.st_size, stat.st_ino)

        return signatures

    def prime(self) -> None:
        """
        Record the current directory state as the baseline.

        Raises:
            WatchError: If the directory cannot be listed
        """
        with self._scan_lock:
            self._baseline = self._scan()
            self._primed = True

    def poll_once(self) -> List[WatchEvent]:
        """
        Scan once and deliver every change since the previous scan.

        Returns:
            Events delivered by this scan (empty once stopped)

        Raises:
            WatchError: If the directory cannot be listed
        """
        with self._scan_lock:
            if self.is_stopped:
                return []
            if not self._primed:
                self._baseline = self._scan()
                self._primed = True
                return []

            current = self._scan()
            previous = self._baseline
            events: List[WatchEvent] = []

            for name in sorted(set(previous) | set(current)):
                if name not in previous:
                    events.append(WatchEvent(kind=WatchEventKind.ADDED, name=name))
                elif name not in current:
                    events.append(WatchEvent(kind=WatchEventKind.REMOVED, name=name))
                elif previous[name] != current[name]:
                    events.append(WatchEvent(kind=WatchEventKind.CHANGED, name=name))

            self._baseline = current

            delivered = []
            for event in events:
                if self.is_stopped:
                    break
                try:
                    settled = self.on_event(event) is not False
                except Exception as e:
                    logger.error(
                        f"Watch callback failed for {event.kind.value} {event.name}: {e}"
                    )
                    settled = False
                if not settled:
                    self._unsettle(event.name, previous)
                    continue
                delivered.append(event)

            return delivered

    def _unsettle(self, name: str, previous: Dict[str, Signature]) -> None:
        """Roll the baseline back for one file so the next scan re-reports it."""
        if name in previous:
            self._baseline[name] = previous[name]
        else:
            self._baseline.pop(name, None)
        logger.debug(f"Watch event for {name} not settled; will retry")

    def _watch_loop(self) -> None:
        """Background thread that polls until stopped."""
        while not self._stop_event.wait(self.interval):
            try:
                events = self.poll_once()
            except WatchError as e:
                # Keep polling; the index stays as-is until the directory returns
                logger.warning(f"Storage watch failed: {e}")
                continue
            if events:
                logger.debug(f"Storage watch delivered {len(events)} event(s)")

    def start(self) -> None:
        """
        Start the polling thread, taking the baseline unless prime() already
        did.

        Raises:
            WatchError: If the directory cannot be listed
        """
        if self.is_running:
            return
        self._stop_event.clear()
        if not self._primed:
            self.prime()
        self._thread = threading.Thread(
            target=self._watch_loop,
            name=f"linenotes-watch-{self.storage_root.name}",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Watching {self.storage_root} every {self.interval}s")

    def stop(self) -> None:
        """
        Cancel the subscription.

        Blocks until an in-flight scan finishes, so no event is delivered
        after this returns.
        """
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        # Wait out a poll_once() driven from another caller
        with self._scan_lock:
            pass
        logger.info(f"Stopped watching {self.storage_root}")

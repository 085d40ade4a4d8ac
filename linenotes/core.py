"""
Core state - the one long-lived owner of storage, index and watch handle.

Handlers never reach for module globals; they are given a CoreState.

Arming sequence (order matters):
1. Record the branch
2. Clear the index (new generation)
3. Ensure the storage directory exists
4. Take the watch baseline (subscription bound to that generation)
5. Full load from the store
6. Start polling

If any step fails, everything started so far is torn down and the core
stays unarmed. Every arm is a fresh full load; nothing is carried across
disarm periods.
"""

import logging
from typing import Callable, Dict, Optional

from .config import LineNotesConfig
from .errors import ArmingError, LineNotesError
from .index import SyncIndex
from .models import WatchEvent
from .store import AnnotationStore
from .watcher import StorageWatcher

logger = logging.getLogger(__name__)

WatcherFactory = Callable[..., StorageWatcher]


class CoreState:
    """
    Process-wide line notes state for one workspace.

    Attributes:
        config: Workspace configuration
        store: File-backed annotation store
        index: In-memory mirror of the store
        current_branch: Branch the core was last armed for
    """

    def __init__(
        self,
        config: LineNotesConfig,
        store: Optional[AnnotationStore] = None,
        index: Optional[SyncIndex] = None,
        watcher_factory: Optional[WatcherFactory] = None,
    ):
        """
        Initialize core state (unarmed).

        Args:
            config: Workspace configuration
            store: Store override (defaults to config.storage_root)
            index: Index override
            watcher_factory: Builds the watcher; called with
                (storage_root, on_event=..., interval=...)
        """
        self.config = config
        self.store = store or AnnotationStore(config.storage_root)
        self.index = index or SyncIndex(self.store)
        self.current_branch = ""
        self._watcher_factory = watcher_factory or StorageWatcher
        self._watcher: Optional[StorageWatcher] = None
        self._armed = False

    @property
    def is_armed(self) -> bool:
        return self._armed

    @property
    def watcher(self) -> Optional[StorageWatcher]:
        return self._watcher

    def render_entries(self) -> Dict[str, str]:
        """Index contents to render from; empty while unarmed."""
        if not self._armed:
            return {}
        return self.index.snapshot()

    def arm(self, branch: str) -> None:
        """
        Bring storage, index and watch up for `branch`.

        Raises:
            ArmingError: If any step fails (core left unarmed)
        """
        self._armed = False
        self._stop_watcher()
        self.current_branch = branch

        watcher = None
        try:
            generation = self.index.reset()
            self.store.ensure_root()

            def on_event(event: WatchEvent) -> bool:
                return self.index.apply_watch_event(event, generation)

            watcher = self._watcher_factory(
                self.store.storage_root,
                on_event=on_event,
                interval=self.config.poll_interval_seconds,
            )
            # Baseline before the load: anything that changes in between is
            # reported by the first scan and re-read at apply time
            watcher.prime()
            self.index.load(self.store.list_all())
            watcher.start()
        except (LineNotesError, OSError) as e:
            if watcher is not None:
                watcher.stop()
            self.index.reset()
            logger.error(f"Arming failed for branch '{branch}': {e}")
            raise ArmingError(f"Cannot arm line notes for '{branch}': {e}") from e

        self._watcher = watcher
        self._armed = True
        logger.info(
            f"Armed on '{branch}' with {len(self.index)} annotation(s) "
            f"from {self.store.storage_root}"
        )
        # Now that the index may be trusted, let renderers pick it up
        self.index.notify()

    def disarm(self) -> None:
        """Stop the watch subscription and drop the index."""
        was_armed = self._armed
        self._armed = False
        self._stop_watcher()
        self.index.reset()
        if was_armed:
            logger.info(f"Disarmed (left '{self.current_branch}')")

    def reload(self) -> None:
        """
        Fresh full load for the current branch.

        Raises:
            ArmingError: If re-arming fails
        """
        self.arm(self.current_branch)

    def _stop_watcher(self) -> None:
        watcher = self._watcher
        self._watcher = None
        if watcher is not None:
            watcher.stop()

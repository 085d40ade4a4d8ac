"""
Branch gate - turns line notes on only while the workspace sits on the
target branch.

States:
    DISARMED ──(branch == target)──> ARMING ──(setup ok)──> ARMED
    ARMING   ──(setup failed)──────> DISARMED   (error notice)
    ARMED    ──(branch != target)──> DISARMED   (warning if dirty, else info)

A branch event naming the current branch is a no-op. Leaving the target
branch with uncommitted changes is discouraged, never blocked.
"""

import logging
import threading
from typing import Callable, Optional

from .core import CoreState
from .errors import ArmingError, LineNotesError
from .models import GateState
from .ports import Notifier, VcsStatus

logger = logging.getLogger(__name__)

# Stand-in name when VCS reports no named branch (e.g. detached HEAD)
DEFAULT_BRANCH_NAME = "default"


class BranchGate:
    """
    Branch-driven arm/disarm state machine over a CoreState.
    """

    def __init__(
        self,
        core: CoreState,
        vcs: VcsStatus,
        notifier: Notifier,
        target_branch: Optional[str] = None,
    ):
        """
        Initialize gate (DISARMED).

        Args:
            core: Core state to arm and disarm
            vcs: Branch and working-tree status source
            notifier: User-facing notifications
            target_branch: Override for config.target_branch
        """
        self.core = core
        self.vcs = vcs
        self.notifier = notifier
        self.target_branch = target_branch or core.config.target_branch
        self.current_branch = ""

        self._state = GateState.DISARMED
        self._lock = threading.RLock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def armed(self) -> bool:
        return self._state == GateState.ARMED

    def start(self) -> GateState:
        """Subscribe to branch changes and evaluate the current branch."""
        with self._lock:
            if self._unsubscribe is None:
                self._unsubscribe = self.vcs.subscribe(self.observe)
            return self.refresh()

    def stop(self) -> None:
        """Unsubscribe and disarm without notices."""
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None
            if self._state != GateState.DISARMED:
                self.core.disarm()
                self._state = GateState.DISARMED

    def refresh(self) -> GateState:
        """Re-query the current branch and observe it."""
        try:
            branch = self.vcs.current_branch()
        except LineNotesError as e:
            logger.warning(f"Cannot query current branch: {e}")
            return self._state
        return self.observe(branch)

    def observe(self, branch: Optional[str]) -> GateState:
        """
        Handle a branch-change event.

        Returns:
            Gate state after handling the event
        """
        branch = branch or DEFAULT_BRANCH_NAME
        with self._lock:
            if branch == self.current_branch:
                return self._state

            previous = self.current_branch
            self.current_branch = branch
            logger.info(f"Branch changed: '{previous}' -> '{branch}'")

            if branch == self.target_branch:
                self._arm(branch)
            elif self._state == GateState.ARMED:
                self._leave_target(branch)

            return self._state

    def rearm(self) -> GateState:
        """
        Force a fresh arm while on the target branch.

        Recovers from a failed arm or a stale index after watch failures.
        """
        with self._lock:
            if self.current_branch == self.target_branch:
                self._arm(self.current_branch)
            return self._state

    def _arm(self, branch: str) -> None:
        self._state = GateState.ARMING
        try:
            self.core.arm(branch)
        except ArmingError as e:
            self._state = GateState.DISARMED
            self.notifier.error(f"Line notes could not be enabled on '{branch}': {e}")
            return
        self._state = GateState.ARMED

    def _leave_target(self, branch: str) -> None:
        try:
            pending = self.vcs.uncommitted_changes()
        except LineNotesError as e:
            logger.warning(f"Cannot query working tree status: {e}")
            pending = 0

        if pending > 0:
            self.notifier.warning(
                f"'{self.target_branch}' has {pending} uncommitted change(s). "
                f"Switching away from it is not recommended."
            )
        else:
            self.notifier.info(f"Switched from '{self.target_branch}' to '{branch}'.")

        self.core.disarm()
        self._state = GateState.DISARMED

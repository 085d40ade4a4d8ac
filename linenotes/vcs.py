"""
Git working-tree status via the git CLI.

Implements the VcsStatus port. Branch-change callbacks fire from poll(),
which a BranchPoller runs on a background thread while the bridge serves.
"""

import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable, List, Optional

from .errors import VcsError
from .ports import BranchCallback

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 5


class GitWorkingTree:
    """
    Git repository status for one workspace.
    """

    def __init__(self, workspace_root: Path, git_executable: str = "git"):
        self.workspace_root = Path(workspace_root)
        self.git_executable = git_executable
        self._callbacks: List[BranchCallback] = []
        self._last_branch: Optional[str] = None
        self._lock = threading.Lock()

    def _git(self, *args: str) -> str:
        """
        Run a git command in the workspace and return stdout.

        Raises:
            VcsError: If git is missing, times out or exits non-zero
        """
        try:
            result = subprocess.run(
                [self.git_executable, *args],
                cwd=self.workspace_root,
                capture_output=True,
                text=True,
                timeout=GIT_TIMEOUT_SECONDS,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise VcsError(f"git {' '.join(args)} failed: {e}") from e

        if result.returncode != 0:
            raise VcsError(
                f"git {' '.join(args)} exited {result.returncode}: {result.stderr.strip()}"
            )
        return result.stdout

    def current_branch(self) -> Optional[str]:
        """
        Name of the checked-out branch; None on a detached HEAD.

        Raises:
            VcsError: If git cannot be queried
        """
        name = self._git("rev-parse", "--abbrev-ref", "HEAD").strip()
        if not name or name == "HEAD":
            return None
        return name

    def uncommitted_changes(self) -> int:
        """
        Number of changed or untracked paths in the working tree.

        Raises:
            VcsError: If git cannot be queried
        """
        output = self._git("status", "--porcelain")
        return sum(1 for line in output.splitlines() if line.strip())

    def subscribe(self, callback: BranchCallback) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def poll(self) -> Optional[str]:
        """
        Query the branch and notify subscribers if it changed.

        Returns:
            The current branch

        Raises:
            VcsError: If git cannot be queried
        """
        branch = self.current_branch()
        with self._lock:
            changed = branch != self._last_branch
            self._last_branch = branch
            callbacks = list(self._callbacks)

        if changed:
            logger.debug(f"git branch is now {branch!r}")
            for callback in callbacks:
                callback(branch)
        return branch


class BranchPoller:
    """
    Background thread that calls `poll` every `interval` seconds.

    Drives GitWorkingTree.poll() so branch subscribers hear about
    checkouts made outside the editor. Query failures are logged and
    polling continues.
    """

    def __init__(self, poll: Callable[[], object], interval: float = 1.0):
        self.poll = poll
        self.interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _poll_loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            try:
                self.poll()
            except VcsError as e:
                logger.warning(f"Branch poll failed: {e}")

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="linenotes-branch-poll",
        )
        self._thread.start()
        logger.info(f"Polling branch every {self.interval}s")

    def stop(self) -> None:
        """Stop the polling thread."""
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

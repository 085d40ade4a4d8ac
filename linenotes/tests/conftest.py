"""
Shared fixtures and collaborator fakes for line notes tests.
"""

from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from linenotes.config import LineNotesConfig
from linenotes.core import CoreState
from linenotes.models import Document, Marker
from linenotes.watcher import StorageWatcher


class ManualWatcher(StorageWatcher):
    """Watcher that never starts a thread; tests drive poll_once()."""

    instances: List["ManualWatcher"] = []

    def start(self) -> None:
        self._stop_event.clear()
        if not self._primed:
            self.prime()
        ManualWatcher.instances.append(self)


class FakeVcs:
    """Scriptable VcsStatus."""

    def __init__(self, branch: Optional[str] = "main", pending: int = 0):
        self.branch = branch
        self.pending = pending
        self.callbacks: List[Callable[[Optional[str]], None]] = []
        self._last_polled = branch

    def current_branch(self) -> Optional[str]:
        return self.branch

    def uncommitted_changes(self) -> int:
        return self.pending

    def subscribe(self, callback):
        self.callbacks.append(callback)

        def unsubscribe():
            self.callbacks.remove(callback)

        return unsubscribe

    def poll(self) -> Optional[str]:
        if self.branch != self._last_polled:
            self._last_polled = self.branch
            for callback in list(self.callbacks):
                callback(self.branch)
        return self.branch

    def switch(self, branch: Optional[str]) -> None:
        self.branch = branch
        for callback in list(self.callbacks):
            callback(branch)


class FakeEditor:
    """Editor port that records everything it is asked to do."""

    def __init__(self, document: Optional[Document] = None, cursor: Optional[int] = None):
        self.document = document
        self.cursor = cursor
        self.decorations: List[Tuple[str, List[Marker]]] = []
        self.shown: List[Tuple[Path, bool]] = []

    def active_document(self) -> Optional[Document]:
        return self.document

    def cursor_line(self) -> Optional[int]:
        return self.cursor

    def set_decorations(self, document: Document, markers: List[Marker]) -> None:
        self.decorations.append((document.uri, list(markers)))

    def show_document(self, path: Path, beside: bool = True) -> None:
        self.shown.append((path, beside))

    @property
    def last_markers(self) -> List[Marker]:
        return self.decorations[-1][1] if self.decorations else []


class FakeNotifier:
    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def levels(self) -> List[str]:
        return [level for level, _ in self.messages]


@pytest.fixture(autouse=True)
def _reset_manual_watchers():
    ManualWatcher.instances.clear()
    yield
    for watcher in ManualWatcher.instances:
        watcher.stop()
    ManualWatcher.instances.clear()


@pytest.fixture
def config(tmp_path: Path) -> LineNotesConfig:
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return LineNotesConfig(workspace_root=str(workspace), target_branch="feature-x")


@pytest.fixture
def core(config: LineNotesConfig) -> CoreState:
    return CoreState(config, watcher_factory=ManualWatcher)


@pytest.fixture
def armed_core(core: CoreState) -> CoreState:
    core.arm("feature-x")
    return core


@pytest.fixture
def vcs() -> FakeVcs:
    return FakeVcs()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def editor() -> FakeEditor:
    return FakeEditor()

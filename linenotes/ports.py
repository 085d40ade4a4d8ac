"""
Collaborator ports.

The core talks to version control, the host editor and the user only
through these interfaces. Concrete adapters live elsewhere (vcs.py,
server.py) or in tests.
"""

from pathlib import Path
from typing import Callable, List, Optional, Protocol

from .models import Document, Marker

BranchCallback = Callable[[Optional[str]], None]


class VcsStatus(Protocol):
    """
    Version-control view of the workspace.

    Branch names are opaque strings; None means no named branch.
    """

    def current_branch(self) -> Optional[str]:
        ...

    def uncommitted_changes(self) -> int:
        ...

    def subscribe(self, callback: BranchCallback) -> Callable[[], None]:
        """Call `callback` with the new branch on every change; returns unsubscribe."""
        ...

    def poll(self) -> Optional[str]:
        """Re-query the branch and call subscribers if it changed."""
        ...


class Editor(Protocol):
    """Host editor surface."""

    def active_document(self) -> Optional[Document]:
        ...

    def cursor_line(self) -> Optional[int]:
        ...

    def set_decorations(self, document: Document, markers: List[Marker]) -> None:
        """Replace the full decoration set of `document` atomically."""
        ...

    def show_document(self, path: Path, beside: bool = True) -> None:
        ...


class Notifier(Protocol):
    """User-facing notifications."""

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

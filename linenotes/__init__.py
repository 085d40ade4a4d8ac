"""
linenotes - Content-addressed notes attached to lines of source text.

A note belongs to the exact text of a line, not to its position: the line's
SHA-1 digest names the file that holds the note. Notes are rendered inline
while the workspace is on one target branch and are invisible elsewhere.

Public API:
    line_identifier - Line text -> identifier
    AnnotationStore - One file per identifier in the storage directory
    SyncIndex - In-memory mirror of the store, fed by the watcher
    CoreState - Owner of store, index and watch subscription
    BranchGate - Arms/disarms the core on branch changes
    DecorationEngine, compute_markers - Inline markers for a document
    AnnotationCommands, CommandRegistry - User commands and dispatch
"""

__version__ = "0.1.0"

from .errors import (
    LineNotesError,
    ValidationError,
    AnnotationNotFoundError,
    StorageError,
    WatchError,
    ArmingError,
    VcsError,
)
from .models import (
    Annotation,
    CommandArgs,
    Document,
    GateState,
    Marker,
    Notice,
    WatchEvent,
    WatchEventKind,
)
from .config import LineNotesConfig
from .hashing import line_identifier
from .store import AnnotationStore
from .index import SyncIndex
from .watcher import StorageWatcher
from .core import CoreState
from .gate import BranchGate
from .decorations import DecorationEngine, compute_markers
from .commands import AnnotationCommands, CommandRegistry

__all__ = [
    # Errors
    "LineNotesError",
    "ValidationError",
    "AnnotationNotFoundError",
    "StorageError",
    "WatchError",
    "ArmingError",
    "VcsError",
    # Models
    "Annotation",
    "CommandArgs",
    "Document",
    "GateState",
    "Marker",
    "Notice",
    "WatchEvent",
    "WatchEventKind",
    "LineNotesConfig",
    # Core
    "line_identifier",
    "AnnotationStore",
    "SyncIndex",
    "StorageWatcher",
    "CoreState",
    "BranchGate",
    "DecorationEngine",
    "compute_markers",
    "AnnotationCommands",
    "CommandRegistry",
]

"""
Editor bridge - HTTP adapter between a host editor plugin and the core.

The editor plugin forwards its events (branch changes, active document,
text changes, command invocations, hovers) and applies what comes back
(markers to render, documents to open, notices to show).

Security Warning:
-----------------
Binds to localhost (127.0.0.1) by default. There is no authentication;
anyone who can reach the port can write into the storage directory.

Handlers are serialized by one lock, so they run one at a time and never
overlap, matching the single execution context the core assumes.
"""

import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .config import LineNotesConfig
from .core import WatcherFactory
from .decorations import compute_markers
from .models import Document, Marker, Notice
from .ports import VcsStatus
from .runtime import LineNotesRuntime, build_runtime
from .vcs import BranchPoller

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8765


# ============================================================================
# BRIDGE COLLABORATORS
# ============================================================================

class BridgeEditor:
    """
    Editor port backed by state the plugin reports over HTTP.

    Decorations and open requests are buffered until the plugin fetches
    them with its next request.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._active: Optional[Document] = None
        self._cursor_line: Optional[int] = None
        self._decorations: Dict[str, List[Marker]] = {}
        self._opened: List[Dict[str, Any]] = []

    def set_active(self, document: Optional[Document], cursor_line: Optional[int] = None) -> None:
        with self._lock:
            self._active = document
            self._cursor_line = cursor_line

    def active_document(self) -> Optional[Document]:
        with self._lock:
            return self._active

    def cursor_line(self) -> Optional[int]:
        with self._lock:
            return self._cursor_line

    def set_decorations(self, document: Document, markers: List[Marker]) -> None:
        with self._lock:
            self._decorations[document.uri] = list(markers)

    def decorations_for(self, uri: str) -> List[Marker]:
        with self._lock:
            return list(self._decorations.get(uri, []))

    def show_document(self, path: Path, beside: bool = True) -> None:
        with self._lock:
            self._opened.append({"path": str(path), "beside": beside})

    def take_opened(self) -> List[Dict[str, Any]]:
        with self._lock:
            opened, self._opened = self._opened, []
            return opened


class BridgeNotifier:
    """Notifier port that logs and buffers notices for the next response."""

    def __init__(self):
        self._lock = threading.Lock()
        self._notices: List[Notice] = []

    def _push(self, level: str, message: str) -> None:
        with self._lock:
            self._notices.append(Notice(level=level, message=message))

    def info(self, message: str) -> None:
        logger.info(message)
        self._push("info", message)

    def warning(self, message: str) -> None:
        logger.warning(message)
        self._push("warning", message)

    def error(self, message: str) -> None:
        logger.error(message)
        self._push("error", message)

    def drain(self) -> List[Notice]:
        with self._lock:
            notices, self._notices = self._notices, []
            return notices


# ============================================================================
# REQUEST MODELS
# ============================================================================

class BranchRequest(BaseModel):
    """Branch-change event from the editor's VCS integration."""

    model_config = ConfigDict(extra="forbid")

    branch: Optional[str] = None


class DocumentRequest(BaseModel):
    """Document snapshot, optionally with the cursor position."""

    model_config = ConfigDict(extra="forbid")

    uri: str
    lines: List[str] = Field(default_factory=list)
    cursor_line: Optional[int] = Field(default=None, ge=0)

    def to_document(self) -> Document:
        return Document(uri=self.uri, lines=self.lines)


class HoverRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    uri: str
    lines: List[str] = Field(default_factory=list)
    line: int = Field(..., ge=0)


class CommandRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    line: Optional[int] = Field(default=None, ge=0)


class LinkRequest(BaseModel):
    """An action link the user clicked inside an annotation."""

    model_config = ConfigDict(extra="forbid")

    uri: str


def _markers_payload(markers: Optional[List[Marker]]) -> Optional[List[Dict[str, Any]]]:
    if markers is None:
        return None
    return [m.model_dump() for m in markers]


# ============================================================================
# APPLICATION
# ============================================================================

def create_app(
    config: LineNotesConfig,
    vcs: VcsStatus,
    watcher_factory: Optional[WatcherFactory] = None,
    start: bool = True,
    branch_poll_interval: Optional[float] = None,
) -> FastAPI:
    """
    Create the editor bridge application.

    Args:
        config: Workspace configuration
        vcs: Branch/working-tree status source
        watcher_factory: Watcher override (tests)
        start: Evaluate the current branch immediately
        branch_poll_interval: Seconds between vcs.poll() calls while the
            app is running; None leaves branch events to /branch and
            /vcs/refresh

    Returns:
        FastAPI application; its runtime is at app.state.runtime
    """
    editor = BridgeEditor()
    notifier = BridgeNotifier()
    runtime = build_runtime(config, vcs, editor, notifier, watcher_factory=watcher_factory)
    handler_lock = threading.RLock()

    def poll_branch() -> None:
        with handler_lock:
            vcs.poll()

    poller = None
    if branch_poll_interval is not None:
        poller = BranchPoller(poll_branch, interval=branch_poll_interval)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if poller is not None:
            poller.start()
        yield
        if poller is not None:
            poller.stop()
        runtime.shutdown()

    app = FastAPI(title="linenotes editor bridge", version=__version__, lifespan=lifespan)
    app.state.runtime = runtime
    app.state.editor = editor
    app.state.notifier = notifier

    if start:
        with handler_lock:
            runtime.start()

    def gate_payload(rt: LineNotesRuntime) -> Dict[str, Any]:
        return {
            "state": rt.gate.state.value,
            "branch": rt.gate.current_branch,
            "target_branch": rt.gate.target_branch,
            "notices": [n.model_dump() for n in notifier.drain()],
        }

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "state": runtime.gate.state.value,
            "branch": runtime.gate.current_branch,
            "target_branch": runtime.gate.target_branch,
            "entries": len(runtime.core.index) if runtime.core.is_armed else 0,
            "storage_root": str(runtime.core.store.storage_root),
        }

    @app.post("/branch")
    def branch_changed(request: BranchRequest) -> Dict[str, Any]:
        with handler_lock:
            runtime.gate.observe(request.branch)
            return gate_payload(runtime)

    @app.post("/vcs/refresh")
    def vcs_refresh() -> Dict[str, Any]:
        with handler_lock:
            runtime.gate.refresh()
            return gate_payload(runtime)

    @app.post("/reload")
    def reload() -> Dict[str, Any]:
        with handler_lock:
            runtime.gate.rearm()
            return gate_payload(runtime)

    @app.post("/documents/markers")
    def document_markers(request: DocumentRequest) -> Dict[str, Any]:
        markers = compute_markers(request.lines, runtime.core.render_entries())
        return {"uri": request.uri, "markers": _markers_payload(markers)}

    @app.post("/documents/active")
    def document_activated(request: DocumentRequest) -> Dict[str, Any]:
        with handler_lock:
            document = request.to_document()
            editor.set_active(document, request.cursor_line)
            markers = runtime.decorations.on_active_document_changed(document)
            return {"uri": request.uri, "markers": _markers_payload(markers)}

    @app.post("/documents/changed")
    def document_changed(request: DocumentRequest) -> Dict[str, Any]:
        with handler_lock:
            document = request.to_document()
            active = editor.active_document()
            if active is not None and active.uri == document.uri:
                editor.set_active(document, request.cursor_line)
            markers = runtime.decorations.on_document_changed(document)
            return {"uri": request.uri, "markers": _markers_payload(markers)}

    @app.get("/documents/decorations")
    def document_decorations(uri: str) -> Dict[str, Any]:
        return {"uri": uri, "markers": _markers_payload(editor.decorations_for(uri))}

    @app.post("/hover")
    def hover(request: HoverRequest) -> Dict[str, Any]:
        document = Document(uri=request.uri, lines=request.lines)
        try:
            markdown = runtime.commands.lookup(document, request.line)
        except IndexError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"markdown": markdown}

    @app.post("/commands/{name}")
    def run_command(name: str, request: Optional[CommandRequest] = None) -> Dict[str, Any]:
        if not runtime.registry.has(name):
            raise HTTPException(status_code=404, detail=f"Unknown command: {name}")
        payload = request.model_dump(exclude_none=True) if request else {}
        with handler_lock:
            result = runtime.registry.dispatch(name, payload)
            return {
                "command": name,
                "result": str(result) if result is not None else None,
                "opened": editor.take_opened(),
                "notices": [n.model_dump() for n in notifier.drain()],
            }

    @app.post("/links")
    def follow_link(request: LinkRequest) -> Dict[str, Any]:
        with handler_lock:
            try:
                result = runtime.registry.dispatch_uri(request.uri)
            except KeyError:
                raise HTTPException(status_code=404, detail=f"Unknown command in {request.uri}")
            return {
                "result": str(result) if result is not None else None,
                "opened": editor.take_opened(),
                "notices": [n.model_dump() for n in notifier.drain()],
            }

    return app


def run_server(
    config: LineNotesConfig,
    vcs: VcsStatus,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Run the editor bridge with uvicorn."""
    import uvicorn

    app = create_app(config, vcs, branch_poll_interval=config.poll_interval_seconds)
    logger.info(f"Starting linenotes bridge on {host}:{port} for {config.workspace_root}")
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())

"""
Decoration engine - inline markers for annotated lines.

compute_markers() is a pure function of (document lines, index snapshot).
The DecorationEngine re-runs it wholesale on every trigger:
- document opened
- document text changed (active document only)
- active document changed
- index "state changed" notification

No incremental diffing. Redundant re-renders are acceptable.
"""

import logging
from typing import Callable, List, Mapping, Optional, Sequence

from .core import CoreState
from .hashing import line_identifier
from .models import Document, Marker, summary_line
from .ports import Editor

logger = logging.getLogger(__name__)

MARKER_GLYPH = "📌"


def marker_text(content: str) -> str:
    """Inline text for an annotation: glyph + first line of its content."""
    return f"{MARKER_GLYPH} {summary_line(content)}"


def compute_markers(
    lines: Sequence[str], entries: Mapping[str, str]
) -> List[Marker]:
    """
    Compute the markers for a document.

    Lines with identical text get identical markers independently.

    Args:
        lines: Document lines in order
        entries: identifier -> content (empty while unarmed)

    Returns:
        Markers in line order
    """
    if not entries:
        return []

    markers = []
    for line_index, text in enumerate(lines):
        content = entries.get(line_identifier(text))
        if content is None:
            continue
        markers.append(Marker(line_index=line_index, display_text=marker_text(content)))
    return markers


class DecorationEngine:
    """
    Pushes marker sets to the editor whenever something relevant changes.
    """

    def __init__(self, core: CoreState, editor: Editor):
        self.core = core
        self.editor = editor
        self._unsubscribe: Optional[Callable[[], None]] = self.core.index.subscribe(
            self.on_index_changed
        )

    def render(self, document: Document) -> List[Marker]:
        markers = compute_markers(document.lines, self.core.render_entries())
        self.editor.set_decorations(document, markers)
        return markers

    def on_document_opened(self, document: Document) -> List[Marker]:
        return self.render(document)

    def on_document_changed(self, document: Document) -> Optional[List[Marker]]:
        active = self.editor.active_document()
        if active is None or active.uri != document.uri:
            return None
        return self.render(document)

    def on_active_document_changed(
        self, document: Optional[Document]
    ) -> Optional[List[Marker]]:
        if document is None:
            return None
        return self.render(document)

    def on_index_changed(self) -> None:
        active = self.editor.active_document()
        if active is not None:
            self.render(active)

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

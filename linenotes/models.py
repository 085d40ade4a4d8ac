"""
Line notes data models.

All models use Pydantic with strict validation and no silent coercion.
"""

from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GateState(str, Enum):
    """Lifecycle state of the branch gate."""

    DISARMED = "disarmed"
    ARMING = "arming"
    ARMED = "armed"


class WatchEventKind(str, Enum):
    """Kind of change the storage watcher observed."""

    ADDED = "added"
    CHANGED = "changed"
    REMOVED = "removed"


class UpdateSource(str, Enum):
    """Producer of an index update."""

    WATCH = "watch"
    COMMAND = "command"


def summary_line(content: str) -> str:
    """First line of an annotation, without its line terminator."""
    lines = content.splitlines()
    return lines[0] if lines else ""


class Annotation(BaseModel):
    """
    A note stored under the identifier of one line's exact text.

    Content is free-form. By convention the first line is a human summary,
    which is what gets rendered inline.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    identifier: str = Field(..., description="Hex digest of the annotated line text")
    content: str = Field(..., description="Annotation document text")


class Marker(BaseModel):
    """Inline indicator rendered after one line of a document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    line_index: int = Field(..., ge=0)
    display_text: str


class Document(BaseModel):
    """
    Snapshot of an open editor document.

    The editor owns the real buffer; this is the ordered line sequence it
    hands over for rendering and command resolution.
    """

    model_config = ConfigDict(extra="forbid")

    uri: str = Field(..., description="Editor-side document identifier")
    lines: List[str] = Field(default_factory=list)

    def line_text(self, line: int) -> str:
        """
        Return the text of a line.

        Raises:
            IndexError: If line is outside the document
        """
        if line < 0 or line >= len(self.lines):
            raise IndexError(f"Line {line} is outside document {self.uri}")
        return self.lines[line]


class CommandArgs(BaseModel):
    """
    Arguments accepted by the annotation commands.

    line=None means "the line under the editor cursor".
    """

    model_config = ConfigDict(extra="forbid")

    line: Optional[int] = Field(default=None, ge=0)


class Notice(BaseModel):
    """User-facing notification emitted by the core."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    level: Literal["info", "warning", "error"]
    message: str


class WatchEvent(BaseModel):
    """
    A single filesystem change inside the storage directory.

    name doubles as the annotation identifier.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: WatchEventKind
    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Ensure name is a bare filename."""
        if not v or "/" in v or "\\" in v:
            raise ValueError(f"Watch event name must be a bare filename: {v!r}")
        return v

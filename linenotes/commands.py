"""
Annotation command implementations.

Commands:
- create: write the default template for a line (if absent) and open it
- edit:   open the existing annotation for a line
- delete: remove the annotation for a line and drop it from the index now

Commands only touch the store. The index learns about writes through the
watcher. Delete is the one exception: it also updates the index directly,
otherwise the marker would linger until the next watch scan.

Action links embedded in annotation documents use the form

    command:<name>?<url-escaped JSON {"line": n}>
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from pydantic import ValidationError as PayloadError

from .core import CoreState
from .errors import (
    AnnotationNotFoundError,
    LineNotesError,
    StorageError,
    ValidationError,
)
from .hashing import line_identifier
from .models import CommandArgs, Document
from .ports import Editor, Notifier

logger = logging.getLogger(__name__)

COMMAND_CREATE = "linenotes.createAnnotation"
COMMAND_EDIT = "linenotes.editAnnotation"
COMMAND_DELETE = "linenotes.deleteAnnotation"

COMMAND_SCHEME = "command:"

CommandHandler = Callable[[CommandArgs], Any]


# -----------------------------------------------------------------------------
# Action links and templates
# -----------------------------------------------------------------------------

def command_link(command: str, line: int) -> str:
    """Build an action URI that re-invokes `command` for `line`."""
    payload = quote(json.dumps({"line": line}))
    return f"{COMMAND_SCHEME}{command}?{payload}"


def parse_command_uri(uri: str) -> Tuple[str, CommandArgs]:
    """
    Decode an action URI.

    Raises:
        ValidationError: If the URI is not a well-formed command link
    """
    if not uri.startswith(COMMAND_SCHEME):
        raise ValidationError(f"Not a command link: {uri}")

    name, _, raw_args = uri[len(COMMAND_SCHEME):].partition("?")
    if not name:
        raise ValidationError(f"Command link names no command: {uri}")
    if not raw_args:
        return name, CommandArgs()

    try:
        payload = json.loads(unquote(raw_args))
        return name, CommandArgs.model_validate(payload)
    except (json.JSONDecodeError, PayloadError) as e:
        raise ValidationError(f"Invalid command arguments in {uri}: {e}") from e


def default_template(line: int) -> str:
    """Starting document for a new annotation."""
    edit_link = command_link(COMMAND_EDIT, line)
    delete_link = command_link(COMMAND_DELETE, line)
    return (
        "#### title\n"
        "- Usage \n"
        "\n"
        "```bash\n"
        "$  \n"
        "```\n"
        "\n"
        f"[✏️ Edit]({edit_link})\n"
        f"[🗑️ Delete]({delete_link})\n"
    )


def create_prompt(line: int) -> str:
    """Hover text offered for a line without an annotation."""
    link = command_link(COMMAND_CREATE, line)
    return (
        "📌 **Add a note for this line?**\n"
        "\n"
        f"[📝 Create note]({link})"
    )


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

class AnnotationCommands:
    """
    User-triggered annotation operations for the active document.

    Every method resolves the target line from CommandArgs (explicit line, or
    the editor cursor when line is None).
    """

    def __init__(self, core: CoreState, editor: Editor, notifier: Notifier):
        self.core = core
        self.editor = editor
        self.notifier = notifier

    def _is_live(self) -> bool:
        if self.core.is_armed:
            return True
        self.notifier.info(
            f"Line notes are only available on branch '{self.core.config.target_branch}'."
        )
        return False

    def _resolve(self, args: Optional[CommandArgs]) -> Tuple[int, str]:
        """
        Resolve (line number, line text) for a command.

        Raises:
            ValidationError: If there is no active document or the line is
                outside it
        """
        args = args or CommandArgs()
        document = self.editor.active_document()
        if document is None:
            raise ValidationError("No active document.")

        line = args.line if args.line is not None else self.editor.cursor_line()
        if line is None:
            raise ValidationError("No line selected.")

        try:
            return line, document.line_text(line)
        except IndexError as e:
            raise ValidationError(str(e)) from e

    def create(self, args: Optional[CommandArgs] = None) -> Optional[Path]:
        """
        Create (if needed) and open the annotation for a line.

        Returns:
            Path of the opened annotation, or None while unarmed

        Raises:
            ValidationError: If the line is blank
            StorageError: If the template cannot be written
        """
        if not self._is_live():
            return None

        line, text = self._resolve(args)
        if text.strip() == "":
            raise ValidationError("Cannot create a note for a blank line.")

        identifier = line_identifier(text)
        path = self.core.store.path_for(identifier)
        if not self.core.store.exists(identifier):
            self.core.store.write(identifier, default_template(line))
            logger.info(f"Created annotation {identifier} for line {line}")

        self.editor.show_document(path, beside=True)
        return path

    def edit(self, args: Optional[CommandArgs] = None) -> Optional[Path]:
        """
        Open the existing annotation for a line.

        Raises:
            AnnotationNotFoundError: If the line has no annotation
        """
        if not self._is_live():
            return None

        _, text = self._resolve(args)
        identifier = line_identifier(text)
        self.core.store.read(identifier)
        path = self.core.store.path_for(identifier)
        self.editor.show_document(path, beside=True)
        return path

    def delete(self, args: Optional[CommandArgs] = None) -> Optional[str]:
        """
        Delete the annotation for a line.

        A missing annotation is logged, not reported. Either way the index
        entry is removed before this returns.

        Returns:
            Identifier of the removed annotation, or None while unarmed

        Raises:
            StorageError: If the file exists but cannot be deleted
        """
        if not self._is_live():
            return None

        line, text = self._resolve(args)
        identifier = line_identifier(text)
        try:
            self.core.store.delete(identifier)
            logger.info(f"Deleted annotation {identifier} for line {line}")
        except AnnotationNotFoundError:
            logger.info(f"Delete skipped, no annotation {identifier} for line {line}")

        self.core.index.remove_now(identifier)
        return identifier

    def lookup(self, document: Document, line: int) -> Optional[str]:
        """
        Hover text for a line.

        Reads the whole directory fresh instead of trusting the index.

        Returns:
            Annotation content, a create prompt, or None while unarmed or
            when the directory cannot be read
        """
        if not self.core.is_armed:
            return None

        text = document.line_text(line)
        try:
            annotations = self.core.store.list_all()
        except StorageError as e:
            logger.warning(f"Hover lookup failed: {e}")
            return None

        content = annotations.get(line_identifier(text))
        if content is None:
            return create_prompt(line)
        return content


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class CommandRegistry:
    """
    Named command handlers with uniform error surfacing.

    Validation problems become info notices; everything else the core raises
    becomes an error notice. Nothing propagates to the caller.
    """

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._handlers: Dict[str, CommandHandler] = {}

    def register(self, name: str, handler: CommandHandler) -> None:
        """
        Raises:
            ValueError: If name is already registered
        """
        if name in self._handlers:
            raise ValueError(f"Command already registered: {name}")
        self._handlers[name] = handler

    def has(self, name: str) -> bool:
        return name in self._handlers

    def names(self) -> List[str]:
        return sorted(self._handlers)

    def dispatch(self, name: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        """
        Run a command.

        Args:
            name: Registered command name
            payload: Raw arguments, validated into CommandArgs

        Returns:
            Handler result, or None if the command failed

        Raises:
            KeyError: If name is not registered
        """
        handler = self._handlers[name]

        try:
            args = CommandArgs.model_validate(dict(payload or {}))
        except PayloadError as e:
            self.notifier.error(f"Invalid arguments for {name}: {e}")
            return None

        try:
            return handler(args)
        except ValidationError as e:
            self.notifier.info(e.message)
        except AnnotationNotFoundError as e:
            logger.warning(f"{name} failed: {e}")
            self.notifier.error("No note exists for this line.")
        except LineNotesError as e:
            logger.error(f"{name} failed: {e}")
            self.notifier.error(str(e))
        return None

    def dispatch_uri(self, uri: str) -> Any:
        """Run the command encoded in an action link."""
        try:
            name, args = parse_command_uri(uri)
        except ValidationError as e:
            self.notifier.error(e.message)
            return None
        return self.dispatch(name, args.model_dump(exclude_none=True))


def register_annotation_commands(
    registry: CommandRegistry, commands: AnnotationCommands
) -> None:
    registry.register(COMMAND_CREATE, commands.create)
    registry.register(COMMAND_EDIT, commands.edit)
    registry.register(COMMAND_DELETE, commands.delete)

"""
Runtime wiring - builds one fully connected set of line notes components.
"""

from dataclasses import dataclass
from typing import Optional

from .commands import AnnotationCommands, CommandRegistry, register_annotation_commands
from .config import LineNotesConfig
from .core import CoreState, WatcherFactory
from .decorations import DecorationEngine
from .gate import BranchGate
from .ports import Editor, Notifier, VcsStatus


@dataclass
class LineNotesRuntime:
    """Everything one workspace needs, owned in one place."""

    config: LineNotesConfig
    core: CoreState
    gate: BranchGate
    decorations: DecorationEngine
    commands: AnnotationCommands
    registry: CommandRegistry
    editor: Editor
    notifier: Notifier

    def start(self) -> None:
        self.gate.start()

    def shutdown(self) -> None:
        self.gate.stop()
        self.decorations.close()


def build_runtime(
    config: LineNotesConfig,
    vcs: VcsStatus,
    editor: Editor,
    notifier: Notifier,
    watcher_factory: Optional[WatcherFactory] = None,
) -> LineNotesRuntime:
    """
    Wire core, gate, decoration engine and commands together.

    Nothing is armed until start() is called.
    """
    core = CoreState(config, watcher_factory=watcher_factory)
    gate = BranchGate(core, vcs, notifier)
    decorations = DecorationEngine(core, editor)
    commands = AnnotationCommands(core, editor, notifier)
    registry = CommandRegistry(notifier)
    register_annotation_commands(registry, commands)

    return LineNotesRuntime(
        config=config,
        core=core,
        gate=gate,
        decorations=decorations,
        commands=commands,
        registry=registry,
        editor=editor,
        notifier=notifier,
    )

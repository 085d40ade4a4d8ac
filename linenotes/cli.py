"""
linenotes command line.

Usage:
======
    python -m linenotes serve [--workspace DIR] [--host HOST] [--port PORT]
    python -m linenotes hash "some line of code"
    python -m linenotes list [--workspace DIR]

Environment overrides are described in linenotes.config.
"""

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError as ConfigError

from .config import LineNotesConfig
from .errors import StorageError
from .hashing import line_identifier
from .models import summary_line
from .store import AnnotationStore

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_config(workspace: Optional[str]) -> LineNotesConfig:
    try:
        return LineNotesConfig.from_env(workspace)
    except (ConfigError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        raise SystemExit(2)


def cmd_serve(args: argparse.Namespace) -> int:
    from .server import run_server
    from .vcs import GitWorkingTree

    config = _load_config(args.workspace)
    configure_logging(config.log_level)
    run_server(
        config,
        GitWorkingTree(config.workspace_root),
        host=args.host,
        port=args.port,
    )
    return 0


def cmd_hash(args: argparse.Namespace) -> int:
    print(line_identifier(args.text))
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    config = _load_config(args.workspace)
    configure_logging(config.log_level)
    store = AnnotationStore(config.storage_root)
    if not store.storage_root.is_dir():
        print(f"No storage directory at {store.storage_root}")
        return 0

    try:
        annotations = store.list_all()
    except StorageError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    for identifier, content in annotations.items():
        print(f"{identifier}  {summary_line(content)}")
    print(f"{len(annotations)} annotation(s) in {store.storage_root}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    from .server import DEFAULT_HOST, DEFAULT_PORT

    parser = argparse.ArgumentParser(
        prog="linenotes",
        description="Content-addressed notes for lines of source text",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the editor bridge for the current repository
  python -m linenotes serve

  # Identifier a line would be stored under
  python -m linenotes hash "    return total"

  # Show stored notes
  python -m linenotes list --workspace ~/src/project
""",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the editor bridge")
    serve.add_argument("--workspace", help="Workspace root (default: current directory)")
    serve.add_argument("--host", default=DEFAULT_HOST, help=f"Bind host (default: {DEFAULT_HOST})")
    serve.add_argument(
        "--port", type=int, default=DEFAULT_PORT, help=f"Bind port (default: {DEFAULT_PORT})"
    )
    serve.set_defaults(handler=cmd_serve)

    hash_cmd = subparsers.add_parser("hash", help="Print the identifier of a line")
    hash_cmd.add_argument("text", help="Exact line text (whitespace matters)")
    hash_cmd.set_defaults(handler=cmd_hash)

    list_cmd = subparsers.add_parser("list", help="List stored notes")
    list_cmd.add_argument("--workspace", help="Workspace root (default: current directory)")
    list_cmd.set_defaults(handler=cmd_list)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())

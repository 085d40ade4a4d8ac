"""
Annotation Store - File-Backed Text Store

Purpose: Persist one annotation per line identifier as a plain UTF-8 file.

Layout:
-------
<workspace>/.linenotes/
├── 0beec7b5ea3f0fdbc95d0dd47f3c5bc275da8a33   # one file per identifier
└── 62cdb7020ff920e5aa642c3d4066950dd1f01f4d

There is no manifest. The directory listing IS the source of truth.
Files may be edited externally at any time; the watcher reconciles.

GUARANTEES:
-----------
- Writes go to a hidden temp file and are renamed into place
- A failed write never truncates the previous content
- Hidden files (temp files included) are never reported as annotations
"""

import logging
import os
from pathlib import Path
from typing import Dict

from .errors import AnnotationNotFoundError, StorageError, ValidationError
from .models import Annotation

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


def _read_text(path: Path) -> str:
    # Undecodable bytes become U+FFFD
    with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
        return f.read()


def is_annotation_filename(name: str) -> bool:
    """Hidden entries are temp files or editor droppings, never annotations."""
    return bool(name) and not name.startswith(".")


class AnnotationStore:
    """
    Simple file-backed store for line annotations.

    Each annotation is stored as a separate file named after its identifier.
    The store is identifier-agnostic beyond requiring a bare filename.
    """

    def __init__(self, storage_root: Path):
        """
        Initialize the annotation store.

        Does not touch the filesystem; call ensure_root() before use.

        Args:
            storage_root: Directory where annotation files are stored.
        """
        self.storage_root = Path(storage_root)

    def ensure_root(self) -> None:
        """
        Create the storage directory (and parents) if absent.

        Idempotent: existing contents are left untouched.

        Raises:
            StorageError: On permission or filesystem failure
        """
        try:
            self.storage_root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Cannot create storage directory {self.storage_root}: {e}"
            ) from e

    def path_for(self, identifier: str) -> Path:
        """
        Resolve the file path for an identifier.

        Raises:
            ValidationError: If identifier is not a usable filename
        """
        if (
            not is_annotation_filename(identifier)
            or "/" in identifier
            or "\\" in identifier
            or os.sep in identifier
        ):
            raise ValidationError(f"Invalid annotation identifier: {identifier!r}")
        return self.storage_root / identifier

    def exists(self, identifier: str) -> bool:
        return self.path_for(identifier).is_file()

    def read(self, identifier: str) -> Annotation:
        """
        Read one annotation.

        Raises:
            AnnotationNotFoundError: If no file exists for identifier
            StorageError: If the file exists but cannot be read
        """
        path = self.path_for(identifier)
        try:
            content = _read_text(path)
        except FileNotFoundError as e:
            raise AnnotationNotFoundError(identifier) from e
        except OSError as e:
            raise StorageError(f"Failed to read annotation {identifier}: {e}") from e
        return Annotation(identifier=identifier, content=content)

    def write(self, identifier: str, content: str) -> None:
        """
        Create or overwrite an annotation.

        Atomic write via temp file + rename.

        Raises:
            StorageError: On I/O failure (previous content is preserved)
        """
        path = self.path_for(identifier)
        temp_path = path.with_name(f".{identifier}{TEMP_SUFFIX}")
        try:
            # newline="" keeps the content byte-for-byte
            with open(temp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            temp_path.replace(path)
        except OSError as e:
            try:
                temp_path.unlink()
            except OSError:
                pass
            raise StorageError(f"Failed to write annotation {identifier}: {e}") from e
        logger.debug(f"Wrote annotation {identifier} ({len(content)} chars)")

    def delete(self, identifier: str) -> None:
        """
        Delete an annotation.

        Not idempotent: callers must tolerate AnnotationNotFoundError.

        Raises:
            AnnotationNotFoundError: If no file exists for identifier
            StorageError: On any other filesystem failure
        """
        path = self.path_for(identifier)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise AnnotationNotFoundError(identifier) from e
        except OSError as e:
            raise StorageError(f"Failed to delete annotation {identifier}: {e}") from e
        logger.debug(f"Deleted annotation {identifier}")

    def list_all(self) -> Dict[str, str]:
        """
        Full synchronous snapshot of the storage directory.

        Used for initial load and the on-demand hover path only.

        Returns:
            Mapping identifier -> content

        Raises:
            StorageError: If the directory cannot be listed
        """
        snapshot: Dict[str, str] = {}
        try:
            entries = sorted(self.storage_root.iterdir())
        except OSError as e:
            raise StorageError(
                f"Cannot list storage directory {self.storage_root}: {e}"
            ) from e

        for entry in entries:
            if not is_annotation_filename(entry.name) or not entry.is_file():
                continue
            try:
                snapshot[entry.name] = _read_text(entry)
            except FileNotFoundError:
                # Removed between listing and reading
                continue
            except OSError as e:
                logger.warning(f"Skipping unreadable annotation {entry.name}: {e}")
                continue

        return snapshot

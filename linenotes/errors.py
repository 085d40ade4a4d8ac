"""
Line notes error hierarchy.

Errors raised by user-initiated commands are surfaced to the operator through
the notifier. Errors raised inside background synchronization are logged
only; the last known index stays in place.
"""


class LineNotesError(Exception):
    """Base exception for line notes failures."""

    pass


class ValidationError(LineNotesError):
    """Input rejected before any storage mutation (e.g. a blank line)."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AnnotationNotFoundError(LineNotesError):
    """No annotation is stored under the requested identifier."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Annotation not found: {identifier}")


class StorageError(LineNotesError):
    """Filesystem operation on the storage directory failed."""

    pass


class WatchError(LineNotesError):
    """Storage watcher could not scan the storage directory."""

    pass


class ArmingError(LineNotesError):
    """Arming the core failed; nothing from the attempt stays live."""

    pass


class VcsError(LineNotesError):
    """Version-control status could not be queried."""

    pass

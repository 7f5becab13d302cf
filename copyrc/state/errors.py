"""State engine exception types.

Convention:
- Every error carries the operation that failed (``op``) and the file it
  was working on (``path``, may be empty).
- ``OSError`` causes are chained with ``raise ... from exc``.
"""

from __future__ import annotations


class StateError(Exception):
    """Base class for all state engine failures."""

    def __init__(self, message: str, *, op: str = "", path: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.op = op
        self.path = str(path) if path else ""

    def __str__(self) -> str:
        parts = [p for p in (self.op, self.path) if p]
        parts.append(self.message)
        return ": ".join(parts)


class InvalidPathError(StateError):
    """A local path does not follow the managed-file naming convention."""


class NotFoundError(StateError):
    """A file, patch, repository or provider could not be found."""


class ContentMismatchError(StateError):
    """On-disk content no longer matches the recorded hash."""

    def __init__(self, message: str, *, expected: str = "", actual: str = "", **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual


class SchemaMismatchError(StateError):
    """The state record was written by a different schema version."""


class LockHeldError(StateError):
    """Another writer holds the lock sentinel."""


class SerializationError(StateError):
    """The state record could not be encoded or decoded."""


class ParseError(SerializationError):
    """The persisted state document is malformed."""


class StateIOError(StateError):
    """Generic read, write or directory-walk failure."""


class NotPatchedError(StateError):
    """Patch content was requested for a pristine file."""


class MissingPatchInfoError(NotFoundError):
    """A file is flagged as patched but carries no patch record."""


class CancelledError(StateError):
    """The caller's context was cancelled or its deadline passed."""

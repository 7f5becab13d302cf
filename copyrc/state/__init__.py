"""State engine: the persisted record of every file copyrc manages.

This package provides the primitives for:
- Hashing: deterministic content digests used for drift detection
- File store: plain and atomic writes under the managed tree
- Locking: an advisory sentinel file guarding persistence
- State manager: load/save/put/validate/cleanup over the state record
"""

from copyrc.state.errors import (
    CancelledError,
    ContentMismatchError,
    InvalidPathError,
    LockHeldError,
    MissingPatchInfoError,
    NotFoundError,
    NotPatchedError,
    ParseError,
    SchemaMismatchError,
    SerializationError,
    StateError,
    StateIOError,
)
from copyrc.state.manager import CURRENT_SCHEMA_VERSION, StateManager

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "CancelledError",
    "ContentMismatchError",
    "InvalidPathError",
    "LockHeldError",
    "MissingPatchInfoError",
    "NotFoundError",
    "NotPatchedError",
    "ParseError",
    "SchemaMismatchError",
    "SerializationError",
    "StateError",
    "StateIOError",
    "StateManager",
]

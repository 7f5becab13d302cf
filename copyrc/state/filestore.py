"""Local file store: read, write and delete files under the managed tree.

Writes come in two flavours:

- ``write`` creates parent directories and overwrites in place. Concurrent
  writers race; the last one wins.
- ``write_atomic`` writes to a temp sibling and renames it over the
  destination, so readers never observe a partially written file.

Missing files surface as ``NotFoundError``; every other ``OSError`` is
wrapped in ``StateIOError``.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from copyrc.state.errors import NotFoundError, StateIOError


def write(path: str | Path, content: bytes) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    except OSError as exc:
        raise StateIOError(f"writing file: {exc}", op="write", path=str(path)) from exc


def write_atomic(path: str | Path, content: bytes) -> None:
    """Write ``content`` to ``path`` via write-to-temp + rename."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
    except OSError as exc:
        raise StateIOError(f"creating temp file: {exc}", op="write_atomic", path=str(path)) from exc

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise StateIOError(f"replacing file: {exc}", op="write_atomic", path=str(path)) from exc


def read(path: str | Path) -> bytes:
    try:
        return Path(path).read_bytes()
    except FileNotFoundError as exc:
        raise NotFoundError("file does not exist", op="read", path=str(path)) from exc
    except OSError as exc:
        raise StateIOError(f"reading file: {exc}", op="read", path=str(path)) from exc


def delete(path: str | Path) -> None:
    try:
        Path(path).unlink()
    except FileNotFoundError as exc:
        raise NotFoundError("file does not exist", op="delete", path=str(path)) from exc
    except OSError as exc:
        raise StateIOError(f"removing file: {exc}", op="delete", path=str(path)) from exc


def exists(path: str | Path) -> bool:
    """Return True if ``path`` is an existing regular file.

    Raises ``StateIOError`` when the file's status cannot be determined
    (e.g. permission denied on a parent directory).
    """
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except NotADirectoryError:
        return False
    except OSError as exc:
        raise StateIOError(f"checking file: {exc}", op="exists", path=str(path)) from exc
    return Path(path).is_file()

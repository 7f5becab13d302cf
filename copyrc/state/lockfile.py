"""Lock file protocol: an advisory, single-host exclusive sentinel.

The sentinel is a zero-byte file created with ``O_CREAT | O_EXCL`` beside
the file it guards. Existence = locked. It is purely advisory: nothing
stops a process that ignores it, and a process that crashes while holding
it leaves a stale sentinel behind that must be removed by hand.

Usage::

    with LockFile(state_path.with_name(state_path.name + ".lock")):
        write_atomic(state_path, data)
    # sentinel removed here, even if the body raised
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from copyrc.state.errors import LockHeldError, StateIOError

logger = logging.getLogger(__name__)


class LockFile:
    """Exclusive-create sentinel file with guaranteed release."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._held = False

    @property
    def locked(self) -> bool:
        """True while this instance holds the sentinel."""
        return self._held

    def acquire(self) -> None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError as exc:
            logger.error("Failed to acquire lock on %s: lock file already exists", self.path)
            raise LockHeldError("lock file already exists", op="lock", path=str(self.path)) from exc
        except OSError as exc:
            logger.error("Failed to acquire lock on %s: %s", self.path, exc)
            raise StateIOError(f"creating lock file: {exc}", op="lock", path=str(self.path)) from exc
        os.close(fd)
        self._held = True
        logger.debug("Acquired lock on %s", self.path)

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.warning("Lock file %s vanished before release", self.path)
            return
        except OSError as exc:
            raise StateIOError(f"removing lock file: {exc}", op="unlock", path=str(self.path)) from exc
        logger.debug("Released lock on %s", self.path)

    def __enter__(self) -> "LockFile":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()

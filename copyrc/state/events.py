"""File-change notifications emitted by the state engine.

The engine never renders output itself. It hands a ``FileChange`` to a
``Reporter`` for every file it adds, updates, deletes or skips, and for
every failure, so batch callers keep visibility into partial progress.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """What happened to a file."""

    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class FileChange:
    """A single change to a managed file."""

    kind: ChangeKind
    path: str
    description: str = ""
    error: BaseException | None = None

    def summary(self) -> str:
        msg = f"{self.kind.value.capitalize()} {self.path}"
        if self.description:
            msg += f" ({self.description})"
        return msg


class Reporter(Protocol):
    def report(self, change: FileChange) -> None: ...


class LoggingReporter:
    """Forward changes to the standard logging system."""

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def report(self, change: FileChange) -> None:
        if change.kind == ChangeKind.ERROR:
            self._log.error("%s: %s", change.summary(), change.error)
        elif change.kind == ChangeKind.SKIPPED:
            self._log.debug(change.summary())
        else:
            self._log.info(change.summary())


@dataclass
class CollectingReporter:
    """Keep every change in memory, in order."""

    changes: list[FileChange] = field(default_factory=list)

    def report(self, change: FileChange) -> None:
        self.changes.append(change)

    def of_kind(self, kind: ChangeKind) -> list[FileChange]:
        return [c for c in self.changes if c.kind == kind]

"""Operation context: cancellation and deadlines supplied by the caller.

The engine never imposes timeouts of its own. Long-running loops (the
orphan scan in particular) call ``ctx.check()`` periodically and stop with
``CancelledError`` once the caller has cancelled or the deadline passed.
"""

from __future__ import annotations

import threading
import time

from copyrc.state.errors import CancelledError


class Context:
    """Cancellation token with an optional monotonic deadline."""

    def __init__(self, timeout: float | None = None):
        self._cancelled = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def background(cls) -> "Context":
        """A context that is never cancelled and has no deadline."""
        return cls()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def check(self, op: str = "") -> None:
        """Raise ``CancelledError`` if the context is done."""
        if self._cancelled.is_set():
            raise CancelledError("operation cancelled", op=op)
        if self._deadline is not None and time.monotonic() >= self._deadline:
            raise CancelledError("deadline exceeded", op=op)

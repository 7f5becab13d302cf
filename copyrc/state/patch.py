"""Patch helpers for pre-modification snapshots and patch siblings."""

from __future__ import annotations

import base64
import binascii
import gzip
import os
import zlib

from copyrc.state.errors import InvalidPathError, SerializationError
from copyrc.state.models import PATCHED_MARKER, PRISTINE_MARKER


def encode_snapshot(content: bytes) -> str:
    """Gzip ``content`` and return it base64-encoded.

    The gzip header timestamp is pinned so equal content yields an equal
    snapshot.
    """
    return base64.b64encode(gzip.compress(content, mtime=0)).decode("ascii")


def decode_snapshot(snapshot: str) -> bytes:
    try:
        return gzip.decompress(base64.b64decode(snapshot, validate=True))
    except (binascii.Error, OSError, EOFError, zlib.error) as exc:
        raise SerializationError(f"decoding patch snapshot: {exc}", op="decode_snapshot") from exc


def patch_path_for(local_path: str) -> str:
    """Swap the first pristine marker in ``local_path`` for the patched one.

    ``dir/x.copy.txt`` -> ``dir/x.patch.txt``. Only the file name is rewritten,
    so the sibling always lands in the same directory. Only pristine copies
    can be patched.
    """
    directory, name = os.path.split(local_path)
    patch_name = name.replace(PRISTINE_MARKER, PATCHED_MARKER, 1)
    if patch_name == name:
        raise InvalidPathError(
            f"file name must contain {PRISTINE_MARKER}", op="apply_modification", path=local_path
        )
    return os.path.join(directory, patch_name)


def render_diff(local_path: str, before: bytes, after: bytes) -> str:
    """Render a before/after block for a modified file.

    This is a diagnostic record, not a minimal line diff: the whole original
    and the whole modified content each appear as one hunk line.
    """
    old = before.decode("utf-8", errors="replace")
    new = after.decode("utf-8", errors="replace")
    return f"--- {local_path}\n+++ {local_path}\n@@ -1,1 +1,1 @@\n-{old}\n+{new}\n"

"""Content hashing: SHA-256 digests used for drift detection."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path


def hash_bytes(data: bytes) -> str:
    """Return the hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def hash_file(path: str | Path) -> str:
    """Compute SHA-256 hash of a file."""
    sha = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            sha.update(chunk)
    return sha.hexdigest()


def canonical_hash(data: object) -> str:
    """Hash a JSON-serializable value independent of key order."""
    encoded = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hash_bytes(encoded.encode("utf-8"))

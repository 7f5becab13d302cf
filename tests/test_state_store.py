"""Tests for the hashing, file store, lock file and concurrency primitives."""

import hashlib
import os
import tempfile
import threading
import time
from pathlib import Path

import pytest

from copyrc.state import filestore
from copyrc.state.context import Context
from copyrc.state.errors import CancelledError, LockHeldError, NotFoundError, StateIOError
from copyrc.state.hashing import canonical_hash, hash_bytes, hash_file
from copyrc.state.lockfile import LockFile
from copyrc.state.rwlock import RWLock


# --- Hashing Tests ---


def test_hash_bytes_is_sha256():
    assert hash_bytes(b"Hello World") == hashlib.sha256(b"Hello World").hexdigest()


def test_hash_file_matches_hash_bytes():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "data.bin"
        data = os.urandom(20000)
        path.write_bytes(data)
        assert hash_file(path) == hash_bytes(data)


def test_canonical_hash_ignores_key_order():
    assert canonical_hash({"a": 1, "b": [1, 2]}) == canonical_hash({"b": [1, 2], "a": 1})
    assert canonical_hash({"a": 1}) != canonical_hash({"a": 2})


# --- File Store Tests ---


def test_write_creates_parent_directories():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "a" / "b" / "c.copy.txt"
        filestore.write(path, b"content")
        assert path.read_bytes() == b"content"


def test_write_atomic_replaces_content_and_leaves_no_temp_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "state.json"
        path.write_bytes(b"old")
        filestore.write_atomic(path, b"new")
        assert path.read_bytes() == b"new"
        assert os.listdir(tmpdir) == ["state.json"]


def test_read_missing_file_is_not_found():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(NotFoundError):
            filestore.read(Path(tmpdir) / "missing.txt")


def test_read_directory_is_io_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(StateIOError):
            filestore.read(tmpdir)


def test_delete_and_exists():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "x.copy.txt"
        path.write_text("x")
        assert filestore.exists(path)
        filestore.delete(path)
        assert not filestore.exists(path)
        with pytest.raises(NotFoundError):
            filestore.delete(path)


def test_exists_is_false_for_directories():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert not filestore.exists(tmpdir)


# --- Lock File Tests ---


def test_lock_file_acquire_and_release():
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "state.lock"
        lock = LockFile(lock_path)
        lock.acquire()
        assert lock.locked
        assert lock_path.exists()
        assert lock_path.stat().st_size == 0
        lock.release()
        assert not lock.locked
        assert not lock_path.exists()


def test_lock_file_held_by_other():
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "state.lock"
        with LockFile(lock_path):
            with pytest.raises(LockHeldError):
                LockFile(lock_path).acquire()
        assert not lock_path.exists()


def test_lock_file_released_when_body_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        lock_path = Path(tmpdir) / "state.lock"
        with pytest.raises(RuntimeError):
            with LockFile(lock_path):
                raise RuntimeError("boom")
        assert not lock_path.exists()


def test_lock_file_in_missing_directory_is_io_error():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(StateIOError):
            LockFile(Path(tmpdir) / "nope" / "state.lock").acquire()


# --- Read-Write Lock Tests ---


def test_rwlock_allows_concurrent_readers():
    lock = RWLock()
    inside = []
    barrier = threading.Barrier(3, timeout=5)

    def reader():
        with lock.read():
            inside.append(1)
            barrier.wait()

    threads = [threading.Thread(target=reader) for _ in range(3)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)
    assert len(inside) == 3


def test_rwlock_writer_excludes_readers():
    lock = RWLock()
    events = []

    lock.acquire_write()

    def reader():
        with lock.read():
            events.append("read")

    t = threading.Thread(target=reader)
    t.start()
    time.sleep(0.05)
    events.append("write-done")
    lock.release_write()
    t.join(timeout=5)
    assert events == ["write-done", "read"]


# --- Context Tests ---


def test_background_context_never_cancels():
    ctx = Context.background()
    assert not ctx.cancelled
    ctx.check("op")


def test_cancelled_context_raises():
    ctx = Context()
    ctx.cancel()
    assert ctx.cancelled
    with pytest.raises(CancelledError):
        ctx.check("op")


def test_expired_deadline_raises():
    ctx = Context(timeout=0)
    with pytest.raises(CancelledError, match="deadline"):
        ctx.check("op")

"""Tests for local modifications of tracked files and the patch siblings they produce."""

import os
import tempfile
from pathlib import Path

import pytest

from copyrc.remote.memory import memory_file
from copyrc.state import MissingPatchInfoError, NotFoundError, NotPatchedError, StateManager
from copyrc.state import filestore
from copyrc.state.errors import InvalidPathError, SerializationError, StateIOError
from copyrc.state.events import ChangeKind, CollectingReporter
from copyrc.state.hashing import hash_bytes
from copyrc.state.models import RemoteTextFile
from copyrc.state.patch import decode_snapshot, encode_snapshot, patch_path_for, render_diff
from copyrc.text import ReplacementRule


def _patched(tmpdir: str):
    reporter = CollectingReporter()
    manager = StateManager(tmpdir, reporter=reporter)
    path = os.path.join(tmpdir, "x.copy.txt")
    record = manager.put_remote_text_file(memory_file("Hello World"), path)
    record = manager.apply_modification(record, ReplacementRule("World", "Universe"))
    return manager, reporter, record, path


# --- Helper Tests ---


def test_snapshot_round_trip():
    data = b"line one\nline two\n" * 50
    assert decode_snapshot(encode_snapshot(data)) == data


def test_snapshot_is_deterministic():
    assert encode_snapshot(b"same") == encode_snapshot(b"same")


def test_decode_invalid_snapshot():
    with pytest.raises(SerializationError):
        decode_snapshot("not base64 at all!")
    with pytest.raises(SerializationError):
        decode_snapshot("aGVsbG8=")


def test_patch_path_for():
    assert patch_path_for("dir/x.copy.txt") == "dir/x.patch.txt"
    assert patch_path_for("proj.copy.d/x.copy.txt") == "proj.copy.d/x.patch.txt"
    assert patch_path_for("x.copy.txt") == "x.patch.txt"
    assert patch_path_for("a.copy.b.copy.go") == "a.patch.b.copy.go"
    with pytest.raises(InvalidPathError):
        patch_path_for("dir/x.patch.txt")
    with pytest.raises(InvalidPathError):
        patch_path_for("proj.copy.d/readme.md")


def test_render_diff():
    assert render_diff("p", b"old", b"new") == "--- p\n+++ p\n@@ -1,1 +1,1 @@\n-old\n+new\n"


# --- Modification Tests ---


def test_apply_modification_patches_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager, _, record, path = _patched(tmpdir)

        assert Path(path).read_text() == "Hello Universe"
        assert Path(tmpdir, "x.patch.txt").exists()
        assert record.is_patched
        assert record.content_hash == hash_bytes(b"Hello Universe")
        assert record.patch.patch_path == os.path.join(tmpdir, "x.patch.txt")
        assert record.patch.patch_hash == hash_bytes(record.patch.patch_diff.encode("utf-8"))
        assert Path(tmpdir, "x.patch.txt").read_text() == record.patch.patch_diff

        with manager.raw_remote_content(record) as stream:
            assert stream.read() == b"Hello World"
        with manager.raw_patch_content(record) as stream:
            assert len(stream.read()) > 0

        manager.validate_local_state()
        assert manager.is_consistent()


def test_apply_modification_notifications():
    with tempfile.TemporaryDirectory() as tmpdir:
        _, reporter, record, path = _patched(tmpdir)
        kinds = [(c.kind, c.path) for c in reporter.changes]
        assert kinds == [
            (ChangeKind.ADDED, path),
            (ChangeKind.UPDATED, path),
            (ChangeKind.ADDED, record.patch.patch_path),
        ]


def test_second_modification_keeps_original_snapshot():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager, reporter, record, path = _patched(tmpdir)
        snapshot = record.patch.remote_content

        record = manager.apply_modification(record, ReplacementRule("Hello", "Goodbye"))

        assert Path(path).read_text() == "Goodbye Universe"
        assert record.patch.remote_content == snapshot
        assert "-Hello World\n+Goodbye Universe\n" in record.patch.patch_diff
        with manager.raw_remote_content(record) as stream:
            assert stream.read() == b"Hello World"
        assert reporter.changes[-1].kind == ChangeKind.UPDATED


def test_empty_from_text_still_marks_patched():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = StateManager(tmpdir, reporter=CollectingReporter())
        path = os.path.join(tmpdir, "x.copy.txt")
        record = manager.put_remote_text_file(memory_file("unchanged"), path)

        record = manager.apply_modification(record, ReplacementRule(""))

        assert Path(path).read_text() == "unchanged"
        assert record.is_patched
        assert record.content_hash == hash_bytes(b"unchanged")


def test_apply_modification_untracked_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        reporter = CollectingReporter()
        manager = StateManager(tmpdir, reporter=reporter)
        stranger = RemoteTextFile(local_path=os.path.join(tmpdir, "y.copy.txt"))

        with pytest.raises(NotFoundError):
            manager.apply_modification(stranger, ReplacementRule("a", "b"))
        assert reporter.of_kind(ChangeKind.ERROR)[0].path == stranger.local_path


def test_apply_modification_on_patch_path_is_rejected():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = StateManager(tmpdir, reporter=CollectingReporter())
        record = manager.put_remote_text_file(memory_file("abc"), "x.patch.txt")
        with pytest.raises(InvalidPathError):
            manager.apply_modification(record, ReplacementRule("a", "b"))
        assert Path(tmpdir, "x.patch.txt").read_text() == "abc"


# --- Raw Content Tests ---


def test_raw_remote_content_of_pristine_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = StateManager(tmpdir, reporter=CollectingReporter())
        record = manager.put_remote_text_file(memory_file("pristine"), "x.copy.txt")
        with manager.raw_remote_content(record) as stream:
            assert stream.read() == b"pristine"


def test_raw_patch_content_of_pristine_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = StateManager(tmpdir, reporter=CollectingReporter())
        record = manager.put_remote_text_file(memory_file("pristine"), "x.copy.txt")
        with pytest.raises(NotPatchedError):
            manager.raw_patch_content(record)


def test_raw_content_without_patch_info():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = StateManager(tmpdir, reporter=CollectingReporter())
        broken = RemoteTextFile(local_path="x.copy.txt", is_patched=True)
        with pytest.raises(MissingPatchInfoError):
            manager.raw_remote_content(broken)
        with pytest.raises(MissingPatchInfoError):
            manager.raw_patch_content(broken)


def test_raw_content_survives_reload():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager, _, _, path = _patched(tmpdir)
        manager.save()

        other = StateManager(tmpdir, reporter=CollectingReporter())
        other.load()
        record = other.get_remote_text_file(path)
        with other.raw_remote_content(record) as stream:
            assert stream.read() == b"Hello World"


def test_patch_sibling_stays_beside_file_when_directory_has_marker():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = os.path.join(tmpdir, "proj.copy.d")
        manager = StateManager(root, reporter=CollectingReporter())
        path = os.path.join(root, "x.copy.txt")
        record = manager.put_remote_text_file(memory_file("Hello World"), path)

        record = manager.apply_modification(record, ReplacementRule("World", "Universe"))

        assert record.patch.patch_path == os.path.join(root, "x.patch.txt")
        assert Path(root, "x.patch.txt").exists()
        assert not Path(tmpdir, "proj.patch.d").exists()
        manager.validate_local_state()
        assert manager.cleanup_orphaned_files() == []


def test_failed_patch_write_restores_file(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        reporter = CollectingReporter()
        manager = StateManager(tmpdir, reporter=reporter)
        path = os.path.join(tmpdir, "x.copy.txt")
        record = manager.put_remote_text_file(memory_file("Hello World"), path)
        real_write = filestore.write

        def write_except_patch(target, content):
            if ".patch." in os.path.basename(str(target)):
                raise StateIOError("disk full", op="write", path=str(target))
            real_write(target, content)

        monkeypatch.setattr(filestore, "write", write_except_patch)
        with pytest.raises(StateIOError):
            manager.apply_modification(record, ReplacementRule("World", "Universe"))

        assert Path(path).read_text() == "Hello World"
        assert not manager.get_remote_text_file(path).is_patched
        assert manager.is_consistent()
        assert reporter.changes[-1].kind == ChangeKind.ERROR

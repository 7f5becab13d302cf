"""State manager: the persisted, content-hash-addressed record of managed files.

Every file copyrc writes is recorded here with the SHA-256 of the bytes it
left on disk. Comparing those hashes with the filesystem tells a pristine
copy from one that drifted, and the set of recorded paths tells which
marker-bearing files on disk are orphans.

Concurrency:
- One read-write mutex guards the whole in-memory record. Mutations hold
  the write side for their full duration; queries hold the read side.
- Across processes only ``save`` is protected, by the lock sentinel
  ``<state>.lock``. Two processes sharing a root can still race on
  ``load``, ``put_*`` and the orphan scan.
- Change notifications are delivered after the mutex is released, so a
  reporter may call back into the manager.
"""

from __future__ import annotations

import io
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, Protocol

from copyrc.state import filestore
from copyrc.state.context import Context
from copyrc.state.errors import (
    ContentMismatchError,
    InvalidPathError,
    MissingPatchInfoError,
    NotFoundError,
    NotPatchedError,
    ParseError,
    SchemaMismatchError,
    SerializationError,
    StateError,
    StateIOError,
)
from copyrc.state.events import ChangeKind, FileChange, LoggingReporter, Reporter
from copyrc.state.hashing import canonical_hash, hash_bytes, hash_file
from copyrc.state.lockfile import LockFile
from copyrc.state.models import (
    MANAGED_MARKERS,
    ArchiveFile,
    GeneratedFile,
    Patch,
    RemoteTextFile,
    Repository,
    StateFile,
    has_managed_marker,
    state_from_dict,
    state_to_dict,
    utc_now,
)
from copyrc.state.patch import decode_snapshot, encode_snapshot, patch_path_for, render_diff
from copyrc.state.rwlock import RWLock

if TYPE_CHECKING:
    from copyrc.remote.base import SourceFile
    from copyrc.text import ReplacementRule

logger = logging.getLogger(__name__)

CURRENT_SCHEMA_VERSION = "1.0.0"
STATE_FILE_NAME = ".lock-file"


class ConfigSnapshot(Protocol):
    def to_dict(self) -> dict: ...

    def hash(self) -> str: ...


class StateManager:
    """Load, mutate, verify and persist the state record of one root directory."""

    def __init__(self, root_dir: str | Path, reporter: Reporter | None = None):
        self.root_dir = Path(root_dir)
        self.state_path = self.root_dir / STATE_FILE_NAME
        self.lock_path = self.state_path.with_name(self.state_path.name + ".lock")
        self.reporter: Reporter = reporter or LoggingReporter()
        self._mu = RWLock()
        self._file = _empty_state()

    def dir(self) -> Path:
        """The directory containing the state file."""
        return self.root_dir

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self, ctx: Context | None = None) -> None:
        """Replace the in-memory record with the persisted one.

        A missing state file is not an error: the record stays as it is.
        """
        ctx = ctx or Context.background()
        with self._mu.write():
            ctx.check("load")
            try:
                raw = self.state_path.read_bytes()
            except FileNotFoundError:
                logger.info("Starting with clean state")
                return
            except OSError as exc:
                raise StateIOError(f"reading state file: {exc}", op="load", path=str(self.state_path)) from exc

            try:
                loaded = state_from_dict(json.loads(raw))
            except (ValueError, KeyError, TypeError, AttributeError) as exc:
                raise ParseError(f"parsing state file: {exc}", op="load", path=str(self.state_path)) from exc

            self._file = loaded
            logger.info("Loaded existing state from %s", self.state_path)

    def save(self, ctx: Context | None = None) -> None:
        """Persist the record atomically while holding the lock sentinel."""
        ctx = ctx or Context.background()
        with self._mu.write():
            ctx.check("save")
            try:
                self.root_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StateIOError(f"creating state directory: {exc}", op="save", path=str(self.root_dir)) from exc

            with LockFile(self.lock_path):
                self._file.last_updated = utc_now()
                try:
                    data = json.dumps(state_to_dict(self._file), indent=2)
                except (TypeError, ValueError) as exc:
                    raise SerializationError(
                        f"marshaling state: {exc}", op="save", path=str(self.state_path)
                    ) from exc
                filestore.write_atomic(self.state_path, (data + "\n").encode("utf-8"))

            logger.info("Saved state file %s", self.state_path)

    def reset(self, ctx: Context | None = None) -> None:
        """Wipe the in-memory record. The state file is untouched until ``save``."""
        ctx = ctx or Context.background()
        with self._mu.write():
            ctx.check("reset")
            self._file = _empty_state()
        self._notify(ChangeKind.UPDATED, str(self.state_path), "State reset")

    def config_hash(self) -> str:
        """Fingerprint of the recorded configuration snapshot, or ``""``."""
        with self._mu.read():
            if self._file.config is None:
                return ""
            return canonical_hash(self._file.config)

    def set_config(self, snapshot: ConfigSnapshot) -> None:
        with self._mu.write():
            self._file.config = snapshot.to_dict()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def schema_version(self) -> str:
        with self._mu.read():
            return self._file.schema_version

    @property
    def last_updated(self) -> str:
        with self._mu.read():
            return self._file.last_updated

    def remote_text_files(self) -> list[RemoteTextFile]:
        with self._mu.read():
            return list(self._file.remote_text_files)

    def get_remote_text_file(self, local_path: str | Path) -> RemoteTextFile | None:
        with self._mu.read():
            return self._find_text_file(local_path)

    def repositories(self) -> list[Repository]:
        with self._mu.read():
            return list(self._file.repositories)

    def generated_files(self) -> list[GeneratedFile]:
        with self._mu.read():
            return list(self._file.generated_files)

    def archive_files(self) -> list[ArchiveFile]:
        with self._mu.read():
            return list(self._file.archive_files)

    # ------------------------------------------------------------------
    # Put operations
    # ------------------------------------------------------------------

    def put_remote_text_file(
        self,
        source: SourceFile,
        local_path: str | Path,
        ctx: Context | None = None,
    ) -> RemoteTextFile:
        """Copy ``source`` to ``local_path`` and record it as a pristine copy.

        The local file is always overwritten with the freshest remote content.
        That includes files previously patched: their record goes back to
        pristine and the old patch sibling becomes an orphan.
        """
        ctx = ctx or Context.background()
        local_path = str(local_path)
        try:
            with self._mu.write():
                record, created = self._put_remote_text_file(source, local_path, ctx)
        except Exception as exc:
            self._notify(ChangeKind.ERROR, local_path, "Failed to copy from remote", exc)
            raise
        self._notify(
            ChangeKind.ADDED if created else ChangeKind.UPDATED,
            local_path,
            "Updated from remote",
        )
        return record

    def _put_remote_text_file(
        self, source: SourceFile, local_path: str, ctx: Context
    ) -> tuple[RemoteTextFile, bool]:
        op = "put_remote_text_file"
        ctx.check(op)
        if not has_managed_marker(local_path):
            raise InvalidPathError(
                f"invalid file suffix (must contain {' or '.join(MANAGED_MARKERS)})",
                op=op,
                path=local_path,
            )

        try:
            with source.get_content(ctx) as stream:
                data = stream.read()
        except OSError as exc:
            raise StateIOError(f"reading source content: {exc}", op=op, path=source.path) from exc

        filestore.write(self._resolve(local_path), data)

        release = source.release
        record = RemoteTextFile(
            local_path=local_path,
            repository_name=release.repository.name,
            release_ref=release.ref,
            content_hash=hash_bytes(data),
            is_patched=False,
            permalink=source.web_view_permalink,
            last_updated=utc_now(),
        )

        index = self._index_of(self._file.remote_text_files, local_path)
        if index is None:
            self._file.remote_text_files.append(record)
            return record, True

        if self._file.remote_text_files[index].is_patched:
            logger.warning("Re-syncing patched file %s; local modifications are replaced", local_path)
        self._file.remote_text_files[index] = record
        return record, False

    def put_generated_file(
        self,
        local_path: str | Path,
        reference_file: str | Path,
        ctx: Context | None = None,
    ) -> GeneratedFile:
        ctx = ctx or Context.background()
        op = "put_generated_file"
        local_path = str(local_path)
        try:
            with self._mu.write():
                ctx.check(op)
                for path in (local_path, str(reference_file)):
                    if not filestore.exists(self._resolve(path)):
                        raise NotFoundError("file does not exist", op=op, path=path)
                record = GeneratedFile(
                    local_path=local_path,
                    reference_file=str(reference_file),
                    last_updated=utc_now(),
                )
                created = self._upsert(self._file.generated_files, record)
        except Exception as exc:
            self._notify(ChangeKind.ERROR, local_path, "Failed to record generated file", exc)
            raise
        self._notify(
            ChangeKind.ADDED if created else ChangeKind.UPDATED,
            local_path,
            "Updated generated file",
        )
        return record

    def put_archive_file(self, local_path: str | Path, ctx: Context | None = None) -> ArchiveFile:
        ctx = ctx or Context.background()
        op = "put_archive_file"
        local_path = str(local_path)
        try:
            with self._mu.write():
                ctx.check(op)
                target = self._resolve(local_path)
                if not filestore.exists(target):
                    raise NotFoundError("file does not exist", op=op, path=local_path)
                record = ArchiveFile(local_path=local_path, content_hash=self._hash_path(target, op))
                created = self._upsert(self._file.archive_files, record)
        except Exception as exc:
            self._notify(ChangeKind.ERROR, local_path, "Failed to record archive", exc)
            raise
        self._notify(
            ChangeKind.ADDED if created else ChangeKind.UPDATED,
            local_path,
            "Updated archive file",
        )
        return record

    def put_repository(self, repository: Repository, ctx: Context | None = None) -> Repository:
        """Record ``repository``, replacing any entry with the same provider and name."""
        ctx = ctx or Context.background()
        with self._mu.write():
            ctx.check("put_repository")
            for i, existing in enumerate(self._file.repositories):
                if (existing.provider, existing.name) == (repository.provider, repository.name):
                    self._file.repositories[i] = repository
                    break
            else:
                self._file.repositories.append(repository)
        logger.debug("Recorded repository %s/%s", repository.provider, repository.name)
        return repository

    # ------------------------------------------------------------------
    # Patching
    # ------------------------------------------------------------------

    def apply_modification(
        self,
        file: RemoteTextFile,
        rule: ReplacementRule,
        ctx: Context | None = None,
    ) -> RemoteTextFile:
        """Replace every ``rule.from_text`` with ``rule.to_text`` in a tracked file.

        The first modification of a pristine copy snapshots its current bytes
        into ``Patch.remote_content`` and flips it to patched; there is no way
        back. Every modification rewrites the diagnostic diff in the
        ``.patch.`` sibling and refreshes the content hash.
        """
        ctx = ctx or Context.background()
        op = "apply_modification"
        try:
            with self._mu.write():
                ctx.check(op)
                record = self._find_text_file(file.local_path)
                if record is None:
                    raise NotFoundError("file is not tracked", op=op, path=file.local_path)
                created_patch = self._apply_modification(record, rule)
        except Exception as exc:
            self._notify(ChangeKind.ERROR, file.local_path, "Failed to apply modification", exc)
            raise
        self._notify(ChangeKind.UPDATED, record.local_path, "Applied modification")
        self._notify(
            ChangeKind.ADDED if created_patch else ChangeKind.UPDATED,
            record.patch.patch_path,
            "Wrote patch",
        )
        return record

    def _apply_modification(self, record: RemoteTextFile, rule: ReplacementRule) -> bool:
        op = "apply_modification"
        target = self._resolve(record.local_path)
        current = filestore.read(target)

        if record.is_patched:
            if record.patch is None or not record.patch.remote_content:
                raise MissingPatchInfoError("no patch information available", op=op, path=record.local_path)
            patch = Patch(
                remote_content=record.patch.remote_content,
                patch_path=record.patch.patch_path or patch_path_for(record.local_path),
            )
            baseline = decode_snapshot(patch.remote_content)
            created_patch = False
        else:
            patch = Patch(
                remote_content=encode_snapshot(current),
                patch_path=patch_path_for(record.local_path),
            )
            baseline = current
            created_patch = True

        if rule.from_text:
            modified = current.replace(rule.from_text.encode("utf-8"), rule.to_text.encode("utf-8"))
        else:
            modified = current

        patch.patch_diff = render_diff(record.local_path, baseline, modified)
        patch.patch_hash = hash_bytes(patch.patch_diff.encode("utf-8"))

        filestore.write(target, modified)
        try:
            filestore.write(self._resolve(patch.patch_path), patch.patch_diff.encode("utf-8"))
        except StateError:
            filestore.write(target, current)
            raise

        record.patch = patch
        record.is_patched = True
        record.content_hash = hash_bytes(modified)
        record.last_updated = utc_now()
        return created_patch

    def raw_remote_content(self, file: RemoteTextFile) -> BinaryIO:
        """Open the content as fetched from the remote, before any local patch.

        Patched files are served from their stored snapshot, pristine files
        from disk. The caller closes the returned stream.
        """
        op = "raw_remote_content"
        with self._mu.read():
            if file.is_patched:
                if file.patch is None or not file.patch.remote_content:
                    raise MissingPatchInfoError("no patch information available", op=op, path=file.local_path)
                return io.BytesIO(decode_snapshot(file.patch.remote_content))
            return self._open(file.local_path, op)

    def raw_patch_content(self, file: RemoteTextFile) -> BinaryIO:
        """Open the diagnostic diff sibling of a patched file."""
        op = "raw_patch_content"
        if not file.is_patched:
            raise NotPatchedError("file is not patched", op=op, path=file.local_path)
        if file.patch is None or not file.patch.patch_path:
            raise MissingPatchInfoError("no patch information available", op=op, path=file.local_path)
        with self._mu.read():
            return self._open(file.patch.patch_path, op)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_local_state(self, ctx: Context | None = None) -> None:
        """Verify every recorded file against the filesystem.

        Raises the first violation found; returns None when everything matches.
        """
        ctx = ctx or Context.background()
        op = "validate_local_state"
        with self._mu.read():
            if self._file.schema_version != CURRENT_SCHEMA_VERSION:
                raise SchemaMismatchError(
                    f"invalid schema version: expected {CURRENT_SCHEMA_VERSION}, "
                    f"got {self._file.schema_version}",
                    op=op,
                    path=str(self.state_path),
                )

            for f in self._file.remote_text_files:
                ctx.check(op)
                if not has_managed_marker(f.local_path):
                    raise InvalidPathError(
                        f"invalid file suffix (must contain {' or '.join(MANAGED_MARKERS)})",
                        op=op,
                        path=f.local_path,
                    )
                self._verify_file(f.local_path, f.content_hash, op)
                if f.is_patched:
                    if f.patch is None:
                        raise MissingPatchInfoError("no patch information available", op=op, path=f.local_path)
                    if not filestore.exists(self._resolve(f.patch.patch_path)):
                        raise NotFoundError("patch file does not exist", op=op, path=f.patch.patch_path)

            for repo in self._file.repositories:
                if repo.release is not None and repo.release.archive is not None:
                    ctx.check(op)
                    archive = repo.release.archive
                    self._verify_file(archive.local_path, archive.hash, op)

            for archive_file in self._file.archive_files:
                ctx.check(op)
                self._verify_file(archive_file.local_path, archive_file.content_hash, op)

        logger.info("Local state is valid")

    def is_consistent(self, ctx: Context | None = None) -> bool:
        """Quick drift check over tracked text files.

        Never raises: a missing or altered file, an I/O failure or a
        cancelled context all read as "needs resync".
        """
        ctx = ctx or Context.background()
        op = "is_consistent"
        with self._mu.read():
            try:
                for f in self._file.remote_text_files:
                    ctx.check(op)
                    self._verify_file(f.local_path, f.content_hash, op)
            except (StateError, OSError) as exc:
                logger.warning("State inconsistency detected: %s", exc)
                return False
        logger.info("State is consistent")
        return True

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def cleanup_orphaned_files(self, ctx: Context | None = None) -> list[str]:
        """Delete marker-bearing files under the root that the state does not know.

        The whole tree is scanned before anything is removed, so a walk
        failure or a cancellation during the scan deletes nothing. A failed
        delete aborts the remaining ones. Returns the removed paths.

        Notifications are delivered after the state lock is released.
        """
        ctx = ctx or Context.background()
        changes: list[FileChange] = []
        try:
            with self._mu.write():
                removed = self._cleanup_orphaned_files(ctx, changes)
        finally:
            for change in changes:
                self.reporter.report(change)

        logger.info("Removed %d orphaned file(s) under %s", len(removed), self.root_dir)
        return removed

    def _cleanup_orphaned_files(self, ctx: Context, changes: list[FileChange]) -> list[str]:
        op = "cleanup_orphaned_files"
        root = os.path.abspath(self.root_dir)
        if not os.path.isdir(root):
            return []

        known = self._known_paths()
        skip = {_normalize(self.state_path), _normalize(self.lock_path)}

        def _raise(exc: OSError) -> None:
            raise exc

        orphans: list[str] = []
        try:
            for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise):
                ctx.check(op)
                for name in filenames:
                    path = os.path.join(dirpath, name)
                    if path in skip or path in known:
                        continue
                    if has_managed_marker(name):
                        orphans.append(path)
        except OSError as exc:
            raise StateIOError(f"walking directory: {exc}", op=op, path=root) from exc

        ctx.check(op)
        removed: list[str] = []
        for path in orphans:
            try:
                filestore.delete(path)
            except StateError as exc:
                changes.append(
                    FileChange(
                        kind=ChangeKind.ERROR,
                        path=path,
                        description="Failed to remove orphaned file",
                        error=exc,
                    )
                )
                raise
            removed.append(path)
            changes.append(FileChange(kind=ChangeKind.DELETED, path=path, description="Removed orphaned file"))
        return removed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, path: str | Path) -> Path:
        p = Path(path)
        return p if p.is_absolute() else self.root_dir / p

    def _key(self, path: str | Path) -> str:
        return _normalize(self._resolve(path))

    def _find_text_file(self, local_path: str | Path) -> RemoteTextFile | None:
        index = self._index_of(self._file.remote_text_files, local_path)
        return None if index is None else self._file.remote_text_files[index]

    def _index_of(self, records: list, local_path: str | Path) -> int | None:
        key = self._key(local_path)
        for i, record in enumerate(records):
            if self._key(record.local_path) == key:
                return i
        return None

    def _upsert(self, records: list, record) -> bool:
        """Replace the entry with the same local path or append. True if appended."""
        index = self._index_of(records, record.local_path)
        if index is None:
            records.append(record)
            return True
        records[index] = record
        return False

    def _known_paths(self) -> set[str]:
        known: set[str] = set()
        for f in self._file.remote_text_files:
            known.add(self._key(f.local_path))
            if f.is_patched and f.patch is not None and f.patch.patch_path:
                known.add(self._key(f.patch.patch_path))
        for g in self._file.generated_files:
            known.add(self._key(g.local_path))
        for repo in self._file.repositories:
            if repo.release is not None and repo.release.archive is not None:
                if repo.release.archive.local_path:
                    known.add(self._key(repo.release.archive.local_path))
        for a in self._file.archive_files:
            known.add(self._key(a.local_path))
        return known

    def _verify_file(self, path: str, expected_hash: str, op: str) -> None:
        target = self._resolve(path)
        if not filestore.exists(target):
            raise NotFoundError("file does not exist", op=op, path=path)
        actual = self._hash_path(target, op)
        if actual != expected_hash:
            raise ContentMismatchError(
                f"content hash mismatch: expected {expected_hash}, got {actual}",
                op=op,
                path=path,
                expected=expected_hash,
                actual=actual,
            )

    def _hash_path(self, target: Path, op: str) -> str:
        try:
            return hash_file(target)
        except FileNotFoundError as exc:
            raise NotFoundError("file does not exist", op=op, path=str(target)) from exc
        except OSError as exc:
            raise StateIOError(f"hashing file: {exc}", op=op, path=str(target)) from exc

    def _open(self, path: str, op: str) -> BinaryIO:
        try:
            return open(self._resolve(path), "rb")
        except FileNotFoundError as exc:
            raise NotFoundError("file does not exist", op=op, path=path) from exc
        except OSError as exc:
            raise StateIOError(f"opening file: {exc}", op=op, path=path) from exc

    def _notify(
        self,
        kind: ChangeKind,
        path: str,
        description: str = "",
        error: BaseException | None = None,
    ) -> None:
        self.reporter.report(FileChange(kind=kind, path=path, description=description, error=error))


def _empty_state() -> StateFile:
    return StateFile(schema_version=CURRENT_SCHEMA_VERSION, last_updated=utc_now())


def _normalize(path: str | Path) -> str:
    return os.path.normpath(os.path.abspath(path))

"""State record data models: the persisted aggregate and its JSON mapping.

The JSON layout is stable: every ``*_to_dict`` helper emits keys in a
fixed order, so two saves of the same state produce identical documents
(apart from ``last_updated``).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

# Managed-file markers embedded in local file names.
PRISTINE_MARKER = ".copy."
PATCHED_MARKER = ".patch."
MANAGED_MARKERS = (PRISTINE_MARKER, PATCHED_MARKER)


def has_managed_marker(path: str) -> bool:
    """Return True if the file name of ``path`` carries a pristine or patched marker.

    Directory names are not considered: ``proj.copy.d/readme.md`` is unmanaged.
    """
    name = os.path.basename(path)
    return any(marker in name for marker in MANAGED_MARKERS)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# --- Auxiliary artifacts ---


@dataclass
class License:
    """License of a repository or copied file."""

    spdx: str = ""
    remote_permalink: str = ""
    local_path: str = ""


@dataclass
class Archive:
    """A downloaded release archive."""

    hash: str = ""
    content_type: str = ""
    download_url: str = ""
    local_path: str = ""


@dataclass
class Release:
    """State of the specific release/ref a repository was copied from."""

    ref: str = ""
    ref_hash: str = ""
    last_updated: str = ""
    web_permalink: str = ""
    archive: Archive | None = None
    license: License | None = None


@dataclass
class Repository:
    """A source repository files were copied from."""

    provider: str
    name: str
    latest_ref: str = ""
    release: Release | None = None


# --- Tracked files ---


@dataclass
class Patch:
    """Local modification record of a patched file.

    ``remote_content`` holds the pre-modification bytes, gzipped and
    base64-encoded. ``patch_path`` is the sibling file holding ``patch_diff``.
    """

    patch_diff: str = ""
    patch_hash: str = ""
    remote_content: str = ""
    patch_path: str = ""


@dataclass
class RemoteTextFile:
    """A text file copied from a remote repository."""

    local_path: str
    repository_name: str = ""
    release_ref: str = ""
    content_hash: str = ""
    is_patched: bool = False
    patch: Patch | None = None
    permalink: str = ""
    last_updated: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    license: License | None = None


@dataclass
class GeneratedFile:
    """A file produced locally from a reference file."""

    local_path: str
    reference_file: str = ""
    last_updated: str = ""


@dataclass
class ArchiveFile:
    """A standalone archive stored in the managed tree."""

    local_path: str
    content_hash: str = ""


@dataclass
class StateFile:
    """The on-disk state document."""

    schema_version: str
    last_updated: str = ""
    repositories: list[Repository] = field(default_factory=list)
    remote_text_files: list[RemoteTextFile] = field(default_factory=list)
    generated_files: list[GeneratedFile] = field(default_factory=list)
    archive_files: list[ArchiveFile] = field(default_factory=list)
    config: dict[str, Any] | None = None


# --- Serialization ---


def state_to_dict(state: StateFile) -> dict:
    return {
        "schema_version": state.schema_version,
        "last_updated": state.last_updated,
        "repositories": [_repository_to_dict(r) for r in state.repositories],
        "remote_text_files": [_text_file_to_dict(f) for f in state.remote_text_files],
        "generated_files": [
            {
                "local_path": g.local_path,
                "last_updated": g.last_updated,
                "reference_file": g.reference_file,
            }
            for g in state.generated_files
        ],
        "archive_files": [
            {"local_path": a.local_path, "content_hash": a.content_hash}
            for a in state.archive_files
        ],
        "config": state.config,
    }


def state_from_dict(data: dict) -> StateFile:
    """Build a ``StateFile`` from a decoded JSON document.

    Every field is type-checked: a missing required field raises ``KeyError``
    and a value of the wrong type raises ``TypeError``. Optional fields may be
    absent or ``null``. The caller translates both into a parse error.
    """
    _expect_object(data, "state document")
    return StateFile(
        schema_version=_field(data, "schema_version", str),
        last_updated=_field(data, "last_updated", str, ""),
        repositories=[_dict_to_repository(r) for r in _field(data, "repositories", list, [])],
        remote_text_files=[_dict_to_text_file(f) for f in _field(data, "remote_text_files", list, [])],
        generated_files=[_dict_to_generated_file(g) for g in _field(data, "generated_files", list, [])],
        archive_files=[_dict_to_archive_file(a) for a in _field(data, "archive_files", list, [])],
        config=_field(data, "config", dict, None),
    )


_REQUIRED = object()


def _expect_object(data: Any, what: str) -> None:
    if not isinstance(data, dict):
        raise TypeError(f"{what} must be an object, got {type(data).__name__}")


def _field(data: dict, key: str, kind: type, default: Any = _REQUIRED) -> Any:
    """Return ``data[key]`` if it is a ``kind``; fall back to ``default`` when absent or null."""
    value = data.get(key)
    if value is None:
        if default is _REQUIRED:
            if key not in data:
                raise KeyError(key)
            raise TypeError(f"field '{key}' must be {kind.__name__}, got null")
        return default
    if not isinstance(value, kind):
        raise TypeError(f"field '{key}' must be {kind.__name__}, got {type(value).__name__}")
    return value


def _license_to_dict(lic: License | None) -> dict | None:
    if lic is None:
        return None
    return {
        "spdx": lic.spdx,
        "remote_permalink": lic.remote_permalink,
        "local_path": lic.local_path,
    }


def _dict_to_license(data: dict | None) -> License | None:
    if data is None:
        return None
    _expect_object(data, "license")
    return License(
        spdx=_field(data, "spdx", str, ""),
        remote_permalink=_field(data, "remote_permalink", str, ""),
        local_path=_field(data, "local_path", str, ""),
    )


def _repository_to_dict(repo: Repository) -> dict:
    release = repo.release
    release_data = None
    if release is not None:
        archive = release.archive
        release_data = {
            "last_updated": release.last_updated,
            "ref": release.ref,
            "ref_hash": release.ref_hash,
            "archive": None
            if archive is None
            else {
                "hash": archive.hash,
                "content_type": archive.content_type,
                "download_url": archive.download_url,
                "local_path": archive.local_path,
            },
            "web_permalink": release.web_permalink,
            "license": _license_to_dict(release.license),
        }
    return {
        "provider": repo.provider,
        "name": repo.name,
        "latest_ref": repo.latest_ref,
        "release": release_data,
    }


def _dict_to_repository(data: dict) -> Repository:
    _expect_object(data, "repository")
    release_data = _field(data, "release", dict, None)
    release = None
    if release_data is not None:
        archive_data = _field(release_data, "archive", dict, None)
        release = Release(
            ref=_field(release_data, "ref", str, ""),
            ref_hash=_field(release_data, "ref_hash", str, ""),
            last_updated=_field(release_data, "last_updated", str, ""),
            web_permalink=_field(release_data, "web_permalink", str, ""),
            archive=None
            if archive_data is None
            else Archive(
                hash=_field(archive_data, "hash", str, ""),
                content_type=_field(archive_data, "content_type", str, ""),
                download_url=_field(archive_data, "download_url", str, ""),
                local_path=_field(archive_data, "local_path", str, ""),
            ),
            license=_dict_to_license(_field(release_data, "license", dict, None)),
        )
    return Repository(
        provider=_field(data, "provider", str, ""),
        name=_field(data, "name", str),
        latest_ref=_field(data, "latest_ref", str, ""),
        release=release,
    )


def _text_file_to_dict(f: RemoteTextFile) -> dict:
    return {
        "metadata": dict(f.metadata),
        "repository_name": f.repository_name,
        "release_ref": f.release_ref,
        "local_path": f.local_path,
        "last_updated": f.last_updated,
        "is_patched": f.is_patched,
        "content_hash": f.content_hash,
        "patch": None
        if f.patch is None
        else {
            "patch_diff": f.patch.patch_diff,
            "patch_hash": f.patch.patch_hash,
            "remote_content": f.patch.remote_content,
            "patch_path": f.patch.patch_path,
        },
        "permalink": f.permalink,
        "license": _license_to_dict(f.license),
    }


def _dict_to_text_file(data: dict) -> RemoteTextFile:
    _expect_object(data, "remote text file")
    patch_data = _field(data, "patch", dict, None)
    metadata = _field(data, "metadata", dict, {})
    for key, value in metadata.items():
        if not isinstance(value, str):
            raise TypeError(f"metadata '{key}' must be str, got {type(value).__name__}")
    return RemoteTextFile(
        local_path=_field(data, "local_path", str),
        repository_name=_field(data, "repository_name", str, ""),
        release_ref=_field(data, "release_ref", str, ""),
        content_hash=_field(data, "content_hash", str, ""),
        is_patched=_field(data, "is_patched", bool, False),
        patch=None
        if patch_data is None
        else Patch(
            patch_diff=_field(patch_data, "patch_diff", str, ""),
            patch_hash=_field(patch_data, "patch_hash", str, ""),
            remote_content=_field(patch_data, "remote_content", str, ""),
            patch_path=_field(patch_data, "patch_path", str, ""),
        ),
        permalink=_field(data, "permalink", str, ""),
        last_updated=_field(data, "last_updated", str, ""),
        metadata=dict(metadata),
        license=_dict_to_license(_field(data, "license", dict, None)),
    )


def _dict_to_generated_file(data: dict) -> GeneratedFile:
    _expect_object(data, "generated file")
    return GeneratedFile(
        local_path=_field(data, "local_path", str),
        reference_file=_field(data, "reference_file", str, ""),
        last_updated=_field(data, "last_updated", str, ""),
    )


def _dict_to_archive_file(data: dict) -> ArchiveFile:
    _expect_object(data, "archive file")
    return ArchiveFile(
        local_path=_field(data, "local_path", str),
        content_hash=_field(data, "content_hash", str, ""),
    )

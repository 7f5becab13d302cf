"""Local provider: treat a directory tree as a remote repository.

The directory has no history, so every ref maps to its current contents;
the ref is still recorded so the state knows what the user asked for.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from copyrc.config import RepositoryConfig
from copyrc.state.context import Context
from copyrc.state.errors import NotFoundError
from copyrc.state.hashing import hash_bytes

# Directories never copied from a source tree
SKIP_DIRS = {".git", "__pycache__", "node_modules", ".venv", "venv", ".tox"}

LICENSE_FILES = ("LICENSE", "LICENSE.md", "LICENSE.txt", "COPYING")


class LocalProvider:
    def __init__(self, base_dir: str | Path = "."):
        self.base_dir = Path(base_dir)

    def open_repository(self, config: RepositoryConfig, ctx: Context) -> LocalRepository:
        ctx.check("open_repository")
        root = Path(config.source or config.name)
        if not root.is_absolute():
            root = self.base_dir / root
        if not root.is_dir():
            raise NotFoundError("source directory does not exist", op="open_repository", path=str(root))
        return LocalRepository(name=config.name, root=root)


@dataclass
class LocalRepository:
    name: str
    root: Path
    latest_ref: str = "local"

    def get_release(self, ref: str, ctx: Context) -> LocalRelease:
        ctx.check("get_release")
        return LocalRelease(repository=self, ref=ref or self.latest_ref)


@dataclass
class LocalRelease:
    repository: LocalRepository
    ref: str
    license_spdx: str = field(init=False, default="")

    def __post_init__(self) -> None:
        self.license_spdx = _detect_spdx(self.repository.root)

    @property
    def ref_hash(self) -> str:
        return hash_bytes(self.ref.encode("utf-8"))

    @property
    def web_permalink(self) -> str:
        return self.repository.root.resolve().as_uri()

    def list_files(self, path: str, ctx: Context) -> list[LocalSourceFile]:
        """List files at ``path`` (a file or a directory, recursively)."""
        ctx.check("list_files")
        target = self.repository.root / path.strip("/") if path.strip("/") else self.repository.root
        if target.is_file():
            return [self._file(target)]
        if not target.is_dir():
            raise NotFoundError("path does not exist in source", op="list_files", path=str(target))

        files = []
        for item in sorted(target.rglob("*")):
            rel_parts = item.relative_to(self.repository.root).parts
            if any(part in SKIP_DIRS for part in rel_parts):
                continue
            if item.is_file():
                files.append(self._file(item))
        return files

    def _file(self, full_path: Path) -> LocalSourceFile:
        rel = full_path.relative_to(self.repository.root).as_posix()
        return LocalSourceFile(release=self, path=rel, full_path=full_path)


@dataclass
class LocalSourceFile:
    release: LocalRelease
    path: str
    full_path: Path

    @property
    def web_view_permalink(self) -> str:
        return self.full_path.resolve().as_uri()

    def get_content(self, ctx: Context) -> BinaryIO:
        ctx.check("get_content")
        try:
            return open(self.full_path, "rb")
        except FileNotFoundError as exc:
            raise NotFoundError("source file does not exist", op="get_content", path=str(self.full_path)) from exc


def _detect_spdx(root: Path) -> str:
    """Return the SPDX identifier declared in the repository's license file, if any."""
    for name in LICENSE_FILES:
        path = root / name
        if not path.is_file():
            continue
        for line in path.read_text(errors="replace").splitlines()[:20]:
            if "SPDX-License-Identifier:" in line:
                return line.split("SPDX-License-Identifier:", 1)[1].strip()
    return ""

"""In-memory provider: repositories held as ``{path: bytes}`` dictionaries.

Handy for embedding callers that already have the content, and for tests.
"""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import BinaryIO

from copyrc.config import RepositoryConfig
from copyrc.remote.base import relative_to_prefix
from copyrc.state.context import Context
from copyrc.state.errors import NotFoundError
from copyrc.state.hashing import hash_bytes


class MemoryProvider:
    def __init__(self, repositories: dict[str, dict[str, bytes]] | None = None):
        self.repositories: dict[str, dict[str, bytes]] = repositories or {}

    def open_repository(self, config: RepositoryConfig, ctx: Context) -> MemoryRepository:
        ctx.check("open_repository")
        key = config.source or config.name
        if key not in self.repositories:
            raise NotFoundError(f"unknown repository '{key}'", op="open_repository")
        return MemoryRepository(name=config.name, files=self.repositories[key])


@dataclass
class MemoryRepository:
    name: str
    files: dict[str, bytes] = field(default_factory=dict)
    latest_ref: str = "main"

    def get_release(self, ref: str, ctx: Context) -> MemoryRelease:
        ctx.check("get_release")
        return MemoryRelease(repository=self, ref=ref or self.latest_ref)


@dataclass
class MemoryRelease:
    repository: MemoryRepository
    ref: str
    license_spdx: str = ""

    @property
    def ref_hash(self) -> str:
        return hash_bytes(self.ref.encode("utf-8"))

    @property
    def web_permalink(self) -> str:
        return f"memory://{self.repository.name}/{self.ref}"

    def list_files(self, path: str, ctx: Context) -> list[MemorySourceFile]:
        ctx.check("list_files")
        prefix = path.strip("/")
        return [
            MemorySourceFile(release=self, path=name, content=data)
            for name, data in sorted(self.repository.files.items())
            if not prefix or name == prefix or relative_to_prefix(name, prefix) != name
        ]


@dataclass
class MemorySourceFile:
    release: MemoryRelease
    path: str
    content: bytes

    @property
    def web_view_permalink(self) -> str:
        return f"{self.release.web_permalink}/{self.path}"

    def get_content(self, ctx: Context) -> BinaryIO:
        return io.BytesIO(self.content)


def memory_file(
    content: bytes | str,
    path: str = "file.txt",
    repository: str = "memory",
    ref: str = "main",
) -> MemorySourceFile:
    """Build a standalone source file backed by ``content``."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    repo = MemoryRepository(name=repository, files={path: content})
    return MemorySourceFile(release=MemoryRelease(repository=repo, ref=ref), path=path, content=content)

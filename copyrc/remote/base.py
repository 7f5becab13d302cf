"""Source content provider interfaces."""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol

if TYPE_CHECKING:
    from copyrc.config import RepositoryConfig
    from copyrc.state.context import Context


class SourceRepository(Protocol):
    """A remote repository."""

    @property
    def name(self) -> str: ...

    @property
    def latest_ref(self) -> str: ...

    def get_release(self, ref: str, ctx: Context) -> SourceRelease: ...


class SourceRelease(Protocol):
    """A specific release/ref of a repository."""

    @property
    def ref(self) -> str: ...

    @property
    def ref_hash(self) -> str: ...

    @property
    def web_permalink(self) -> str: ...

    @property
    def license_spdx(self) -> str: ...

    @property
    def repository(self) -> SourceRepository: ...

    def list_files(self, path: str, ctx: Context) -> list[SourceFile]: ...


class SourceFile(Protocol):
    """A single text file inside a release."""

    @property
    def path(self) -> str:
        """Path relative to the repository root, ``/``-separated."""
        ...

    @property
    def web_view_permalink(self) -> str: ...

    @property
    def release(self) -> SourceRelease: ...

    def get_content(self, ctx: Context) -> BinaryIO:
        """Open the file's content. The caller closes the stream."""
        ...


class Provider(Protocol):
    """Knows how to open repositories of one kind (local, git, ...)."""

    def open_repository(self, config: RepositoryConfig, ctx: Context) -> SourceRepository: ...


def relative_to_prefix(path: str, prefix: str) -> str:
    """Strip ``prefix`` (a directory inside the repository) from ``path``."""
    prefix = prefix.strip("/")
    if not prefix:
        return path
    if path == prefix:
        return path.rsplit("/", 1)[-1]
    return path[len(prefix) + 1 :] if path.startswith(prefix + "/") else path

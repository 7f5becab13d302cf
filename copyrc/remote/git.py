"""Git provider: read files at a ref from a git repository.

``source`` may be a local checkout or a URL. URLs are cloned (without checkout) into
a temporary directory that is removed by ``GitProvider.close()``.
"""

from __future__ import annotations

import io
import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from git import BadName, GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from copyrc.config import RepositoryConfig
from copyrc.state.context import Context
from copyrc.state.errors import NotFoundError, StateIOError

logger = logging.getLogger(__name__)

URL_PREFIXES = ("http://", "https://", "git@", "git://", "ssh://")


class GitProvider:
    def __init__(self, base_dir: str | Path = "."):
        self.base_dir = Path(base_dir)
        self._temp_clones: list[Path] = []

    def open_repository(self, config: RepositoryConfig, ctx: Context) -> GitRepository:
        ctx.check("open_repository")
        source = config.source or config.name
        if source.startswith(URL_PREFIXES):
            repo = self._clone(source)
            return GitRepository(name=config.name, repo=repo, remote_url=source)

        path = Path(source)
        if not path.is_absolute():
            path = self.base_dir / path
        try:
            repo = Repo(path)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise NotFoundError("not a git repository", op="open_repository", path=str(path)) from exc
        return GitRepository(name=config.name, repo=repo, remote_url=_remote_url(repo))

    def close(self) -> None:
        """Remove temporary clones."""
        for clone_dir in self._temp_clones:
            shutil.rmtree(clone_dir, ignore_errors=True)
        self._temp_clones.clear()

    def __enter__(self) -> "GitProvider":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _clone(self, url: str) -> Repo:
        clone_dir = Path(tempfile.mkdtemp(prefix="copyrc_"))
        self._temp_clones.append(clone_dir)
        logger.info("Cloning %s", url)
        try:
            return Repo.clone_from(url, clone_dir, no_checkout=True)
        except GitCommandError as exc:
            raise StateIOError(f"cloning repository: {exc}", op="open_repository", path=url) from exc


@dataclass
class GitRepository:
    name: str
    repo: Repo
    remote_url: str = ""

    @property
    def latest_ref(self) -> str:
        """Most recent tag by commit date, or the HEAD commit when untagged."""
        tags = sorted(self.repo.tags, key=lambda t: t.commit.committed_datetime)
        if tags:
            return tags[-1].name
        return self.repo.head.commit.hexsha

    def get_release(self, ref: str, ctx: Context) -> GitRelease:
        ctx.check("get_release")
        ref = ref or "HEAD"
        try:
            commit = self.repo.commit(ref)
        except (BadName, ValueError, GitCommandError) as exc:
            raise NotFoundError(f"could not resolve ref '{ref}'", op="get_release", path=self.name) from exc
        return GitRelease(repository=self, ref=ref, commit=commit)


@dataclass
class GitRelease:
    repository: GitRepository
    ref: str
    commit: object  # git.Commit

    @property
    def ref_hash(self) -> str:
        return self.commit.hexsha

    @property
    def web_permalink(self) -> str:
        base = _web_base(self.repository.remote_url)
        return f"{base}/tree/{self.commit.hexsha}" if base else ""

    @property
    def license_spdx(self) -> str:
        return ""

    def list_files(self, path: str, ctx: Context) -> list[GitSourceFile]:
        ctx.check("list_files")
        tree = self.commit.tree
        path = path.strip("/")
        if path:
            try:
                obj = tree / path
            except KeyError as exc:
                raise NotFoundError("path does not exist at ref", op="list_files", path=path) from exc
        else:
            obj = tree

        if obj.type == "blob":
            return [GitSourceFile(release=self, path=obj.path, blob=obj)]
        return [
            GitSourceFile(release=self, path=item.path, blob=item)
            for item in sorted(obj.traverse(), key=lambda i: i.path)
            if item.type == "blob"
        ]


@dataclass
class GitSourceFile:
    release: GitRelease
    path: str
    blob: object  # git.Blob

    @property
    def web_view_permalink(self) -> str:
        base = _web_base(self.release.repository.remote_url)
        return f"{base}/blob/{self.release.commit.hexsha}/{self.path}" if base else ""

    def get_content(self, ctx: Context) -> BinaryIO:
        ctx.check("get_content")
        return io.BytesIO(self.blob.data_stream.read())


def _remote_url(repo: Repo) -> str:
    """Return the first remote URL for a local repo, or empty string."""
    try:
        if repo.remotes:
            return repo.remotes[0].url
    except (ValueError, GitCommandError):
        return ""
    return ""


def _web_base(url: str) -> str:
    """Turn a clone URL into a browsable https base URL, when recognizable."""
    if not url:
        return ""
    if url.startswith("git@") and ":" in url:
        host, path = url[4:].split(":", 1)
        url = f"https://{host}/{path}"
    if url.startswith(("http://", "https://")):
        return url[:-4] if url.endswith(".git") else url
    return ""

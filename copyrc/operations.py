"""Operations: sync, status and clean built on top of the state manager.

Each operation takes the manager, the configuration and the provider
resolver as arguments; nothing is looked up from module-level state.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path

from copyrc.config import CopyConfig, CopyrcConfig
from copyrc.remote.base import SourceFile, relative_to_prefix
from copyrc.remote.resolver import ProviderResolver
from copyrc.state.context import Context
from copyrc.state.events import ChangeKind, FileChange
from copyrc.state.manager import StateManager
from copyrc.state.models import PRISTINE_MARKER, License, Release, Repository, utc_now
from copyrc.text import replace_text

logger = logging.getLogger(__name__)

# Config ref that selects the repository's newest release
LATEST_REF = "latest"


@dataclass
class SyncReport:
    """Outcome of a sync run."""

    copied: list[str] = field(default_factory=list)
    patched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    was_consistent: bool = True
    config_changed: bool = False

    def summary(self) -> str:
        return (
            f"{len(self.copied)} copied, {len(self.patched)} patched, "
            f"{len(self.skipped)} skipped"
        )


@dataclass
class StatusReport:
    """Whether local files need to be synced."""

    consistent: bool
    config_changed: bool
    tracked_files: int = 0

    @property
    def needs_sync(self) -> bool:
        return not self.consistent or self.config_changed


def local_copy_path(local_dir: str, relative_path: str) -> str:
    """Where a remote file lands locally, with the pristine marker inserted.

    ``pkg/util.go`` -> ``<local_dir>/pkg/util.copy.go``;
    ``Makefile`` -> ``<local_dir>/Makefile.copy.txt``.
    """
    directory, name = posixpath.split(relative_path)
    stem, dot, ext = name.rpartition(".")
    if dot and stem:
        local_name = f"{stem}{PRISTINE_MARKER}{ext}"
    else:
        local_name = f"{name}{PRISTINE_MARKER}txt"
    return str(Path(local_dir, directory, local_name)) if directory else str(Path(local_dir, local_name))


def sync(
    manager: StateManager,
    config: CopyrcConfig,
    resolver: ProviderResolver,
    ctx: Context | None = None,
) -> SyncReport:
    """Copy every configured file, apply replacements and save the state."""
    ctx = ctx or Context.background()
    report = SyncReport()

    manager.load(ctx)
    report.was_consistent = manager.is_consistent(ctx)
    if not report.was_consistent:
        logger.warning("State is inconsistent, proceeding with sync")

    state_hash = manager.config_hash()
    report.config_changed = state_hash != config.hash()
    if report.config_changed:
        logger.info("Config has changed (state %s, config %s)", state_hash or "<none>", config.hash())

    for repo_config in config.repositories:
        copies = config.copies_for(repo_config.name)
        if not copies:
            logger.debug("No copies configured for %s", repo_config.name)
            continue

        provider = resolver.resolve(repo_config.provider)
        repository = provider.open_repository(repo_config, ctx)
        ref = repository.latest_ref if repo_config.ref == LATEST_REF else repo_config.ref
        release = repository.get_release(ref, ctx)

        manager.put_repository(
            Repository(
                provider=repo_config.provider,
                name=repo_config.name,
                latest_ref=repository.latest_ref,
                release=Release(
                    ref=release.ref,
                    ref_hash=release.ref_hash,
                    last_updated=utc_now(),
                    web_permalink=release.web_permalink,
                    license=License(spdx=release.license_spdx, remote_permalink=release.web_permalink)
                    if release.license_spdx
                    else None,
                ),
            ),
            ctx,
        )

        for copy in copies:
            for source in release.list_files(copy.remote_path, ctx):
                _sync_file(manager, copy, source, report, ctx)

    manager.set_config(config)
    manager.save(ctx)
    logger.info("Sync complete: %s", report.summary())
    return report


def _sync_file(
    manager: StateManager,
    copy: CopyConfig,
    source: SourceFile,
    report: SyncReport,
    ctx: Context,
) -> None:
    relative = relative_to_prefix(source.path, copy.remote_path)
    if copy.is_ignored(source.path):
        manager.reporter.report(
            FileChange(kind=ChangeKind.SKIPPED, path=source.path, description="ignored by config")
        )
        report.skipped.append(source.path)
        return

    record = manager.put_remote_text_file(source, local_copy_path(copy.local_path, relative), ctx)
    report.copied.append(record.local_path)

    rules = [r for r in copy.replacements if r.matches(relative)]
    if not rules:
        return

    with manager.raw_remote_content(record) as stream:
        content = stream.read()
    for rule in rules:
        result = replace_text(content, [rule])
        if result.was_modified:
            record = manager.apply_modification(record, rule, ctx)
            content = result.modified_content
    if record.is_patched:
        report.patched.append(record.local_path)


def status(manager: StateManager, config: CopyrcConfig, ctx: Context | None = None) -> StatusReport:
    """Report whether local files are up to date with the configuration."""
    ctx = ctx or Context.background()
    manager.load(ctx)
    return StatusReport(
        consistent=manager.is_consistent(ctx),
        config_changed=manager.config_hash() != config.hash(),
        tracked_files=len(manager.remote_text_files()),
    )


def clean(manager: StateManager, ctx: Context | None = None, remove_all: bool = False) -> list[str]:
    """Remove orphaned files and save the state.

    With ``remove_all`` the state is reset first, so every managed file
    under the root counts as an orphan and is removed.
    """
    ctx = ctx or Context.background()
    manager.load(ctx)
    if remove_all:
        manager.reset(ctx)
    removed = manager.cleanup_orphaned_files(ctx)
    manager.save(ctx)
    return removed

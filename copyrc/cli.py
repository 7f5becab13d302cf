"""copyrc CLI: the main entry point."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from copyrc import __version__
from copyrc.config import DEFAULT_CONFIG_FILE, ConfigError, load_config
from copyrc.state.errors import StateError
from copyrc.state.events import ChangeKind, FileChange
from copyrc.state.manager import StateManager

console = Console()

_STYLES = {
    ChangeKind.ADDED: ("green", "+"),
    ChangeKind.UPDATED: ("cyan", "~"),
    ChangeKind.DELETED: ("yellow", "-"),
    ChangeKind.SKIPPED: ("dim", "."),
    ChangeKind.ERROR: ("red", "x"),
}


class RichReporter:
    """Render file changes on the console."""

    def __init__(self, root: Path, out: Console | None = None, show_skipped: bool = False):
        self.root = root
        self.out = out or console
        self.show_skipped = show_skipped

    def report(self, change: FileChange) -> None:
        if change.kind == ChangeKind.SKIPPED and not self.show_skipped:
            return
        style, mark = _STYLES[change.kind]
        line = f"  [{style}]{mark}[/] {self._display(change.path)}"
        if change.description:
            line += f" [dim]({change.description})[/]"
        self.out.print(line)
        if change.error is not None:
            self.out.print(f"    [red]{change.error}[/]")

    def _display(self, path: str) -> str:
        try:
            return str(Path(path).resolve().relative_to(self.root.resolve()))
        except ValueError:
            return path


@click.group()
@click.version_option(version=__version__)
@click.option("--root", "-r", default=".", type=click.Path(file_okay=False), help="Directory holding the state file")
@click.option("--config", "-c", "config_path", default=None, help=f"Config file (default: <root>/{DEFAULT_CONFIG_FILE})")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, root: str, config_path: str | None, verbose: bool):
    """Copy files from remote repositories and track local drift."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )
    root_path = Path(root)
    ctx.obj = {
        "root": root_path,
        "config_path": Path(config_path) if config_path else root_path / DEFAULT_CONFIG_FILE,
        "verbose": verbose,
    }


def _manager(obj: dict) -> StateManager:
    return StateManager(obj["root"], reporter=RichReporter(obj["root"], show_skipped=obj["verbose"]))


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]Error:[/] {exc}")
    raise SystemExit(1)


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def sync(obj: dict):
    """Copy configured files from their repositories and apply replacements."""
    from copyrc.operations import sync as run_sync
    from copyrc.remote.resolver import default_resolver

    console.print(f"\n[bold blue]copyrc[/]: syncing into {obj['root']}\n")

    try:
        config = load_config(obj["config_path"])
        resolver = default_resolver(obj["config_path"].parent)
        try:
            report = run_sync(_manager(obj), config, resolver)
        finally:
            resolver.close()
    except (StateError, ConfigError) as exc:
        _fail(exc)

    console.print(f"\n[green]Done:[/] {report.summary()}")


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def status(obj: dict):
    """Check whether local files need to be synced."""
    from copyrc.operations import status as run_status

    try:
        config = load_config(obj["config_path"])
        report = run_status(_manager(obj), config)
    except (StateError, ConfigError) as exc:
        _fail(exc)

    table = Table(title="copyrc status", show_header=False)
    table.add_row("Tracked files", str(report.tracked_files))
    table.add_row("Files consistent", "[green]yes[/]" if report.consistent else "[red]no[/]")
    table.add_row("Config changed", "[yellow]yes[/]" if report.config_changed else "no")
    console.print(table)

    if report.needs_sync:
        console.print("[yellow]Sync needed.[/] Run 'copyrc sync'.")
        raise SystemExit(1)
    console.print("[green]Up to date.[/]")


# ── Validate ─────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def validate(obj: dict):
    """Verify every tracked file against its recorded hash."""
    manager = _manager(obj)
    try:
        manager.load()
        manager.validate_local_state()
    except StateError as exc:
        console.print(f"  [red]x[/] {exc}")
        raise SystemExit(1)

    console.print(f"  [green]v[/] {len(manager.remote_text_files())} tracked file(s) valid")


# ── Clean ────────────────────────────────────────────────────────────


@main.command()
@click.option("--all", "remove_all", is_flag=True, help="Remove every managed file and reset the state")
@click.pass_obj
def clean(obj: dict, remove_all: bool):
    """Remove managed files the state no longer references."""
    from copyrc.operations import clean as run_clean

    try:
        removed = run_clean(_manager(obj), remove_all=remove_all)
    except StateError as exc:
        _fail(exc)

    if not removed:
        console.print("[green]Nothing to clean.[/]")
    else:
        console.print(f"\n[green]Removed {len(removed)} file(s).[/]")


# ── Files ────────────────────────────────────────────────────────────


@main.command(name="files")
@click.pass_obj
def list_files(obj: dict):
    """List tracked files."""
    manager = _manager(obj)
    try:
        manager.load()
    except StateError as exc:
        _fail(exc)

    files = manager.remote_text_files()
    if not files:
        console.print("[yellow]No tracked files.[/]")
        return

    table = Table(title=f"Tracked files ({len(files)})")
    table.add_column("Path", style="cyan")
    table.add_column("Repository")
    table.add_column("Ref")
    table.add_column("Patched", justify="center")
    table.add_column("Hash", style="dim")

    for f in files:
        patched = "[yellow]Y[/]" if f.is_patched else ""
        table.add_row(f.local_path, f.repository_name, f.release_ref, patched, f.content_hash[:12])

    console.print(table)


if __name__ == "__main__":
    main()

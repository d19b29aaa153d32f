"""Tierloom CLI entry point."""

# tierloom:service=cli

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING

import click

from tierloom import __version__

if TYPE_CHECKING:
    from tierloom.cache import CacheEntry
    from tierloom.workspace import Workspace

_TIER_STYLES = {"simple": "green", "moderate": "yellow", "complex": "red"}


def _project_option(func: object) -> object:
    return click.option(
        "--project",
        type=click.Path(exists=True, file_okay=False, path_type=Path),
        default=None,
        help="Project root (default: current directory).",
    )(func)  # type: ignore[arg-type]


def _open_workspace(project: Path | None) -> Workspace:
    from tierloom.workspace import Workspace

    return Workspace.open((project or Path.cwd()).resolve())


def _display_path(path: str, workspace: Workspace) -> str:
    root = workspace.resolver.owning_root(path)
    if root is None:
        return path
    return Path(path).relative_to(root).as_posix() or "."


# tierloom:service=cli
@click.group()
@click.version_option(version=__version__, prog_name="tierloom")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """Tierloom - per-file complexity tiers with hierarchical settings."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _print_entries(entries: list[CacheEntry], workspace: Workspace, title: str) -> None:
    from rich.console import Console
    from rich.table import Table

    table = Table(title=title)
    table.add_column("File")
    table.add_column("Lines", justify="right")
    table.add_column("Code", justify="right")
    table.add_column("Comment", justify="right")
    table.add_column("Blank", justify="right")
    table.add_column("Tier")
    for entry in entries:
        tier = entry.tier.value
        table.add_row(
            _display_path(entry.file_path, workspace),
            str(entry.line_count),
            str(entry.code_lines),
            str(entry.comment_lines),
            str(entry.blank_lines),
            f"[{_TIER_STYLES[tier]}]{tier}[/{_TIER_STYLES[tier]}]",
        )
    Console().print(table)


# tierloom:domain=workspace
@main.command()
@_project_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Stop after this many seconds; unfinished files are reported as not classified.",
)
def scan(*, project: Path | None, output_json: bool, timeout: float | None) -> None:
    """Classify every file under the workspace roots."""
    deadline = None if timeout is None else time.monotonic() + timeout
    with _open_workspace(project) as workspace:
        result = workspace.scan(deadline=deadline)

        if output_json:
            data = {
                "entries": [e.to_dict() for e in result.entries],
                "tiers": result.tier_counts(),
                "excluded": result.excluded,
                "skipped": result.skipped,
                "errors": result.errors,
                "not_classified": result.not_classified,
            }
            click.echo(json.dumps(data, ensure_ascii=False, indent=2))
            return

        _print_entries(result.entries, workspace, "Classification")
        counts = result.tier_counts()
        click.echo(
            f"Simple: {counts['simple']}  Moderate: {counts['moderate']}  "
            f"Complex: {counts['complex']}  Excluded: {len(result.excluded)}"
        )
        for path, reason in sorted(result.errors.items()):
            click.echo(f"  [warn] {_display_path(path, workspace)}: {reason}")
        if result.not_classified:
            click.echo(f"Not yet classified: {len(result.not_classified)} file(s)")


@main.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(path_type=Path))
@_project_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def classify(*, files: tuple[Path, ...], project: Path | None, output_json: bool) -> None:
    """Classify individual FILES."""
    from tierloom.errors import FileReadError

    with _open_workspace(project) as workspace:
        entries: list[CacheEntry] = []
        data: dict[str, object] = {}
        failed = False
        for file_path in files:
            try:
                entry = workspace.get_classification(file_path)
            except FileReadError as exc:
                click.echo(f"Error: {exc}", err=True)
                failed = True
                continue
            key = str(file_path)
            if entry is None:
                data[key] = None
                if not output_json:
                    click.echo(f"{file_path}: skipped (excluded or binary)")
                continue
            entries.append(entry)
            data[key] = entry.to_dict()

        if output_json:
            click.echo(json.dumps(data, ensure_ascii=False, indent=2))
        elif entries:
            _print_entries(entries, workspace, "Classification")

    if failed:
        sys.exit(1)


# tierloom:domain=settings
@main.command()
@click.argument("path", type=click.Path(path_type=Path))
@_project_option
@click.option("--json", "output_json", is_flag=True, help="Output as JSON.")
def settings(*, path: Path, project: Path | None, output_json: bool) -> None:
    """Show the effective settings that apply to PATH."""
    with _open_workspace(project) as workspace:
        effective = workspace.get_effective_settings(path)
        if output_json:
            click.echo(json.dumps(effective.to_dict(), ensure_ascii=False, indent=2))
            return

        click.echo(f"Root:      {effective.root or '(none)'}")
        click.echo(f"Scope:     {effective.resolving_scope or '(defaults)'}")
        for name, value in effective.thresholds.to_dict().items():
            source = effective.threshold_sources.get(name, "default")
            click.echo(f"{name + ':':11s}{value}  ({source})")
        click.echo("Exclude:")
        for pattern in effective.exclude:
            click.echo(f"  {pattern}  ({effective.exclude_sources.get(pattern, 'default')})")
        if effective.include:
            click.echo("Include:")
            for pattern in effective.include:
                click.echo(f"  {pattern}  ({effective.include_sources[pattern]})")
        for scope, reason in effective.warnings.items():
            click.echo(f"  [warn] {scope}: {reason}")


@main.group()
def config() -> None:
    """Edit per-directory configuration fragments."""


@config.command("set")
@click.argument("scope", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--simple", type=int, default=None, help="Lines at which Moderate starts.")
@click.option("--moderate", type=int, default=None, help="Configured moderate threshold.")
@click.option("--complex", "complex_", type=int, default=None, help="Lines at which Complex starts.")
@click.option("--exclude", "exclude", multiple=True, help="Glob pattern to add (repeatable).")
@click.option(
    "--include",
    "include",
    multiple=True,
    help="Glob pattern that overrides exclusions (repeatable).",
)
@_project_option
def config_set(
    *,
    scope: Path,
    simple: int | None,
    moderate: int | None,
    complex_: int | None,
    exclude: tuple[str, ...],
    include: tuple[str, ...],
    project: Path | None,
) -> None:
    """Set fields of the fragment owned by directory SCOPE."""
    from tierloom.errors import MalformedFragmentError
    from tierloom.paths import normalize_path
    from tierloom.settings.models import ConfigFragment

    scope_path = normalize_path(scope)
    with _open_workspace(project) as workspace:
        try:
            existing = workspace.store.load_fragment(scope_path)
        except MalformedFragmentError:
            existing = None
        thresholds = existing.defined_thresholds() if existing else {}
        for name, value in (("simple", simple), ("moderate", moderate), ("complex", complex_)):
            if value is not None:
                thresholds[name] = value
        patterns = list(existing.exclude) if existing else []
        patterns.extend(exclude)
        includes = list(existing.include) if existing else []
        includes.extend(include)

        try:
            fragment = ConfigFragment.from_mapping(
                scope_path, {"thresholds": thresholds, "exclude": patterns, "include": includes}
            )
            saved = workspace.save_fragment(fragment)
        except (MalformedFragmentError, TypeError, ValueError) as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)

        click.echo(f"Saved fragment for {_display_path(saved.scope_path, workspace)}")


@config.command("unset")
@click.argument("scope", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.argument("field_name", required=False, default=None)
@_project_option
def config_unset(*, scope: Path, field_name: str | None, project: Path | None) -> None:
    """Remove FIELD_NAME from SCOPE's fragment, or the whole fragment."""
    with _open_workspace(project) as workspace:
        try:
            if field_name is None:
                removed = workspace.delete_fragment(scope)
                click.echo("Fragment removed." if removed else "No fragment to remove.")
            else:
                remaining = workspace.reset_field(scope, field_name)
                click.echo(f"Removed {field_name}." if remaining else "Fragment removed.")
        except (TypeError, ValueError) as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(1)


# tierloom:domain=watcher
@main.command("watch")
@click.option("--debounce", default=None, type=int, help="Debounce delay in ms.")
@_project_option
def watch_cmd(*, debounce: int | None, project: Path | None) -> None:
    """Watch files and keep classifications current.

    Fragment edits bump their scope's version; source edits drop the file's
    cached classification.  Requires watchfiles: pip install tierloom[watch]
    """
    try:
        from tierloom.infrastructure.watcher import watch
    except ImportError:
        click.echo(
            "Error: watch requires 'watchfiles'. Install with: pip install tierloom[watch]",
            err=True,
        )
        sys.exit(1)

    from rich.console import Console

    from tierloom.infrastructure.watcher import WatchBatch

    console = Console()

    with _open_workspace(project) as workspace:
        debounce_ms = debounce or workspace.config.debounce_ms

        def _report(batch: WatchBatch) -> None:
            sources = len(batch.events) - batch.fragment_changes
            console.print(
                f"[dim]{batch.timestamp}[/dim] "
                f"[green]{batch.fragment_changes} fragment(s)[/green], "
                f"{sources} source file(s) changed"
            )

        console.print(f"[bold blue]Watching:[/bold blue] {', '.join(workspace.roots)}")
        console.print(f"[dim]Debounce: {debounce_ms}ms  |  Press Ctrl+C to stop[/dim]")
        try:
            watch(workspace, debounce_ms=debounce_ms, callback=_report)
        except ImportError:
            click.echo(
                "Error: watch requires 'watchfiles'. Install with: pip install tierloom[watch]",
                err=True,
            )
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Watch stopped.[/yellow]")

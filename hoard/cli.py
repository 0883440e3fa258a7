"""hoard CLI — the main entry point for per-project package libraries."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from hoard import __version__
from hoard.errors import HoardError

console = Console()

# Exit status when the user declines a destructive change
EXIT_DECLINED = 2


@click.group()
@click.version_option(version=__version__)
@click.option("--project", "-p", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Show diagnostic logging")
@click.pass_context
def main(ctx: click.Context, project: str, verbose: bool):
    """hoard — reproducible, project-local package libraries.

    Records the exact packages a project uses in a lock file and keeps a
    private library in sync with it, without ever leaving the library
    half-updated.
    """
    from hoard.config import ProjectContext

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    ctx.obj = ProjectContext.for_project(project)


def _run(fn, *args, **kwargs):
    """Call a workflow, turning hoard errors into a message and exit status 1."""
    try:
        return fn(*args, **kwargs)
    except HoardError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)


def _repository(context):
    from hoard.config import load_options
    from hoard.repository.chained import build_repository

    return build_repository(_run(load_options, context))


def _confirmer(prompt: bool):
    if not prompt:
        return None

    def confirm(plan) -> bool:
        _print_plan(plan, "Pending changes")
        return click.confirm("Apply these changes?", default=False)

    return confirm


def _print_plan(plan, title: str) -> None:
    if plan.is_empty and not plan.skipped and not plan.conflicts:
        console.print("[green]Library is up to date.[/]")
        return

    table = Table(title=title)
    table.add_column("Action", style="cyan")
    table.add_column("Package")
    table.add_column("From", style="dim")
    table.add_column("To", style="green")
    for op in plan.operations:
        action = type(op).__name__
        current = getattr(op, "current", None)
        target = getattr(op, "target", None)
        table.add_row(
            "Skip (dirty)" if action == "SkipDirty" else action,
            op.name,
            current.version if current else "",
            target.version if target else "",
        )
    console.print(table)

    for conflict in plan.conflicts:
        console.print(f"  [yellow]![/] {conflict.describe()}")


def _finish(outcome) -> None:
    if outcome.declined:
        console.print("[yellow]Declined; nothing was changed.[/]")
        sys.exit(EXIT_DECLINED)


# ── Bootstrap ────────────────────────────────────────────────────────


@main.command()
@click.option("--prompt/--no-prompt", default=True, help="Confirm removals and downgrades")
@click.option("--ignore-conflicts", is_flag=True, help="Proceed despite conflicting requirements")
@click.pass_obj
def bootstrap(context, prompt: bool, ignore_conflicts: bool):
    """Create the project's private library and lock file.

    Resolves every package the project imports or lists in hoard.yaml from
    the configured repositories and installs them.
    """
    from hoard.sync.workflows import bootstrap as run_bootstrap

    console.print(f"\n[bold blue]hoard[/] — Bootstrapping: {context.project_dir}\n")
    outcome = _run(
        run_bootstrap,
        context,
        _repository(context),
        confirm=_confirmer(prompt),
        ignore_conflicts=ignore_conflicts,
    )
    _print_plan(outcome.plan, "Bootstrap")
    _finish(outcome)
    console.print(
        f"\n[green]Locked {len(outcome.lock.packages)} package(s) in[/] {context.lock_path}"
    )


# ── Snapshot ─────────────────────────────────────────────────────────


@main.command()
@click.option("--dry-run", is_flag=True, help="Show lock changes without writing them")
@click.option("--ignore-conflicts", is_flag=True, help="Proceed despite conflicting requirements")
@click.pass_obj
def snapshot(context, dry_run: bool, ignore_conflicts: bool):
    """Record the library's current state in the lock file."""
    from hoard.sync.workflows import snapshot as run_snapshot

    outcome = _run(
        run_snapshot,
        context,
        _repository(context),
        dry_run=dry_run,
        ignore_conflicts=ignore_conflicts,
    )
    if not outcome.lock_changes:
        console.print("[green]Lock file is already up to date.[/]")
        return

    for line in outcome.lock_changes:
        style = {"+": "green", "-": "red"}.get(line[0], "yellow")
        console.print(f"  [{style}]{line}[/]")
    if dry_run:
        console.print("\n[dim]Dry run: lock file not written.[/]")
    else:
        console.print(f"\n[green]Snapshot written to[/] {context.lock_path}")


# ── Restore ──────────────────────────────────────────────────────────


@main.command()
@click.option("--overwrite-dirty", is_flag=True, help="Replace packages hoard did not install")
@click.option("--prompt/--no-prompt", default=True, help="Confirm removals and downgrades")
@click.option("--dry-run", is_flag=True, help="Show the plan without applying it")
@click.pass_obj
def restore(context, overwrite_dirty: bool, prompt: bool, dry_run: bool):
    """Make the library match the lock file."""
    from hoard.sync.workflows import restore as run_restore

    outcome = _run(
        run_restore,
        context,
        _repository(context),
        overwrite_dirty=overwrite_dirty,
        confirm=_confirmer(prompt),
        dry_run=dry_run,
    )
    _print_plan(outcome.plan, "Restore plan" if dry_run else "Restore")
    _finish(outcome)


# ── Clean ────────────────────────────────────────────────────────────


@main.command()
@click.option("--prompt/--no-prompt", default=True, help="Confirm removals")
@click.option("--dry-run", is_flag=True, help="List orphans without removing them")
@click.pass_obj
def clean(context, prompt: bool, dry_run: bool):
    """Remove installed packages the project no longer uses."""
    from hoard.sync.workflows import clean as run_clean

    outcome = _run(run_clean, context, confirm=_confirmer(prompt), dry_run=dry_run)
    if not outcome.orphans and not outcome.plan.skipped:
        console.print("[green]No orphaned packages.[/]")
        return
    _print_plan(outcome.plan, "Orphaned packages")
    _finish(outcome)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def status(context):
    """Show how the library differs from the lock file."""
    from hoard.sync.workflows import status as run_status

    outcome = _run(run_status, context)
    _print_plan(outcome.plan, "Differences from lock file")
    if outcome.untracked:
        console.print(
            Panel(
                "\n".join(outcome.untracked),
                title="Installed but not in the lock file",
                border_style="yellow",
            )
        )


# ── Recover ──────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def recover(context):
    """Finish or roll back an interrupted library update."""
    from hoard.library.rotation import RotationState
    from hoard.sync.workflows import recover as run_recover

    state = _run(run_recover, context)
    if state == RotationState.STABLE:
        console.print("[green]Library is stable; nothing to recover.[/]")
    else:
        console.print(f"[green]Recovered library from state:[/] {state.value}")


# ── Repository ───────────────────────────────────────────────────────


@main.group()
def repository():
    """Manage local package repositories."""


@repository.command()
@click.argument("package_dir")
@click.option("--root", "-r", required=True, help="Archive repository directory")
@click.option("--name", "-n", default="local", help="Repository name")
def publish(package_dir: str, root: str, name: str):
    """Build PACKAGE_DIR into an archive in the repository at --root."""
    from hoard.models.package import PACKAGE_METADATA_FILE
    from hoard.repository.archive import ArchiveRepository

    if not (Path(package_dir) / PACKAGE_METADATA_FILE).is_file():
        console.print(f"[red]Error:[/] {package_dir} has no {PACKAGE_METADATA_FILE}")
        sys.exit(1)

    record = _run(ArchiveRepository(name, root).publish, package_dir)
    console.print(f"[green]Published[/] {record.qualified_id} to {root}")


@repository.command(name="list")
@click.pass_obj
def list_repositories(context):
    """List the project's configured repositories."""
    from hoard.config import load_options

    options = _run(load_options, context)
    if not options.repositories:
        console.print("[yellow]No repositories configured in hoard.yaml.[/]")
        return

    table = Table(title=f"Repositories ({len(options.repositories)})")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Path", style="dim")
    for repo in options.repositories:
        table.add_row(repo.name, repo.kind, repo.path)
    console.print(table)

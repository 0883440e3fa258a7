"""Workflows — the project-level operations built on the reconciliation core.

- bootstrap: resolve the project's dependencies from the repositories,
  install them into a fresh private library, and write the lock file.
- snapshot: record the library's current state in the lock file.
- restore: make the library match the lock file.
- clean: remove installed packages the project no longer uses.
- status: show what restore would do, without doing it.
- recover: finish or roll back an interrupted library update.

Destructive changes (removals and downgrades) are passed to the caller's
``confirm`` callback before anything is applied; installs and upgrades
never ask.
"""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass, field
from typing import Callable

from hoard.config import ProjectContext, ProjectOptions, load_options, save_options
from hoard.errors import ConflictDetected, LookupFailed
from hoard.library import rotation
from hoard.library.applier import LibraryApplier
from hoard.library.content import pack_directory
from hoard.library.filelock import library_lock
from hoard.library.inspector import InstalledState, inspect_library, installed_records
from hoard.lock.store import LockRecord, LockStore, lock_from_closure
from hoard.models.package import PackageRecord
from hoard.models.plan import ChangePlan, Conflict
from hoard.repository import Repository
from hoard.repository.archive import archive_filename
from hoard.repository.chained import ChainedRepository
from hoard.resolve.closure import ClosureResult, FallbackSource, RecordSource, build_closure
from hoard.scanner import scan_root_dependencies
from hoard.sync.reconciler import plan_orphan_cleanup, reconcile

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[ChangePlan], bool]


@dataclass
class Outcome:
    """What a workflow did, for the caller to report."""

    operation: str
    plan: ChangePlan = field(default_factory=ChangePlan)
    lock: LockRecord | None = None
    applied: bool = False
    declined: bool = False
    dry_run: bool = False
    conflicts: list[Conflict] = field(default_factory=list)
    lock_changes: list[str] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)
    orphans: list[PackageRecord] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.applied and not self.plan.is_empty


# --- Roots ---


def root_dependencies(context: ProjectContext, options: ProjectOptions) -> set[str]:
    """The project's root package names: configured plus scanned, minus ignored."""
    ignore = set(options.ignore)
    roots = set(options.dependencies)
    if options.scan:
        roots |= scan_root_dependencies(context.project_dir, ignore=ignore)
    return roots - ignore


def _resolve(
    roots: set[str], source, ignore_conflicts: bool, what: str
) -> ClosureResult:
    result = build_closure(roots, source)
    if result.missing:
        raise LookupFailed(
            f"Cannot {what}; unable to resolve: {', '.join(result.missing)}",
            names=result.missing,
        )
    if result.conflicts and not ignore_conflicts:
        raise ConflictDetected(
            "Conflicting requirements: "
            + "; ".join(c.describe() for c in result.conflicts),
            conflicts=result.conflicts,
        )
    return result


def _repository_names(repository: Repository) -> list[str]:
    return list(getattr(repository, "names", [repository.name]))


def _apply(
    context: ProjectContext,
    repository: Repository,
    outcome: Outcome,
    lock: LockRecord | None,
    confirm: ConfirmFn | None,
) -> Outcome:
    if outcome.plan.destructive and confirm is not None and not confirm(outcome.plan):
        logger.info("%s declined by caller", outcome.operation)
        outcome.declined = True
        return outcome
    LibraryApplier(context, repository, LockStore(context.lock_path)).apply(outcome.plan, lock)
    outcome.applied = True
    return outcome


# --- Operations ---


def bootstrap(
    context: ProjectContext,
    repository: Repository,
    options: ProjectOptions | None = None,
    confirm: ConfirmFn | None = None,
    ignore_conflicts: bool = False,
) -> Outcome:
    """Resolve the project's dependencies and install them into its private library.

    Packages already in the library that were not installed by hoard are
    overwritten when the project needs them.
    """
    if options is None:
        options = load_options(context)
    context.hoard_dir.mkdir(parents=True, exist_ok=True)
    if not context.options_path.exists():
        save_options(context, options)

    result = _resolve(root_dependencies(context, options), repository, ignore_conflicts, "bootstrap")
    installed = inspect_library(context.library_dir)
    plan = reconcile(result.closure, LockRecord(), installed, overwrite_dirty=True)
    if plan.conflicts and not ignore_conflicts:
        raise ConflictDetected(
            "Installed packages conflict with the repositories: "
            + "; ".join(c.describe() for c in plan.conflicts),
            conflicts=list(plan.conflicts),
        )

    # Conflicting packages stay as installed, so the lock records them as kept
    closure = dict(result.closure)
    for conflict in plan.conflicts:
        closure[conflict.name] = conflict.kept
    lock = lock_from_closure(closure, _repository_names(repository))

    outcome = Outcome(
        operation="bootstrap",
        plan=plan,
        lock=lock,
        conflicts=result.conflicts + list(plan.conflicts),
    )
    return _apply(context, repository, outcome, lock, confirm)


def snapshot(
    context: ProjectContext,
    repository: Repository,
    options: ProjectOptions | None = None,
    dry_run: bool = False,
    ignore_conflicts: bool = False,
) -> Outcome:
    """Record the packages the project uses, as installed, in the lock file.

    Versions come from the library where a package is installed and from
    the repositories otherwise. Archives of library-only packages are
    cached so the snapshot can be restored elsewhere.
    """
    if options is None:
        options = load_options(context)
    store = LockStore(context.lock_path)
    previous = store.read_or_empty()

    installed = inspect_library(context.library_dir)
    source = FallbackSource(RecordSource(installed_records(installed)), repository)
    result = _resolve(root_dependencies(context, options), source, ignore_conflicts, "snapshot")

    lock = lock_from_closure(result.closure, _repository_names(repository))
    outcome = Outcome(
        operation="snapshot",
        lock=lock,
        dry_run=dry_run,
        conflicts=result.conflicts,
        lock_changes=diff_locks(previous, lock),
    )
    if dry_run:
        return outcome

    with library_lock(context.library_lock_path):
        _cache_library_archives(context, result.closure, installed)
        store.write(lock)
    outcome.applied = True
    return outcome


def restore(
    context: ProjectContext,
    repository: Repository,
    overwrite_dirty: bool = False,
    confirm: ConfirmFn | None = None,
    dry_run: bool = False,
) -> Outcome:
    """Make the library match the lock file exactly.

    Packages not installed by hoard are skipped unless *overwrite_dirty*,
    and packages the lock does not mention are left alone.
    """
    lock = LockStore(context.lock_path).read()
    if lock.runtime_version and lock.runtime_version != platform.python_version():
        logger.warning(
            "The lock file was generated with Python %s; this is Python %s",
            lock.runtime_version,
            platform.python_version(),
        )

    installed = inspect_library(context.library_dir)
    plan = reconcile(lock.as_closure(), lock, installed, overwrite_dirty=overwrite_dirty)
    outcome = Outcome(
        operation="restore",
        plan=plan,
        lock=lock,
        dry_run=dry_run,
        conflicts=list(plan.conflicts),
        untracked=_untracked(lock, installed),
    )
    if dry_run:
        return outcome
    return _apply(context, repository, outcome, lock, confirm)


def status(context: ProjectContext) -> Outcome:
    """Show the differences between the lock file and the library."""
    outcome = restore(context, ChainedRepository([]), dry_run=True)
    outcome.operation = "status"
    return outcome


def clean(
    context: ProjectContext,
    options: ProjectOptions | None = None,
    confirm: ConfirmFn | None = None,
    dry_run: bool = False,
) -> Outcome:
    """Remove installed packages that nothing in the project uses.

    An orphan is installed, not a root dependency, and not required by any
    non-orphan. Packages not installed by hoard are never removed. Cached
    archives of removed packages are deleted too.
    """
    if options is None:
        options = load_options(context)
    installed = inspect_library(context.library_dir)
    library = RecordSource(installed_records(installed))

    result = build_closure(root_dependencies(context, options), library)
    if result.missing:
        raise LookupFailed(
            "Can't detect orphaned packages because these package(s) are not installed: "
            + ", ".join(result.missing),
            names=result.missing,
        )

    plan = plan_orphan_cleanup(result.closure, installed)
    orphans = build_closure([op.name for op in plan.removals], library, recursive=False)
    outcome = Outcome(
        operation="clean",
        plan=plan,
        dry_run=dry_run,
        orphans=orphans.records(),
    )
    if dry_run or plan.is_empty:
        return outcome

    _apply(context, ChainedRepository([]), outcome, None, confirm)
    if outcome.applied:
        for op in plan.removals:
            _remove_cached_archives(context, op.name)
    return outcome


def recover(context: ProjectContext) -> rotation.RotationState:
    """Repair the library after an interrupted update. Safe to run any time."""
    with library_lock(context.library_lock_path):
        return rotation.recover(context)


# --- Helpers ---


def diff_locks(previous: LockRecord, current: LockRecord) -> list[str]:
    """Human-readable differences between two lock records, by package name."""
    before = previous.as_closure()
    after = current.as_closure()
    changes = []
    for name in sorted(set(before) | set(after)):
        old, new = before.get(name), after.get(name)
        if old is None:
            changes.append(f"+ {name} {new.version}")
        elif new is None:
            changes.append(f"- {name} {old.version}")
        elif old.version != new.version:
            changes.append(f"~ {name} {old.version} -> {new.version}")
        elif old.fingerprint != new.fingerprint:
            changes.append(f"~ {name} {new.version} (content changed)")
    return changes


def _untracked(lock: LockRecord, installed: InstalledState) -> list[str]:
    locked = set(lock.names())
    return [name for name in sorted(installed) if name not in locked]


def _cache_library_archives(
    context: ProjectContext, closure: dict[str, PackageRecord], installed: InstalledState
) -> None:
    for name, record in closure.items():
        package = installed.get(name)
        if package is None or package.record is not record:
            continue
        cached = context.src_dir / name / archive_filename(name, record.version)
        if cached.exists():
            continue
        cached.parent.mkdir(parents=True, exist_ok=True)
        cached.write_bytes(pack_directory(context.library_dir / name))
        logger.debug("Cached library archive for %s", record.qualified_id)


def _remove_cached_archives(context: ProjectContext, name: str) -> None:
    cache_dir = context.src_dir / name
    if not cache_dir.is_dir():
        return
    for path in cache_dir.iterdir():
        path.unlink()
    cache_dir.rmdir()

"""Reconciler — diff the desired closure against the lock and the installed library.

Policy per package name:

- wanted and not installed: install it;
- wanted and installed at the same version and content: nothing to do;
- wanted and installed at another version: upgrade or downgrade to exactly
  the wanted version, never preferring the newer one;
- installed but dirty (not put there by hoard, or changed since): skipped
  unless the caller asks to overwrite dirty packages, and then only when the
  package is wanted;
- installed but not wanted: left alone. Orphans are only removed by the
  explicit cleanup plan, and never when dirty.

Plans are deterministic: removes first, then writes, then skips, each group
sorted by package name.
"""

from __future__ import annotations

import logging

from hoard.library.inspector import InstalledState
from hoard.lock.store import LockRecord
from hoard.models.package import PackageRecord
from hoard.models.plan import (
    ChangePlan,
    Conflict,
    Downgrade,
    Install,
    Operation,
    Remove,
    SkipDirty,
    Upgrade,
)
from hoard.models.version import (
    VersionComparator,
    VersionOrder,
    compare_versions,
    same_version,
)

logger = logging.getLogger(__name__)


def reconcile(
    closure: dict[str, PackageRecord],
    lock: LockRecord,
    installed: InstalledState,
    overwrite_dirty: bool = False,
    comparator: VersionComparator | None = None,
) -> ChangePlan:
    """Compute the plan that converges *installed* onto *closure*."""
    writes: list[Operation] = []
    skips: list[Operation] = []
    conflicts: list[Conflict] = []

    for name in sorted(closure):
        target = closure[name]

        locked = lock.get(name)
        if locked is not None and _content_conflict(target, locked, comparator):
            conflicts.append(
                Conflict(
                    name=name,
                    kept=locked,
                    wanted=f"{target.version} ({target.fingerprint})",
                    reason="same version as the lock record but different content",
                )
            )
            continue

        current = installed.get(name)
        if current is None:
            writes.append(Install(target))
            continue

        if current.dirty and not overwrite_dirty:
            logger.info("Skipping %s: not installed by hoard", name)
            skips.append(SkipDirty(name))
            continue

        if same_version(target.version, current.record.version, comparator):
            if current.dirty:
                writes.append(Upgrade(current.record, target))
            elif _content_conflict(target, current.record, comparator):
                conflicts.append(
                    Conflict(
                        name=name,
                        kept=current.record,
                        wanted=f"{target.version} ({target.fingerprint})",
                        reason="installed content differs at the same version",
                    )
                )
            continue

        writes.append(_version_change(current.record, target, comparator))

    for conflict in conflicts:
        logger.warning("Not changing %s", conflict.describe())

    return ChangePlan(operations=tuple(writes + skips), conflicts=tuple(conflicts))


def plan_orphan_cleanup(
    closure: dict[str, PackageRecord], installed: InstalledState
) -> ChangePlan:
    """Plan removal of installed packages the closure no longer needs.

    Dirty orphans are never removed; they are reported as skipped.
    """
    removes: list[Operation] = []
    skips: list[Operation] = []
    for name in sorted(installed):
        if name in closure:
            continue
        if installed[name].dirty:
            skips.append(SkipDirty(name))
        else:
            removes.append(Remove(name))
    return ChangePlan(operations=tuple(removes + skips))


def _version_change(
    current: PackageRecord, target: PackageRecord, comparator: VersionComparator | None
) -> Operation:
    order = compare_versions(target.version, current.version, comparator)
    if order == VersionOrder.GREATER:
        return Upgrade(current, target)
    # Incomparable versions are planned as downgrades so they get confirmed
    return Downgrade(current, target)


def _content_conflict(
    a: PackageRecord, b: PackageRecord, comparator: VersionComparator | None
) -> bool:
    if not a.fingerprint or not b.fingerprint:
        return False
    return same_version(a.version, b.version, comparator) and a.fingerprint != b.fingerprint

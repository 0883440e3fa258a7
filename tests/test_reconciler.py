"""Tests for the reconciler's change-plan policy."""

from hoard.library.inspector import InstalledPackage
from hoard.lock.store import LockRecord, lock_from_closure
from hoard.models.package import PackageRecord
from hoard.models.plan import Downgrade, Install, Remove, SkipDirty, Upgrade
from hoard.sync.reconciler import plan_orphan_cleanup, reconcile


def _rec(name, version, content=None):
    return PackageRecord(name=name, version=version, fingerprint=content or f"{name}-{version}")


def _installed(*packages):
    """Build installed state from (record, dirty) pairs."""
    return {
        record.name: InstalledPackage(record=record, installed_by_system=not dirty)
        for record, dirty in packages
    }


def _closure(*records):
    return {r.name: r for r in records}


def test_upgrade_and_install_leave_untracked_dirty_package_alone():
    closure = _closure(_rec("A", "2"), _rec("B", "1"))
    installed = _installed((_rec("A", "1"), False), (_rec("C", "1"), True))

    plan = reconcile(closure, LockRecord(), installed)

    assert plan.operations == (
        Upgrade(_rec("A", "1"), _rec("A", "2")),
        Install(_rec("B", "1")),
    )
    assert not plan.conflicts


def test_overwrite_dirty_upgrades_dirty_package_in_closure():
    closure = _closure(_rec("A", "2"), _rec("B", "1"), _rec("C", "2"))
    installed = _installed(
        (_rec("A", "1"), False), (_rec("C", "1"), True), (_rec("D", "1"), True)
    )

    plan = reconcile(closure, LockRecord(), installed, overwrite_dirty=True)

    assert Upgrade(_rec("C", "1"), _rec("C", "2")) in plan.operations
    assert "D" not in [op.name for op in plan.operations]


def test_dirty_package_is_skipped_without_overwrite():
    closure = _closure(_rec("A", "2"))
    installed = _installed((_rec("A", "1"), True))
    plan = reconcile(closure, LockRecord(), installed)
    assert plan.operations == (SkipDirty("A"),)
    assert plan.is_empty


def test_dirty_package_at_same_version_is_reinstalled_with_overwrite():
    target = _rec("A", "1")
    installed = _installed((_rec("A", "1", content="edited"), True))
    plan = reconcile(_closure(target), LockRecord(), installed, overwrite_dirty=True)
    assert [type(op) for op in plan.operations] == [Upgrade]
    assert plan.operations[0].target is target


def test_older_target_is_a_downgrade():
    plan = reconcile(_closure(_rec("A", "1.0")), LockRecord(), _installed((_rec("A", "1.2"), False)))
    assert plan.operations == (Downgrade(_rec("A", "1.2"), _rec("A", "1.0")),)
    assert plan.destructive


def test_incomparable_version_change_needs_confirmation():
    plan = reconcile(_closure(_rec("A", "dev")), LockRecord(), _installed((_rec("A", "1.0"), False)))
    assert [type(op) for op in plan.operations] == [Downgrade]


def test_clean_package_at_wanted_version_is_left_alone():
    record = _rec("A", "1")
    plan = reconcile(_closure(record), lock_from_closure(_closure(record)), _installed((record, False)))
    assert plan.operations == ()
    assert plan.is_empty


def test_same_version_with_different_content_is_a_conflict():
    plan = reconcile(
        _closure(_rec("A", "1", content="new")),
        LockRecord(),
        _installed((_rec("A", "1", content="old"), False)),
    )
    assert plan.operations == ()
    assert [c.name for c in plan.conflicts] == ["A"]


def test_closure_disagreeing_with_lock_content_is_a_conflict():
    lock = lock_from_closure(_closure(_rec("A", "1", content="locked")))
    plan = reconcile(_closure(_rec("A", "1", content="other")), lock, {})
    assert plan.operations == ()
    assert plan.conflicts[0].kept.fingerprint == "locked"


def test_installed_packages_missing_from_closure_are_never_removed():
    installed = _installed((_rec("A", "1"), False), (_rec("B", "1"), False))
    plan = reconcile(_closure(_rec("A", "1")), LockRecord(), installed, overwrite_dirty=True)
    assert not plan.removals


def test_plan_is_sorted_and_deterministic():
    closure = _closure(_rec("zeta", "1"), _rec("alpha", "2"), _rec("mid", "1"))
    installed = _installed((_rec("alpha", "1"), False), (_rec("mid", "0"), True))
    first = reconcile(closure, LockRecord(), installed)
    second = reconcile(dict(reversed(list(closure.items()))), LockRecord(), installed)
    assert first == second
    assert [op.name for op in first.operations] == ["alpha", "zeta", "mid"]


def test_reconcile_after_convergence_is_empty():
    closure = _closure(_rec("A", "2"), _rec("B", "1"))
    installed = _installed((_rec("A", "2"), False), (_rec("B", "1"), False))
    plan = reconcile(closure, lock_from_closure(closure), installed)
    assert plan.is_empty
    assert not plan.conflicts


# --- Orphan cleanup ---


def test_orphan_cleanup_removes_only_clean_orphans():
    closure = _closure(_rec("A", "1"))
    installed = _installed(
        (_rec("A", "1"), False),
        (_rec("old", "1"), False),
        (_rec("handmade", "1"), True),
    )
    plan = plan_orphan_cleanup(closure, installed)
    assert plan.operations == (Remove("old"), SkipDirty("handmade"))


def test_orphan_cleanup_with_nothing_orphaned_is_empty():
    closure = _closure(_rec("A", "1"))
    plan = plan_orphan_cleanup(closure, _installed((_rec("A", "1"), False)))
    assert plan.is_empty
    assert plan.operations == ()

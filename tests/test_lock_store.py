"""Tests for the lock store."""

import tempfile
from pathlib import Path

import pytest
import yaml

from hoard.errors import LockMissing, LockStoreCorrupt
from hoard.lock.store import LOCK_FORMAT, LockRecord, LockStore, dump_lock, lock_from_closure
from hoard.models.package import DependencyField, PackageRecord, Requirement


def _closure():
    return {
        "toast": PackageRecord(
            name="toast",
            version="2.0",
            source="local",
            fingerprint="t" * 64,
            requirements=(
                Requirement(name="bread", operator=">=", version="1.0"),
                Requirement(name="jam", field=DependencyField.SUGGESTS),
            ),
        ),
        "bread": PackageRecord(name="bread", version="1.0", source="local", fingerprint="b" * 64),
    }


def test_lock_orders_packages_by_name():
    lock = lock_from_closure(_closure(), ["local"])
    assert lock.names() == ["bread", "toast"]
    assert lock.repositories == ("local",)
    assert lock.get("toast").version == "2.0"
    assert lock.get("jam") is None


def test_round_trip_preserves_records():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LockStore(Path(tmpdir) / "hoard" / "hoard.lock")
        lock = lock_from_closure(_closure(), ["local"])
        store.write(lock)

        restored = store.read()
        assert restored.names() == lock.names()
        assert restored.runtime_version == lock.runtime_version
        assert restored.repositories == ("local",)
        toast = restored.get("toast")
        assert toast == lock.get("toast")
        assert toast.source == "local"
        assert toast.requirements == lock.get("toast").requirements


def test_rewrite_is_byte_identical():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LockStore(Path(tmpdir) / "hoard.lock")
        store.write(lock_from_closure(_closure(), ["local"]))
        first = store.path.read_bytes()
        store.write(store.read())
        assert store.path.read_bytes() == first


def test_lock_file_layout():
    text = dump_lock(LockRecord(packages=(_closure()["bread"],), runtime_version="3.12.1"))
    data = yaml.safe_load(text)
    assert list(data) == ["format", "runtime_version", "repositories", "packages"]
    assert data["format"] == LOCK_FORMAT
    assert data["runtime_version"] == "3.12.1"
    assert data["packages"]["bread"]["version"] == "1.0"
    assert "name" not in data["packages"]["bread"]


def test_missing_lock_raises_lock_missing():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LockStore(Path(tmpdir) / "hoard.lock")
        assert not store.exists()
        with pytest.raises(LockMissing):
            store.read()
        assert store.read_or_empty().packages == ()


@pytest.mark.parametrize(
    "content",
    [
        "packages: [unclosed\n",
        "- just\n- a list\n",
        "format: 99\npackages: {}\n",
        "packages:\n  bread:\n    source: local\n",
        "packages: [bread]\n",
    ],
)
def test_corrupt_lock_raises(content):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "hoard.lock"
        path.write_text(content)
        with pytest.raises(LockStoreCorrupt):
            LockStore(path).read()


def test_corrupt_lock_is_not_treated_as_empty():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "hoard.lock"
        path.write_text("packages: [unclosed\n")
        with pytest.raises(LockStoreCorrupt):
            LockStore(path).read_or_empty()


def test_write_leaves_no_temporary_files(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        store = LockStore(Path(tmpdir) / "hoard.lock")
        store.write(lock_from_closure(_closure()))
        original = store.path.read_text()

        def failing_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("hoard.lock.store.os.replace", failing_replace)
        with pytest.raises(OSError):
            store.write(LockRecord())
        assert store.path.read_text() == original
        assert [p.name for p in Path(tmpdir).iterdir()] == ["hoard.lock"]

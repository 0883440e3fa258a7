"""Lock store — read and write the project's lock file.

The lock file is a YAML document: a header naming the format, the
interpreter version and the repositories consulted, followed by a
``packages`` mapping keyed by package name in lock order. It is always
written wholesale, through a temporary file renamed into place, so readers
see either the old lock or the new one.
"""

from __future__ import annotations

import os
import platform
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from hoard.errors import LockMissing, LockStoreCorrupt
from hoard.models.package import PackageRecord, record_from_dict, record_to_dict

LOCK_FORMAT = 1


@dataclass(frozen=True)
class LockRecord:
    """A previously committed set of packages."""

    packages: tuple[PackageRecord, ...] = ()
    runtime_version: str = field(default_factory=platform.python_version)
    repositories: tuple[str, ...] = ()
    format_version: int = LOCK_FORMAT

    def get(self, name: str) -> PackageRecord | None:
        for record in self.packages:
            if record.name == name:
                return record
        return None

    def names(self) -> list[str]:
        return [r.name for r in self.packages]

    def as_closure(self) -> dict[str, PackageRecord]:
        return {r.name: r for r in self.packages}


def lock_from_closure(
    closure: dict[str, PackageRecord], repositories: list[str] | tuple[str, ...] = ()
) -> LockRecord:
    """Build a lock record from a closure, ordered by package name."""
    return LockRecord(
        packages=tuple(closure[name] for name in sorted(closure)),
        repositories=tuple(repositories),
    )


class LockStore:
    """Reads and writes one lock file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> LockRecord:
        """Read the lock file.

        Raises:
            LockMissing: If there is no lock file.
            LockStoreCorrupt: If the file cannot be read or parsed.
        """
        if not self.path.exists():
            raise LockMissing(f"{self.path} is missing. Run 'hoard bootstrap' to generate it.")
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise LockStoreCorrupt(f"Cannot read lock file {self.path}: {e}") from e
        try:
            return _lock_from_dict(data)
        except (ValueError, TypeError, KeyError) as e:
            raise LockStoreCorrupt(f"Malformed lock file {self.path}: {e}") from e

    def read_or_empty(self) -> LockRecord:
        """Read the lock file, or return an empty lock when none exists yet."""
        try:
            return self.read()
        except LockMissing:
            return LockRecord()

    def write(self, lock: LockRecord) -> None:
        """Atomically replace the lock file with *lock*."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        content = dump_lock(lock)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


def dump_lock(lock: LockRecord) -> str:
    """Render a lock record as lock-file text."""
    packages = {}
    for record in lock.packages:
        entry = record_to_dict(record)
        del entry["name"]
        packages[record.name] = entry
    data = {
        "format": lock.format_version,
        "runtime_version": lock.runtime_version,
        "repositories": list(lock.repositories),
        "packages": packages,
    }
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def _lock_from_dict(data: dict) -> LockRecord:
    if not isinstance(data, dict):
        raise ValueError("lock file must be a mapping")
    fmt = data.get("format", LOCK_FORMAT)
    if fmt != LOCK_FORMAT:
        raise ValueError(f"unsupported lock format {fmt!r}")
    packages = data.get("packages") or {}
    if not isinstance(packages, dict):
        raise ValueError("'packages' must be a mapping")
    repositories = data.get("repositories") or []
    if not isinstance(repositories, list):
        raise ValueError("'repositories' must be a list")
    return LockRecord(
        packages=tuple(record_from_dict(entry, name=name) for name, entry in packages.items()),
        runtime_version=str(data.get("runtime_version", "")),
        repositories=tuple(str(r) for r in repositories),
        format_version=fmt,
    )

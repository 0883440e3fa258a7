"""Change plans — the ordered set of library operations one reconciliation produces."""

from __future__ import annotations

from dataclasses import dataclass, field

from hoard.models.package import PackageRecord


@dataclass(frozen=True)
class Install:
    record: PackageRecord

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def target(self) -> PackageRecord:
        return self.record

    def describe(self) -> str:
        return f"install {self.record.name} {self.record.version}"


@dataclass(frozen=True)
class Upgrade:
    current: PackageRecord
    target: PackageRecord

    @property
    def name(self) -> str:
        return self.target.name

    def describe(self) -> str:
        return f"upgrade {self.name} {self.current.version} -> {self.target.version}"


@dataclass(frozen=True)
class Downgrade:
    current: PackageRecord
    target: PackageRecord

    @property
    def name(self) -> str:
        return self.target.name

    def describe(self) -> str:
        return f"downgrade {self.name} {self.current.version} -> {self.target.version}"


@dataclass(frozen=True)
class Remove:
    name: str

    def describe(self) -> str:
        return f"remove {self.name}"


@dataclass(frozen=True)
class SkipDirty:
    name: str

    def describe(self) -> str:
        return f"skip {self.name} (not installed by hoard)"


Operation = Install | Upgrade | Downgrade | Remove | SkipDirty

# Operations that write a package into the staging library
WRITES = (Install, Upgrade, Downgrade)


@dataclass(frozen=True)
class Conflict:
    """A package name that resolved to two incompatible records.

    The first record is the one kept; *wanted* describes what the other path
    asked for. Conflicts are reported and never resolved automatically.
    """

    name: str
    kept: PackageRecord
    wanted: str
    reason: str = ""

    def describe(self) -> str:
        text = f"{self.name}: kept {self.kept.version}, wanted {self.wanted}"
        return f"{text} ({self.reason})" if self.reason else text


@dataclass(frozen=True)
class ChangePlan:
    """An ordered, immutable list of library operations."""

    operations: tuple[Operation, ...] = ()
    conflicts: tuple[Conflict, ...] = field(default_factory=tuple)

    @property
    def is_empty(self) -> bool:
        """True when applying the plan would not change the library."""
        return not any(not isinstance(op, SkipDirty) for op in self.operations)

    @property
    def writes(self) -> list[Install | Upgrade | Downgrade]:
        return [op for op in self.operations if isinstance(op, WRITES)]

    @property
    def removals(self) -> list[Remove]:
        return [op for op in self.operations if isinstance(op, Remove)]

    @property
    def skipped(self) -> list[SkipDirty]:
        return [op for op in self.operations if isinstance(op, SkipDirty)]

    @property
    def destructive(self) -> list[Remove | Downgrade]:
        """Operations a caller must confirm before applying interactively."""
        return [op for op in self.operations if isinstance(op, (Remove, Downgrade))]

    def describe(self) -> list[str]:
        return [op.describe() for op in self.operations]

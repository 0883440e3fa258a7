"""Package records — the identity, version, origin and dependency edges of a package."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum

from hoard.models.version import VersionComparator, satisfies

PACKAGE_METADATA_FILE = "package.yaml"

_REQUIREMENT_RE = re.compile(
    r"^\s*(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)\s*"
    r"(?:\(\s*(?P<op>==|>=|<=|>|<)\s*(?P<version>[^\s)]+)\s*\))?\s*$"
)


class DependencyField(Enum):
    """Which metadata field a dependency was declared in."""

    REQUIRES = "requires"  # Needed at run time
    BUILD_REQUIRES = "build_requires"  # Needed to build/install
    SUGGESTS = "suggests"  # Optional or test-only, never followed transitively

    @property
    def required(self) -> bool:
        return self is not DependencyField.SUGGESTS


@dataclass(frozen=True)
class Requirement:
    """A single dependency edge, optionally constrained to a version."""

    name: str
    field: DependencyField = DependencyField.REQUIRES
    operator: str = ""
    version: str = ""

    @property
    def pinned(self) -> bool:
        return self.operator == "=="

    def allows(self, version: str, comparator: VersionComparator | None = None) -> bool:
        if not self.operator:
            return True
        return satisfies(version, self.operator, self.version, comparator)

    def __str__(self) -> str:
        if self.operator:
            return f"{self.name} ({self.operator} {self.version})"
        return self.name


def parse_requirement(
    text: str, dep_field: DependencyField = DependencyField.REQUIRES
) -> Requirement:
    """Parse ``"bread"`` or ``"bread (>= 1.0)"`` into a Requirement."""
    match = _REQUIREMENT_RE.match(text)
    if not match:
        raise ValueError(f"Invalid requirement: {text!r}")
    return Requirement(
        name=match.group("name"),
        field=dep_field,
        operator=match.group("op") or "",
        version=match.group("version") or "",
    )


@dataclass(frozen=True, eq=False)
class PackageRecord:
    """The canonical, immutable description of one package.

    Two records are equal when name, version and fingerprint match; source
    and dependency edges do not take part in identity.
    """

    name: str
    version: str
    source: str = ""
    fingerprint: str | None = None
    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    @property
    def qualified_id(self) -> str:
        return f"{self.name}@{self.version}"

    def requirements_in(self, dep_field: DependencyField) -> list[Requirement]:
        return [r for r in self.requirements if r.field is dep_field]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageRecord):
            return NotImplemented
        return (self.name, self.version, self.fingerprint) == (
            other.name,
            other.version,
            other.fingerprint,
        )

    def __hash__(self) -> int:
        return hash((self.name, self.version, self.fingerprint))


def fingerprint(record: PackageRecord) -> str:
    """Return the record's content fingerprint.

    Legacy records carry no fingerprint; for those a stable hash of the
    identity fields stands in.
    """
    if record.fingerprint:
        return record.fingerprint
    h = hashlib.sha256()
    h.update(record.name.encode())
    h.update(b"\0")
    h.update(record.version.encode())
    h.update(b"\0")
    h.update(record.source.encode())
    for req in record.requirements:
        h.update(b"\0")
        h.update(f"{req.field.value}:{req}".encode())
    return h.hexdigest()


def dependency_names(record: PackageRecord, include_optional: bool = False) -> set[str]:
    """Names of the record's direct dependencies."""
    return {
        r.name for r in record.requirements if include_optional or r.field.required
    }


def record_to_dict(record: PackageRecord) -> dict:
    """Serialize a record to the field layout used by ``package.yaml`` and the lock file."""
    data: dict = {
        "name": record.name,
        "version": record.version,
        "source": record.source,
    }
    if record.fingerprint:
        data["fingerprint"] = record.fingerprint
    for dep_field in DependencyField:
        data[dep_field.value] = [str(r) for r in record.requirements_in(dep_field)]
    return data


def record_from_dict(data: dict, name: str | None = None) -> PackageRecord:
    """Build a record from ``package.yaml`` / lock-file fields.

    Raises:
        ValueError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise ValueError("Package metadata must be a mapping")
    pkg_name = name or data.get("name")
    version = data.get("version")
    if not pkg_name or version is None:
        raise ValueError("Package metadata requires 'name' and 'version'")

    requirements: list[Requirement] = []
    for dep_field in DependencyField:
        entries = data.get(dep_field.value) or []
        if isinstance(entries, str):
            entries = [e for e in entries.split(",") if e.strip()]
        if not isinstance(entries, list):
            raise ValueError(f"'{dep_field.value}' must be a list")
        requirements.extend(parse_requirement(str(e), dep_field) for e in entries)

    return PackageRecord(
        name=str(pkg_name),
        version=str(version),
        source=str(data.get("source") or ""),
        fingerprint=data.get("fingerprint") or None,
        requirements=tuple(requirements),
    )

"""Dependency closure — expand root package names into every package they need.

The builder walks required dependency edges breadth first, asking a metadata
source for one record per name. The first record chosen for a name is kept
for the rest of the walk; anything that disagrees with it becomes a
conflict. Names no source can resolve are collected rather than fatal, so
callers decide what a missing package means for them.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from hoard.errors import LookupFailed
from hoard.models.package import PackageRecord, Requirement
from hoard.models.plan import Conflict
from hoard.models.version import VersionComparator

logger = logging.getLogger(__name__)


class MetadataSource(Protocol):
    """Anything that can resolve a package name to a record."""

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        """Return the record for *name* (exactly *version* if given), or None."""
        ...


@dataclass
class ClosureResult:
    """Outcome of building a closure."""

    closure: dict[str, PackageRecord] = field(default_factory=dict)
    missing: list[str] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing and not self.conflicts

    def records(self) -> list[PackageRecord]:
        return list(self.closure.values())


def build_closure(
    root_names: Iterable[str],
    source: MetadataSource,
    recursive: bool = True,
    comparator: VersionComparator | None = None,
) -> ClosureResult:
    """Build the closure of *root_names* against *source*.

    Roots are visited in sorted order, then each record's requirements in
    declaration order, so unchanged input always yields the same closure and
    the same ``missing`` ordering. With ``recursive=False`` only the roots
    themselves are resolved.
    """
    result = ClosureResult()
    queue: deque[tuple[Requirement, str | None]] = deque(
        (Requirement(name=name), None) for name in sorted(set(root_names))
    )

    while queue:
        req, required_by = queue.popleft()

        if req.name in result.closure:
            _check_existing(result, req, required_by, comparator)
            continue
        if req.name in result.missing:
            continue

        record = _lookup(source, req)
        if record is None:
            logger.debug("No metadata for %s (required by %s)", req.name, required_by or "root")
            result.missing.append(req.name)
            continue

        if not req.allows(record.version, comparator):
            result.conflicts.append(
                Conflict(
                    name=req.name,
                    kept=record,
                    wanted=f"{req.operator} {req.version}",
                    reason=f"required by {required_by or 'project'}",
                )
            )

        result.closure[req.name] = record
        if not recursive:
            continue
        for dep in record.requirements:
            if dep.field.required:
                queue.append((dep, record.name))

    for conflict in result.conflicts:
        logger.warning("Dependency conflict: %s", conflict.describe())
    return result


def _lookup(source: MetadataSource, req: Requirement) -> PackageRecord | None:
    try:
        if req.pinned:
            return source.lookup(req.name, req.version)
        return source.lookup(req.name)
    except LookupFailed as exc:
        logger.warning("Lookup of %s failed: %s", req.name, exc)
        return None


def _check_existing(
    result: ClosureResult,
    req: Requirement,
    required_by: str | None,
    comparator: VersionComparator | None,
) -> None:
    kept = result.closure[req.name]
    if req.allows(kept.version, comparator):
        return
    conflict = Conflict(
        name=req.name,
        kept=kept,
        wanted=f"{req.operator} {req.version}",
        reason=f"required by {required_by or 'project'}",
    )
    if conflict not in result.conflicts:
        result.conflicts.append(conflict)


# --- Metadata sources over hoard's own state ---


class RecordSource:
    """Resolve names from a fixed set of records (a lock file or an installed library)."""

    def __init__(self, records: Iterable[PackageRecord]):
        self._records = {r.name: r for r in records}

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        record = self._records.get(name)
        if record is None:
            return None
        if version is not None and record.version != version:
            return None
        return record


class FallbackSource:
    """Consult several sources in order; the first hit wins."""

    def __init__(self, *sources: MetadataSource):
        self.sources = sources

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        for source in self.sources:
            record = source.lookup(name, version)
            if record is not None:
                return record
        return None

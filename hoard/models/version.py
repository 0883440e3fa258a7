"""Version tokens and their ordering.

Versions are opaque strings. The default comparator understands dotted or
dashed numeric versions (``1.2.3``, ``0.9-1``):

- components are compared numerically, left to right;
- when one version is a proper prefix of the other, the shorter one is
  smaller (``1.0 < 1.0.0``);
- ``.`` and ``-`` are interchangeable separators (``1-0 == 1.0``).

Anything else (``1.0rc1``, ``dev``, an empty string) is unparseable.
Unparseable versions are incomparable to every version, including an
identical string, so callers never infer an ordering that does not exist.

The comparator is pluggable: any callable ``(str, str) -> VersionOrder``.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Callable

UNKNOWN_VERSION = "unknown"

_SEPARATORS = re.compile(r"[.-]")


class VersionOrder(Enum):
    """Outcome of comparing two versions."""

    LESS = "less"
    EQUAL = "equal"
    GREATER = "greater"
    INCOMPARABLE = "incomparable"


VersionComparator = Callable[[str, str], VersionOrder]


def parse_version(version: str) -> tuple[int, ...] | None:
    """Parse a dotted-numeric version into a tuple, or None if unparseable."""
    if not version:
        return None
    parts = _SEPARATORS.split(version.strip())
    if not all(p.isdigit() for p in parts):
        return None
    return tuple(int(p) for p in parts)


def dotted_numeric(a: str, b: str) -> VersionOrder:
    """Default comparator for dotted/dashed numeric versions."""
    pa, pb = parse_version(a), parse_version(b)
    if pa is None or pb is None:
        return VersionOrder.INCOMPARABLE
    if pa == pb:
        return VersionOrder.EQUAL
    return VersionOrder.LESS if pa < pb else VersionOrder.GREATER


def compare_versions(
    a: str, b: str, comparator: VersionComparator | None = None
) -> VersionOrder:
    """Compare version *a* against version *b*."""
    return (comparator or dotted_numeric)(a, b)


def same_version(
    a: str, b: str, comparator: VersionComparator | None = None
) -> bool:
    """True when two version tokens name the same version.

    Identical strings are always the same version, even when unparseable.
    """
    return a == b or compare_versions(a, b, comparator) == VersionOrder.EQUAL


def satisfies(
    version: str,
    operator: str,
    wanted: str,
    comparator: VersionComparator | None = None,
) -> bool:
    """Check *version* against a single ``operator wanted`` constraint."""
    if operator == "==":
        return same_version(version, wanted, comparator)
    order = compare_versions(version, wanted, comparator)
    if order == VersionOrder.INCOMPARABLE:
        return False
    if operator == ">=":
        return order in (VersionOrder.GREATER, VersionOrder.EQUAL)
    if operator == ">":
        return order == VersionOrder.GREATER
    if operator == "<=":
        return order in (VersionOrder.LESS, VersionOrder.EQUAL)
    if operator == "<":
        return order == VersionOrder.LESS
    raise ValueError(f"Unknown version operator: {operator!r}")


def latest(
    versions: list[str], comparator: VersionComparator | None = None
) -> str | None:
    """Return the greatest parseable version, falling back to the last one listed.

    Unparseable versions only win when nothing else is available.
    """
    best: str | None = None
    for candidate in versions:
        if best is None:
            best = candidate
            continue
        order = compare_versions(candidate, best, comparator)
        if order == VersionOrder.GREATER:
            best = candidate
        elif order == VersionOrder.INCOMPARABLE and parse_version(best) is None:
            best = candidate
    return best

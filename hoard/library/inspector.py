"""Library inspector — report what is actually installed in a library directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from hoard.library.content import fingerprint_tree
from hoard.library.marker import read_marker
from hoard.models.package import PACKAGE_METADATA_FILE, PackageRecord, record_from_dict
from hoard.models.version import UNKNOWN_VERSION

logger = logging.getLogger(__name__)

# Source recorded for packages that only exist in the library
LIBRARY_SOURCE = "library"


@dataclass
class InstalledPackage:
    """One package as found on disk."""

    record: PackageRecord
    installed_by_system: bool
    error: str = ""

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def dirty(self) -> bool:
        return not self.installed_by_system


InstalledState = dict[str, InstalledPackage]


def inspect_library(library_path: str | Path) -> InstalledState:
    """Inspect every package directory under *library_path*.

    Returns a mapping from package name to what was found, sorted by name.
    A package that cannot be read is reported with its error and counted as
    dirty; it never aborts the inspection.
    """
    root = Path(library_path)
    state: InstalledState = {}
    if not root.is_dir():
        return state

    for entry in sorted(root.iterdir()):
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        state[entry.name] = inspect_package(entry)
    return state


def inspect_package(package_dir: Path) -> InstalledPackage:
    """Inspect a single installed package directory."""
    name = package_dir.name
    try:
        with open(package_dir / PACKAGE_METADATA_FILE) as f:
            metadata = yaml.safe_load(f)
        content_hash = fingerprint_tree(package_dir)
        declared = record_from_dict(metadata, name=name)
    except (OSError, yaml.YAMLError, ValueError) as e:
        logger.warning("Could not inspect installed package %s: %s", name, e)
        return InstalledPackage(
            record=PackageRecord(name=name, version=UNKNOWN_VERSION),
            installed_by_system=False,
            error=str(e),
        )

    marker = read_marker(package_dir)
    clean = marker is not None and marker.fingerprint == content_hash
    if marker is not None and not clean:
        logger.info("Package %s changed since hoard installed it", name)

    record = PackageRecord(
        name=name,
        version=declared.version,
        source=(marker.source if clean and marker.source else declared.source) or LIBRARY_SOURCE,
        fingerprint=content_hash,
        requirements=declared.requirements,
    )
    return InstalledPackage(record=record, installed_by_system=clean)


def installed_records(state: InstalledState) -> list[PackageRecord]:
    """The observed records of every readable package in *state*."""
    return [p.record for p in state.values() if not p.error]

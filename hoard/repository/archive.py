"""Archive repository — a directory of built package archives.

Layout::

    <root>/<name>/<name>_<version>.tar.gz

The index is built from the archives themselves: the record's name,
version and dependencies come from the ``package.yaml`` inside each archive
and its fingerprint from the archive contents.
"""

from __future__ import annotations

import logging
import tarfile
from pathlib import Path

import yaml

from hoard.errors import ArchiveFetchFailed, LookupFailed, PublishFailed
from hoard.library.content import fingerprint_archive, pack_directory, read_archive_metadata
from hoard.models.package import PackageRecord, record_from_dict
from hoard.models.version import VersionComparator, latest

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"


def archive_filename(name: str, version: str) -> str:
    return f"{name}_{version}{ARCHIVE_SUFFIX}"


class ArchiveRepository:
    """File-based repository of package archives."""

    def __init__(
        self,
        name: str,
        root: str | Path,
        comparator: VersionComparator | None = None,
    ):
        self.name = name
        self.root = Path(root)
        self.comparator = comparator
        self._index: dict[str, dict[str, tuple[PackageRecord, Path]]] | None = None

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        """Resolve *name* to its newest archived version, or exactly *version*."""
        available = self._load_index().get(name)
        if not available:
            return None
        if version is not None:
            hit = available.get(version)
            return hit[0] if hit else None
        best = latest(list(available), self.comparator)
        return available[best][0]

    def versions(self, name: str) -> list[str]:
        return list(self._load_index().get(name, {}))

    def fetch_archive(self, record: PackageRecord) -> bytes:
        try:
            hit = self._load_index().get(record.name, {}).get(record.version)
        except LookupFailed as e:
            raise ArchiveFetchFailed(str(e)) from e
        if hit is None:
            raise ArchiveFetchFailed(
                f"Repository '{self.name}' has no archive for {record.qualified_id}"
            )
        try:
            return hit[1].read_bytes()
        except OSError as e:
            raise ArchiveFetchFailed(f"Cannot read {hit[1]}: {e}") from e

    def publish(self, package_dir: str | Path) -> PackageRecord:
        """Pack a package directory into the repository and return its record.

        Reads the package's ``package.yaml`` for name and version, writes
        the archive under the repository root and refreshes the index.

        Raises:
            PublishFailed: The directory or its ``package.yaml`` is unusable,
                or the archive cannot be written.
        """
        try:
            data = pack_directory(package_dir)
            record = _record_from_archive(data, self.name)
        except (OSError, tarfile.TarError, KeyError, ValueError, yaml.YAMLError) as e:
            raise PublishFailed(f"Cannot publish {package_dir}: {e}") from e
        target = self.root / record.name / archive_filename(record.name, record.version)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise PublishFailed(f"Cannot write {target}: {e}") from e
        self._index = None
        return record

    def _load_index(self) -> dict[str, dict[str, tuple[PackageRecord, Path]]]:
        if self._index is not None:
            return self._index
        if not self.root.is_dir():
            raise LookupFailed(f"Repository '{self.name}' not found at {self.root}")

        index: dict[str, dict[str, tuple[PackageRecord, Path]]] = {}
        for path in sorted(self.root.glob(f"*/*{ARCHIVE_SUFFIX}")):
            try:
                record = _record_from_archive(path.read_bytes(), self.name)
            except (OSError, tarfile.TarError, KeyError, ValueError, yaml.YAMLError) as e:
                logger.warning("Skipping unreadable archive %s: %s", path, e)
                continue
            index.setdefault(record.name, {})[record.version] = (record, path)
        self._index = index
        return index


def _record_from_archive(data: bytes, repository: str) -> PackageRecord:
    declared = record_from_dict(yaml.safe_load(read_archive_metadata(data)))
    return PackageRecord(
        name=declared.name,
        version=declared.version,
        source=repository,
        fingerprint=fingerprint_archive(data),
        requirements=declared.requirements,
    )

"""Source repository — unpacked package sources on the local filesystem.

Each immediate subdirectory of the root holding a ``package.yaml`` is one
package. When the sources live inside a git checkout the record's source is
the checkout's commit (``git:<sha>``), otherwise the directory path
(``path:<dir>``).
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from hoard.errors import ArchiveFetchFailed, LookupFailed
from hoard.library.content import fingerprint_archive, pack_directory
from hoard.models.package import PACKAGE_METADATA_FILE, PackageRecord, record_from_dict

logger = logging.getLogger(__name__)


class SourceRepository:
    """Repository backed by package source directories."""

    def __init__(self, name: str, root: str | Path):
        self.name = name
        self.root = Path(root)

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        package_dir = self.root / name
        if not (package_dir / PACKAGE_METADATA_FILE).is_file():
            if not self.root.is_dir():
                raise LookupFailed(f"Repository '{self.name}' not found at {self.root}")
            return None
        try:
            with open(package_dir / PACKAGE_METADATA_FILE) as f:
                declared = record_from_dict(yaml.safe_load(f))
        except (OSError, yaml.YAMLError, ValueError) as e:
            raise LookupFailed(f"Cannot read metadata for {name} in {package_dir}: {e}") from e

        if declared.name != name:
            logger.warning(
                "Source directory %s declares package %s; ignoring", package_dir, declared.name
            )
            return None
        if version is not None and declared.version != version:
            return None

        return PackageRecord(
            name=declared.name,
            version=declared.version,
            source=source_reference(package_dir),
            fingerprint=fingerprint_archive(pack_directory(package_dir)),
            requirements=declared.requirements,
        )

    def fetch_archive(self, record: PackageRecord) -> bytes:
        try:
            current = self.lookup(record.name, record.version)
        except LookupFailed as e:
            raise ArchiveFetchFailed(str(e)) from e
        if current is None:
            raise ArchiveFetchFailed(
                f"Repository '{self.name}' has no sources for {record.qualified_id}"
            )
        try:
            return pack_directory(self.root / record.name)
        except OSError as e:
            raise ArchiveFetchFailed(f"Cannot pack sources for {record.name}: {e}") from e


def source_reference(package_dir: Path) -> str:
    """``git:<sha>`` when *package_dir* is in a git checkout, else ``path:<dir>``."""
    try:
        repo = Repo(package_dir, search_parent_directories=True)
        return f"git:{repo.head.commit.hexsha}"
    except (InvalidGitRepositoryError, NoSuchPathError, ValueError):
        return f"path:{package_dir.resolve()}"

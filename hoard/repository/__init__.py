"""Package repositories — where package metadata and archives come from.

A repository resolves a package name to a PackageRecord and hands out the
archive for a record. Implementations:

- ArchiveRepository: a directory of built ``.tar.gz`` package archives
- SourceRepository: a directory of unpacked package sources
- ChainedRepository: several repositories consulted in order
"""

from __future__ import annotations

from typing import Protocol

from hoard.models.package import PackageRecord


class Repository(Protocol):
    """Interface every package repository implements."""

    name: str

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        """Return the record for *name* (exactly *version* if given), or None."""
        ...

    def fetch_archive(self, record: PackageRecord) -> bytes:
        """Return the archive bytes for *record*.

        Raises:
            ArchiveFetchFailed: If this repository cannot provide it.
        """
        ...

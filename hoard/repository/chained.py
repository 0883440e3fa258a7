"""Chained repository — consult several repositories in precedence order."""

from __future__ import annotations

import logging

from hoard.config import ProjectOptions
from hoard.errors import ArchiveFetchFailed, LookupFailed
from hoard.models.package import PackageRecord
from hoard.repository import Repository
from hoard.repository.archive import ArchiveRepository
from hoard.repository.source import SourceRepository

logger = logging.getLogger(__name__)


class ChainedRepository:
    """Resolve from the first repository that knows a package.

    Archives are fetched from the repository the record names as its source
    when there is one, then from the others in order.
    """

    name = "chained"

    def __init__(self, repositories: list[Repository]):
        self.repositories = list(repositories)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self.repositories]

    def lookup(self, name: str, version: str | None = None) -> PackageRecord | None:
        failures: list[str] = []
        for repo in self.repositories:
            try:
                record = repo.lookup(name, version)
            except LookupFailed as e:
                logger.warning("Repository '%s' unavailable: %s", repo.name, e)
                failures.append(str(e))
                continue
            if record is not None:
                return record
        if failures and len(failures) == len(self.repositories):
            raise LookupFailed(f"No repository could be consulted for {name}", names=[name])
        return None

    def fetch_archive(self, record: PackageRecord) -> bytes:
        errors: list[str] = []
        for repo in self._fetch_order(record):
            try:
                return repo.fetch_archive(record)
            except ArchiveFetchFailed as e:
                errors.append(str(e))
        detail = "; ".join(errors) or "no repositories configured"
        raise ArchiveFetchFailed(f"Cannot fetch {record.qualified_id}: {detail}")

    def _fetch_order(self, record: PackageRecord) -> list[Repository]:
        preferred = [r for r in self.repositories if r.name == record.source]
        return preferred + [r for r in self.repositories if r.name != record.source]


def build_repository(options: ProjectOptions) -> ChainedRepository:
    """Build the project's repository chain from its configured repositories."""
    repositories: list[Repository] = []
    for repo_config in options.repositories:
        if repo_config.kind == "source":
            repositories.append(SourceRepository(repo_config.name, repo_config.path))
        else:
            repositories.append(ArchiveRepository(repo_config.name, repo_config.path))
    return ChainedRepository(repositories)

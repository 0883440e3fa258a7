"""Transactional library applier — apply a change plan without ever half-updating the library.

An update never edits the active library in place. It builds the complete
next generation in ``lib.new``, then swaps it in with two renames:

    lib -> lib.old        (fails: nothing changed)
    lib.new -> lib        (fails: lib.old is renamed back)

and finally deletes ``lib.old``. A crash at any point leaves a combination
of slots that ``rotation.recover`` resolves on the next run. The lock file
is only written after a successful swap.
"""

from __future__ import annotations

import logging
import os
import shutil
import tarfile
from pathlib import Path

from hoard.config import ProjectContext
from hoard.errors import (
    ArchiveFetchFailed,
    InstallFailed,
    LibraryCorrupted,
    SwapFailed,
)
from hoard.library.content import extract_archive, fingerprint_tree
from hoard.library.filelock import library_lock
from hoard.library.marker import write_marker
from hoard.library.rotation import recover
from hoard.lock.store import LockRecord, LockStore
from hoard.models.package import PackageRecord
from hoard.models.plan import ChangePlan, Remove
from hoard.repository import Repository
from hoard.repository.archive import archive_filename

logger = logging.getLogger(__name__)


class LibraryApplier:
    """Applies change plans to one project's library."""

    def __init__(
        self,
        context: ProjectContext,
        repository: Repository,
        lock_store: LockStore | None = None,
    ):
        self.context = context
        self.repository = repository
        self.lock_store = lock_store or LockStore(context.lock_path)

    def apply(self, plan: ChangePlan, lock: LockRecord | None = None) -> LockRecord | None:
        """Apply *plan* to the library and persist *lock* on success.

        Returns the persisted lock record (None when no lock was given).

        Raises:
            ArchiveFetchFailed, InstallFailed: Staging failed; library untouched.
            SwapFailed: Promotion failed and the previous library was restored.
            LibraryCorrupted: Promotion and rollback both failed.
            LibraryBusy: Another process is updating the library.
        """
        with library_lock(self.context.library_lock_path):
            recover(self.context)

            if not plan.is_empty:
                self._discard_staging()
                # A library must exist before staging starts, so an interrupted
                # first install is recognised as stale staging, not a promotion
                self.context.library_dir.mkdir(parents=True, exist_ok=True)
                self._stage(plan)
                self._promote()
                shutil.rmtree(self.context.old_library_dir, ignore_errors=True)
                logger.info("Library updated: %s", ", ".join(plan.describe()))
            else:
                self.context.library_dir.mkdir(parents=True, exist_ok=True)

            if lock is not None:
                self.lock_store.write(lock)
            return lock

    # -- staging --------------------------------------------------------------

    def _discard_staging(self) -> None:
        staging = self.context.new_library_dir
        if staging.exists():
            logger.info("Discarding leftover staging library %s", staging)
            shutil.rmtree(staging)

    def _stage(self, plan: ChangePlan) -> None:
        current = self.context.library_dir
        staging = self.context.new_library_dir
        replaced = {op.name for op in plan.writes}
        removed = {op.name for op in plan.operations if isinstance(op, Remove)}

        try:
            staging.mkdir(parents=True)
            for entry in sorted(current.iterdir()):
                if entry.name in replaced or entry.name in removed:
                    continue
                _copy_entry(entry, staging / entry.name)

            for op in plan.writes:
                self._install(op.target, staging)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

    def _install(self, record: PackageRecord, staging: Path) -> None:
        package_dir = staging / record.name
        data, cached = self._fetch(record)
        try:
            content_hash = self._unpack(record, data, package_dir)
        except InstallFailed as e:
            if cached is None:
                raise
            # A bad cached archive is refetched once from the repositories
            logger.warning("Discarding unusable cached archive %s: %s", cached, e)
            shutil.rmtree(package_dir, ignore_errors=True)
            cached.unlink(missing_ok=True)
            content_hash = self._unpack(record, self._download(record, cached), package_dir)

        try:
            write_marker(package_dir, content_hash, source=record.source)
        except OSError as e:
            raise InstallFailed(f"Could not mark {record.qualified_id} as installed: {e}") from e
        logger.debug("Staged %s", record.qualified_id)

    def _unpack(self, record: PackageRecord, data: bytes, package_dir: Path) -> str:
        """Extract an archive into *package_dir* and return its verified content hash."""
        try:
            extract_archive(data, package_dir)
        except (OSError, ValueError, tarfile.TarError) as e:
            raise InstallFailed(f"Could not install {record.qualified_id}: {e}") from e

        try:
            content_hash = fingerprint_tree(package_dir)
        except OSError as e:
            raise InstallFailed(f"Could not verify {record.qualified_id}: {e}") from e
        if record.fingerprint and content_hash != record.fingerprint:
            raise InstallFailed(
                f"Archive for {record.qualified_id} does not match its recorded fingerprint"
            )
        return content_hash

    def _fetch(self, record: PackageRecord) -> tuple[bytes, Path | None]:
        """Fetch a package archive, preferring the project's archive cache.

        Returns the archive and the cache path it was read from, or None when
        it came from the repositories.
        """
        cached = self.context.src_dir / record.name / archive_filename(record.name, record.version)
        if cached.is_file():
            try:
                return cached.read_bytes(), cached
            except OSError as e:
                logger.warning("Ignoring unreadable cached archive %s: %s", cached, e)
        return self._download(record, cached), None

    def _download(self, record: PackageRecord, cached: Path) -> bytes:
        try:
            data = self.repository.fetch_archive(record)
        except OSError as e:
            raise ArchiveFetchFailed(f"Could not fetch {record.qualified_id}: {e}") from e
        try:
            cached.parent.mkdir(parents=True, exist_ok=True)
            cached.write_bytes(data)
        except OSError as e:
            logger.warning("Could not cache archive for %s: %s", record.qualified_id, e)
        return data

    # -- promotion ------------------------------------------------------------

    def _promote(self) -> None:
        current = self.context.library_dir
        staging = self.context.new_library_dir
        old = self.context.old_library_dir

        try:
            os.rename(current, old)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise SwapFailed(f"Could not move {current} aside: {e}") from e

        try:
            os.rename(staging, current)
        except OSError as e:
            try:
                os.rename(old, current)
            except OSError as rollback_error:
                raise LibraryCorrupted(
                    f"Could not promote {staging} ({e}) nor restore {old} "
                    f"({rollback_error}). Run 'hoard recover' or move {old} to {current}."
                ) from rollback_error
            shutil.rmtree(staging, ignore_errors=True)
            raise SwapFailed(f"Could not promote {staging}: {e}") from e


def _copy_entry(source: Path, target: Path) -> None:
    try:
        if source.is_dir() and not source.is_symlink():
            shutil.copytree(source, target, symlinks=True)
        else:
            shutil.copy2(source, target, follow_symlinks=False)
    except OSError as e:
        raise InstallFailed(f"Could not copy {source.name} into staging: {e}") from e

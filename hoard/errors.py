"""Error kinds raised by hoard.

Everything below the CLI raises a subclass of HoardError; filesystem,
archive and YAML errors are translated into one of these at the boundary
where they occur. The only retry is a refetch of an unusable cached archive.
"""

from __future__ import annotations


class HoardError(Exception):
    """Base class for all hoard errors."""


class ConfigError(HoardError):
    """The project options file is unreadable or malformed."""


class LookupFailed(HoardError):
    """A package could not be resolved from any metadata source."""

    def __init__(self, message: str, names: list[str] | None = None):
        super().__init__(message)
        self.names = names or []


class ConflictDetected(HoardError):
    """Two required paths resolve a name to incompatible records."""

    def __init__(self, message: str, conflicts: list | None = None):
        super().__init__(message)
        self.conflicts = conflicts or []


class LockStoreCorrupt(HoardError):
    """The lock file exists but cannot be read or parsed."""


class LockMissing(HoardError):
    """The project has no lock file yet."""


class PublishFailed(HoardError):
    """A package directory could not be packed into a repository."""


# --- Apply errors ---


class ApplyError(HoardError):
    """Applying a change plan failed."""


class ArchiveFetchFailed(ApplyError):
    """A package archive could not be fetched. The library is untouched."""


class InstallFailed(ApplyError):
    """A package could not be installed into staging. The library is untouched."""


class SwapFailed(ApplyError):
    """Promoting the staged library failed; the previous library was restored."""


class LibraryCorrupted(ApplyError):
    """The swap and its rollback both failed; the library needs manual recovery."""


class LibraryBusy(ApplyError):
    """Another process holds the library lock."""

"""Advisory library lock — one update per library at a time."""

from __future__ import annotations

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from hoard.errors import LibraryBusy


@contextmanager
def library_lock(lock_path: str | Path) -> Iterator[None]:
    """Hold an exclusive ``flock`` on *lock_path* for the duration of the block.

    The lock is not waited for: if another process holds it, LibraryBusy is
    raised at once. The lock file itself stays on disk; only the flock
    matters, so a file left behind by a crashed process is harmless.
    """
    lock_path = Path(lock_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a+", encoding="utf-8") as handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise LibraryBusy(
                f"Another hoard process is updating this library ({lock_path})"
            ) from e
        try:
            handle.seek(0)
            handle.truncate()
            handle.write(f"{os.getpid()}\n")
            handle.flush()
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
